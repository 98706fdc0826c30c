"""Thread categorization and summarization core."""
