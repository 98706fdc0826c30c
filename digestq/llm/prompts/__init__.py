"""
Prompt Management Module

Loads LLM prompts from external text files and renders digest data into them.
Templates use str.format placeholders; literal JSON braces are doubled.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from digestq.digest.models import (
    NO_SUBJECT,
    CategorizedThread,
    Category,
    SimplifiedThread,
    Thread,
    utc_now,
)

# Get the prompts directory
PROMPTS_DIR = Path(__file__).parent

# Environment variable for A/B testing prompts
CATEGORIZATION_PROMPT_NAME = os.getenv("DIGESTQ_CATEGORIZATION_PROMPT", "categorization_prompt")


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self):
        self._cache = {}

    def load_prompt(self, prompt_name: str) -> str:
        """
        Load a prompt template from file.

        Args:
            prompt_name: Name of the prompt file (without .txt extension)

        Returns:
            Prompt template string
        """
        if prompt_name not in self._cache:
            prompt_path = PROMPTS_DIR / f"{prompt_name}.txt"

            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

            with open(prompt_path, encoding="utf-8") as f:
                self._cache[prompt_name] = f.read()

        return self._cache[prompt_name]

    def render(self, prompt_name: str, **kwargs) -> str:
        return self.load_prompt(prompt_name).format(**kwargs)

    def reload(self) -> None:
        """Clear cache and reload prompts from disk"""
        self._cache.clear()


# Global instance
_loader = PromptLoader()


def _today(current_date: str | None) -> str:
    return current_date or utc_now().date().isoformat()


def _render_simplified(thread: SimplifiedThread) -> str:
    lines = [
        f'id: "{thread.id}"',
        f"Thread {thread.thread_number} of {thread.total_threads}",
        f"Subject: {thread.subject or NO_SUBJECT}",
        f"From: {thread.from_}",
        f"Preview: {thread.preview}",
    ]
    if thread.extracted_task is not None and thread.extracted_task.has_task:
        lines.append(f"Task: yes (priority {thread.extracted_task.task_priority})")
    return "\n".join(lines)


def build_categorization_prompt(
    threads: Sequence[SimplifiedThread], current_date: str | None = None
) -> str:
    """Categorization prompt for one chunk of simplified threads."""
    task_threads = [t for t in threads if t.extracted_task is not None and t.extracted_task.has_task]
    task_instructions = ""
    if task_threads:
        task_instructions = (
            'IMPORTANT: The following threads MUST be categorized as "Important Info" '
            "because they contain tasks:\n"
            + "".join(f"  - Thread {t.id}: {t.subject}\n" for t in task_threads)
        )

    hinted = [t for t in threads if t.category_hint is not None]
    hint_instructions = ""
    if hinted:
        hint_instructions = (
            "Suggested categories from a rule-based pre-classifier (use your own judgement):\n"
            + "".join(f"  - Thread {t.id}: {t.category_hint.value}\n" for t in hinted)
        )

    return _loader.render(
        CATEGORIZATION_PROMPT_NAME,
        current_date=_today(current_date),
        thread_count=len(threads),
        task_instructions=task_instructions,
        hint_instructions=hint_instructions,
        thread_details="\n---\n".join(_render_simplified(t) for t in threads),
    )


def _render_messages(messages) -> str:
    return "\n----\n".join(
        f"From: {m.headers.from_}\nSubject: {m.headers.subject}\n"
        f"Date: {m.headers.date}\nContent: {m.body or m.snippet or ''}"
        for m in messages
    )


def build_summary_prompt(
    category: Category,
    threads: Sequence[CategorizedThread],
    current_date: str | None = None,
) -> str:
    """Summary prompt for one chunk of a category's threads."""
    details = "\n---\n".join(
        f'id: "{t.thread_id}"\nSubject: {t.subject}\nMessages:\n{_render_messages(t.messages)}'
        for t in threads
    )
    return _loader.render(
        "summary_prompt",
        current_date=_today(current_date),
        category=category.value,
        thread_count=len(threads),
        thread_details=details,
    )


def build_single_thread_prompt(thread: Thread, current_date: str | None = None) -> str:
    return _loader.render(
        "single_thread_prompt",
        current_date=_today(current_date),
        subject=thread.subject or "No Subject",
        messages=_render_messages(thread.messages),
    )


def reload_prompts() -> None:
    """Reload all prompts from disk (convenience function)"""
    _loader.reload()
