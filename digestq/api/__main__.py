"""Run the DigestQ API with uvicorn: `python -m digestq.api` or `digestq-api`."""

from __future__ import annotations

import uvicorn

from digestq.infrastructure.settings import API_HOST, API_PORT, LOG_LEVEL, is_development


def main() -> None:
    uvicorn.run(
        "digestq.api.app:app",
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
        reload=is_development(),
    )


if __name__ == "__main__":
    main()
