"""Entrypoint: python -m chat_sync"""
from __future__ import annotations

import uvicorn

from chat_sync.config import settings
from chat_sync.log import setup_logging


def main() -> None:
    setup_logging()
    uvicorn.run(
        "chat_sync.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
