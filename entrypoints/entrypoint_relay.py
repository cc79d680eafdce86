#!/usr/bin/env python3
"""
Entrypoint для Location Relay.

Запуск:
    python entrypoints/entrypoint_relay.py

Порт по умолчанию: 8080 (RELAY_PORT)
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from location_relay.config import settings


def main() -> None:
    """Запустить Location Relay."""
    uvicorn.run(
        "location_relay.services.relay.app:app",
        host=settings.deployment.RELAY_HOST,
        port=settings.deployment.RELAY_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
