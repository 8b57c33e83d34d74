"""
Claimflow: сервис автоматизаций досок.

Точка входа приложения.
"""

import asyncio
import sys

import uvicorn
from loguru import logger

from claimflow.api import create_app
from claimflow.automation import get_storage
from claimflow.config import load_overrides, settings


def setup_logging() -> None:
    """Настраивает логирование."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level,
    )


async def main() -> None:
    """Точка входа."""
    setup_logging()

    # Загружаем config overrides из {data_dir}/config_overrides.json
    load_overrides()

    logger.info("Starting Claimflow automation service")
    logger.info(f"Timezone: {settings.get_timezone()}, database: {settings.db_path}")

    storage = get_storage()

    api_app = create_app(storage)
    api_config = uvicorn.Config(
        api_app, host=settings.api_host, port=settings.api_port, log_level="warning"
    )
    api_server = uvicorn.Server(api_config)

    logger.info(f"HTTP API listening on {settings.api_host}:{settings.api_port}")
    try:
        await api_server.serve()
    finally:
        await storage.close()
        logger.info("Claimflow stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
