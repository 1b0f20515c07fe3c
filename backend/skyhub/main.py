"""
Main entry point for the Skyhub service.

Runs the FastAPI application with uvicorn:
    python -m skyhub.main
"""

import logging

import uvicorn

from .app import create_app
from .config import SkyhubConfig


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    config = SkyhubConfig.from_env()
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
