#!/usr/bin/env python3
"""
toolrelay server launcher
Runs the FastAPI chat API under uvicorn; backends are probed on startup
"""
import os
import sys

# Fix encoding issues on servers with ASCII locale
os.environ.setdefault('PYTHONIOENCODING', 'utf-8')
os.environ.setdefault('LANG', 'en_US.UTF-8')
os.environ.setdefault('LC_ALL', 'en_US.UTF-8')

import logging
import uvicorn
from toolrelay.config import settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    logger.info("Starting toolrelay server...")
    logger.info(f"Python {sys.version}, encoding={sys.getdefaultencoding()}")
    logger.info(f"HTTP API will run on http://{settings.api_host}:{settings.api_port}")
    logger.info(f"Tool backends: {', '.join(f'{i}={u}' for i, u in settings.backend_list())}")

    uvicorn.run(
        "toolrelay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
