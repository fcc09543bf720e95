"""
Entry point for running the command API.

Usage:
    python -m command_api

Serves on BUDDY_API_HOST:BUDDY_API_PORT (default http://127.0.0.1:8765).
"""
import uvicorn

from intent_pipeline.config import get_config, load_local_env
from logging_setup import setup_logging

if __name__ == "__main__":
    load_local_env()
    config = get_config()

    setup_logging(level=config.log_level, use_json=True)

    uvicorn.run(
        "command_api.server:app",
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    )
