#!/usr/bin/env python3
"""
Presale Admin - Entry Point
===========================
One-command startup for the presale admin backend.

Usage:
    python app.py              # Start with default settings
    python app.py --port 9000  # Start on custom port

This script:
    1. Loads environment variables from .env (database URL, secrets)
    2. Loads configuration from config.yaml and the environment
    3. Configures logging
    4. Starts the uvicorn server with the FastAPI application factory

Required environment:
    DATABASE_URL    MongoDB connection string
    ADMIN_PASSWORD  Admin bootstrap password (min 8 characters)
    JWT_SECRET      Token signing key
"""

import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def main():
    """Parse arguments, load config, and start the web server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        description="Presale Admin - presale website backend",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port number (overrides config.yaml and PORT)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides config.yaml and HOST)",
    )
    parser.add_argument(
        "--log-level", type=str, default="info",
        choices=["debug", "info", "warning", "error"],
    )
    args = parser.parse_args()

    project_dir = os.path.dirname(os.path.abspath(__file__))

    # -- Load environment variables from .env ----------------------------------
    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    # -- Load configuration to get web server settings -------------------------
    from presale.config import ConfigManager
    config = ConfigManager(project_dir).load()

    host = args.host or config["web"]["host"]
    port = args.port or config["web"]["port"]

    logging.getLogger("presale").info("Presale Admin listening on http://%s:%s", host, port)

    # -- Start the web server --------------------------------------------------
    uvicorn.run(
        "presale.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
