#!/usr/bin/env python3
"""
Lending Core Entry Point

Starts the FastAPI server on the configured host and port
(LENDING_API_HOST / LENDING_API_PORT, default 0.0.0.0:8090).
"""

import sys

from lending_core.api import run_server
from lending_core.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Lending Core...")
    print(f"Database: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Lending Core...")
