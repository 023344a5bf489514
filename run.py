#!/usr/bin/env python3
"""
Startup script for the Strava Dash API.
This script provides an easy way to run the application with different configurations.
"""

import argparse
import sys
from pathlib import Path

# Add the project directory to Python path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="Run the Strava Dash API")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Log level (default: info)"
    )

    args = parser.parse_args()

    if not Path(".env").exists():
        print("No .env file found, reading STRAVA_* settings from the environment only.")

    # Token storage lives under data/
    Path("data").mkdir(parents=True, exist_ok=True)

    print("Starting Strava Dash...")
    print(f"Server will be available at: http://{args.host}:{args.port}")
    print(f"Log in with Strava: http://{args.host}:{args.port}/api/v1/auth/login")
    print(f"API Documentation: http://{args.host}:{args.port}/docs")
    print()

    # A single worker: the in-flight token refresh is shared within one process
    import uvicorn
    try:
        uvicorn.run(
            "stravadash.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
            log_level=args.log_level,
            access_log=True
        )
    except KeyboardInterrupt:
        print("\nShutting down Strava Dash...")


if __name__ == "__main__":
    main()
