"""
API Server Runner

Entry point for running the enrichment API with uvicorn after loading the
environment and configuring logging.
"""

import argparse
import logging
import os
import sys
import traceback

import uvicorn
from dotenv import load_dotenv

from src.utils.logging_setup import setup_logging

logger = logging.getLogger("api_runner")


def parse_arguments():
    """Parse command line arguments for the API server."""
    parser = argparse.ArgumentParser(description="Run the Email Enrichment API server")

    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind the server to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind the server to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--env",
        type=str,
        choices=["development", "testing", "production"],
        default=None,
        help="Environment to run in (default: ENVIRONMENT or development)"
    )

    return parser.parse_args()


def main():
    """Load configuration and run the API server."""
    load_dotenv()
    args = parse_arguments()

    env = args.env or os.getenv("ENVIRONMENT", "development")
    os.environ["ENVIRONMENT"] = env

    setup_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE", "logs/enrichment.log"))

    logger.info(f"Starting API server in {env} mode")
    logger.info(f"Server will be available at http://{args.host}:{args.port}")

    uvicorn.run(
        "api.main:create_application",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info" if env == "production" else "debug"
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error running server: {str(e)}")
        logger.error(traceback.format_exc())
        sys.exit(1)
