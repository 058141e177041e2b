"""Main entry point for Agora Commons."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from agora.api import create_fastapi_app
from agora.logging_config import setup_logging


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    setup_logging()

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))

    # Create FastAPI app
    app = create_fastapi_app()

    # Run with uvicorn
    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        log_config=None,  # keep the JSON logging set up above
    )


if __name__ == "__main__":
    main()
