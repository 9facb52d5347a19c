"""
Entry point for running hostly via `python -m hostly`.

Starts the FastAPI server with uvicorn.
"""

import uvicorn

from .config import config


def main():
    """Run the hostly server."""
    uvicorn.run(
        "hostly.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
