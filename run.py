"""Run the hostly service."""

import uvicorn

from hostly.config import config

if __name__ == "__main__":
    uvicorn.run(
        "hostly.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )
