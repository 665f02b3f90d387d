"""
Entry point: python -m clinic
"""

import uvicorn

from .config import config


def main():
    uvicorn.run(
        "clinic.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=config.web.reload,
        log_level=config.web.log_level
    )


if __name__ == "__main__":
    main()
