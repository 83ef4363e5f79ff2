"""
asgi.py -- Process entry point for authgate.

Run with:  uvicorn asgi:app --reload
           authgate-server            (console script, see pyproject.toml)
"""

import uvicorn

from api.main import app
from core.config import get_settings

__all__ = ["app", "main"]


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
