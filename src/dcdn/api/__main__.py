# src/dcdn/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from dcdn.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so DCDN_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from dcdn.api.app import create_app
    from dcdn.api.structured_logging import configure_structured_logging

    configure_structured_logging()

    host = os.getenv("DCDN_API_HOST", "127.0.0.1")
    port = int(os.getenv("DCDN_API_PORT", "8080"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
