"""Run the API with uvicorn: ``python -m app``."""

from __future__ import annotations

import uvicorn

from app.config import load_config
from app.logging_setup import configure_logging


def main() -> None:
    configure_logging()
    config = load_config()
    uvicorn.run("app.main:create_app", factory=True, host="0.0.0.0", port=config.port, log_config=None)


if __name__ == "__main__":
    main()
