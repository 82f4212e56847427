"""
Run the half-stats API under uvicorn: python -m api.service
PORT, when set by the platform, wins over LS_API_PORT.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=int(os.environ.get("PORT", settings.api_port)),
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        access_log=False,  # RequestContextMiddleware logs requests
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
