#!/usr/bin/env python3
"""Launch the being-better REST backend.

Usage:
    python -m being_better.scripts.run_server

Serves /api/* on SERVER_HOST:SERVER_PORT (default 0.0.0.0:8787) and runs the
push reminder loop in the same event loop.
"""

from __future__ import annotations

import logging

import uvicorn

from being_better.config.settings import SERVER_HOST, SERVER_PORT

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run_server")


def main() -> None:
    logger.info("Starting being-better server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("being_better.server:app", host=SERVER_HOST, port=SERVER_PORT, log_level="info")


if __name__ == "__main__":
    main()
