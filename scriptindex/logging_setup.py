# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Root logger configuration shared by the CLI and the admin API."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logging(config: Config) -> None:
    """Configure the root logger from ``server.log_level`` / ``server.log_file``."""
    level = getattr(logging, str(config.log_level).upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=3)
        )

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # GitPython and the HTTP clients are chatty at DEBUG
    for noisy in ("git", "urllib3", "botocore", "httpx", "openai"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
