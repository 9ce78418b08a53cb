# File: callscrub/core/config/logging.py

import logging
import os
import re

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_DIGIT = re.compile(r"\d")


def configure_logging(level: str = None) -> None:
    """
    Installs a console handler for operator entry points.
    Library modules only ever call logging.getLogger(__name__).
    """
    level_name = (level or os.getenv("CALLSCRUB_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


def mask_digits(text: str) -> str:
    """'123-45-6789' -> '***-**-****' so matches can be logged safely."""
    return _DIGIT.sub("*", text)
