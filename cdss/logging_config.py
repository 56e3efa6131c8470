"""
Logging setup for hosts embedding the CDSS core.
The core itself only ever calls logging.getLogger(__name__).
"""

import logging
from typing import Optional

from cdss.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the host process

    Args:
        level: Logging level name, defaults to settings.log_level
    """
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name),
        format=LOG_FORMAT,
        force=True
    )
    logging.getLogger(__name__).debug(f"Logging configured at {level_name}")
