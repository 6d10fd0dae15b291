"""PayloadLink protocol engine package initialisation."""

__version__ = "0.3.0"

import logging

logger = logging.getLogger(__name__)
