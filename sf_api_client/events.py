"""
Structured log events for the Salesforce API client.

Events go to the ``sf_api_client`` logger; the payload is attached to the
record as ``sf_event`` so handlers can serialize it however they like.
"""

import logging
from typing import Any


logger = logging.getLogger("sf_api_client")


def log_event(level: int, message: str, debug: bool = True, **fields: Any) -> None:
    """
    Emit an event.

    Info and debug events are dropped unless ``debug`` is set; warnings and
    errors are always emitted.
    """
    if level < logging.WARNING and not debug:
        return
    logger.log(level, f"[SF] {message}", extra={"sf_event": fields})
