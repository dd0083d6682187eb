"""
Logging configuration for semantic-store.

All output goes to stderr: stdout carries the MCP stdio transport.
"""

import logging
import os
import sys

LOGGER_NAME = "semantic_store"
LOG_FORMAT = "[semantic-store] %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool | None = None) -> logging.Handler:
    """Attach a single stderr handler to the package logger.

    Args:
        verbose: DEBUG when True, INFO when False. Defaults to the
            ``SEMANTIC_STORE_VERBOSE`` environment variable.

    Returns:
        The installed (or already present) handler.
    """
    if verbose is None:
        verbose = os.environ.get("SEMANTIC_STORE_VERBOSE", "").strip().lower() in {"1", "true", "yes", "on"}
    level = logging.DEBUG if verbose else logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            handler.setLevel(level)
            return handler

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    # Keep third-party noise out of the stdio session
    for name in ("lancedb", "urllib3", "httpx", "google_genai"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
