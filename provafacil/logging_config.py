"""
Logging setup for ProvaFácil.

Modules log through ``logging.getLogger(__name__)``; the CLI calls
``configure_logging`` once to attach a Rich console handler to the
package logger.
"""

import logging

from rich.logging import RichHandler

PACKAGE_LOGGER = "provafacil"


def configure_logging(level: str = "INFO", verbose: bool = False) -> logging.Logger:
    """
    Configure the package logger.

    Calling this more than once only updates the level, so repeated CLI
    invocations inside one process don't stack handlers.

    Args:
        level: Base logging level name.
        verbose: Force DEBUG level regardless of ``level``.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else level.upper())

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)

    return logger
