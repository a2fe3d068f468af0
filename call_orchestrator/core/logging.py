"""
Logging configuration for the Call Orchestrator
"""

import logging
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    from .config import settings

    log_level = level or settings.log_level

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Twilio's HTTP client logs full request bodies at INFO
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)

    logger = logging.getLogger("call_orchestrator")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module

    Args:
        name: Name of the module

    Returns:
        Logger instance
    """
    if name.startswith("call_orchestrator"):
        return logging.getLogger(name)
    return logging.getLogger(f"call_orchestrator.{name}")


def mask_phone(phone_number: Optional[str]) -> str:
    """Mask a phone number down to its last four digits for log output"""
    if not phone_number:
        return "<none>"
    return f"***{phone_number[-4:]}"
