import logging
import json
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

from .error_handler import mask_credential

FAILURE_LOGGER_NAME = "account_rotator.failures"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.msg if isinstance(record.msg, dict) else record.getMessage(),
        }
        return json.dumps(log_record)


def setup_failure_logger(log_dir: Optional[str] = None):
    """Sets up a dedicated JSON logger for failed credential refreshes."""
    logger = logging.getLogger(FAILURE_LOGGER_NAME)

    # Add handler only if it hasn't been added before
    if any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        return logger

    log_dir = log_dir or os.getenv("ROTATOR_LOG_DIR", "logs")
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    logger.setLevel(logging.INFO)

    # Keep failure records out of the library log
    logger.propagate = False

    # Use a rotating file handler to keep log files from growing too large
    handler = RotatingFileHandler(
        os.path.join(log_dir, "failures.log"),
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=2,
    )
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    return logger


def log_refresh_failure(
    account_name: str,
    refresh_token: Optional[str],
    status_code: Optional[int],
    attempt: int,
    error: Optional[Exception] = None,
    response_text: Optional[str] = None,
):
    """Logs a structured record for a failed refresh exchange."""
    failure_logger = setup_failure_logger()

    log_data = {
        "account": account_name,
        "refresh_token": mask_credential(refresh_token),
        "status_code": status_code,
        "attempt_number": attempt,
        "error_type": type(error).__name__ if error else None,
        "error_message": str(error) if error else None,
        "raw_response": response_text,
    }
    failure_logger.error(log_data)
