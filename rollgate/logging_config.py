"""
Logging configuration for the rollgate CLI
"""

import logging
import logging.config
from typing import Any, Dict


class ExternalNoiseFilter(logging.Filter):
    """Filter to drop kubectl deprecation chatter from forwarded stderr."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "Warning:" in message and "deprecated" in message:
            return False
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration for the rollgate logger hierarchy."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "external_noise_filter": {
                "()": ExternalNoiseFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
                "filters": ["external_noise_filter"]
            }
        },
        "loggers": {
            "rollgate": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            }
        },
        "root": {
            "level": "WARNING",
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(get_logging_config(level))
