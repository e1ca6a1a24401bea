"""
Logging configuration — console handler, human-readable or JSON.
"""
import logging
import sys

from pythonjsonlogger import jsonlogger

from comment_classifier.training.config import LOG_JSON, LOG_LEVEL

HUMAN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class ClassifierJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = record.created
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno


def setup_logging(level: str = LOG_LEVEL, json_format: bool = LOG_JSON) -> logging.Logger:
    """Configure the root logger; replaces any handlers already installed."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(ClassifierJsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(HUMAN_FORMAT))
    root_logger.addHandler(handler)

    # uvicorn access lines are noise next to training progress
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return root_logger
