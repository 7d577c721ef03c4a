# logger.py
import logging
import os
from typing import Tuple

from pythonjsonlogger import jsonlogger


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class Logger(logging.LoggerAdapter):
    """Process-wide JSON logger; keyword arguments become structured fields.

    ``logger.info("forwarding", attempt=2)`` emits ``{"message": ..., "attempt": 2}``.
    """

    _instance = None
    _initialized = False

    def __new__(cls) -> "Logger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if Logger._initialized:
            return
        log_level = LOG_LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "log_level"},
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        base = logging.getLogger("chatwidget")
        base.setLevel(log_level)
        base.addHandler(handler)
        base.propagate = False

        super().__init__(base)
        Logger._initialized = True

    def process(self, msg: str, kwargs: dict) -> Tuple[str, dict]:
        # everything that is not a logging keyword goes into ``extra``
        result_kwargs = {}
        for key in ("exc_info", "stack_info", "stacklevel"):
            if key in kwargs:
                result_kwargs[key] = kwargs.pop(key)
        if kwargs:
            result_kwargs["extra"] = kwargs
        return msg, result_kwargs


logger = Logger()
