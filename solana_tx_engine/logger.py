import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import LoggingSettings

ROOT_LOGGER_NAME = "solana_tx_engine"

NOISY_LOGGERS = ("httpx", "httpcore", "aiohttp", "asyncio")


class EngineLogger:
    def __init__(self, settings: LoggingSettings):
        self.settings = settings
        self.logger: Optional[logging.Logger] = None

    def setup(self) -> logging.Logger:
        engine_logger = logging.getLogger(ROOT_LOGGER_NAME)
        engine_logger.setLevel(getattr(logging, self.settings.level.value))

        engine_logger.handlers.clear()

        formatter = logging.Formatter(self.settings.format, datefmt=self.settings.date_format)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        engine_logger.addHandler(console_handler)

        if self.settings.file_enabled:
            log_path = self.settings.file_path
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=self.settings.file_max_bytes,
                backupCount=self.settings.file_backup_count,
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            engine_logger.addHandler(file_handler)

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        self.logger = engine_logger
        return engine_logger


def setup_logging(settings: Optional[LoggingSettings] = None) -> logging.Logger:
    return EngineLogger(settings or LoggingSettings()).setup()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
