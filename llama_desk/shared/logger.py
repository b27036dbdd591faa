import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Logger:
    """Utility class for standardized logging configuration."""

    @staticmethod
    def get(name: str) -> logging.Logger:
        """
        Get a standardized logger for the application.
        Configures logging once, at the level named by LLAMA_DESK_LOG_LEVEL (default INFO).
        """
        if not logging.getLogger().hasHandlers():
            level = os.environ.get("LLAMA_DESK_LOG_LEVEL", "INFO").upper()
            logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
        return logging.getLogger(name)
