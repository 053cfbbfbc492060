"""Run-scoped context shared by the pipeline components.

A RunContext is created once at startup and passed explicitly to the fetch
engine, the crawl scheduler and the outcome store. It carries the loaded
configuration, the package logger and the error classifier so components do
not reach for process globals.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from unitsync.core.errors import ErrorClassifier

if TYPE_CHECKING:
    from unitsync.config import AppConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure root logging once and return the package logger."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    package_logger = logging.getLogger("unitsync")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return package_logger


@dataclass
class RunContext:
    """Config, logger and error classifier for one run."""

    config: Optional["AppConfig"] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("unitsync"))
    classifier: ErrorClassifier = field(default_factory=ErrorClassifier)

    @classmethod
    def create(cls, config: "AppConfig") -> "RunContext":
        """Build the context for a run and configure logging from the config."""
        return cls(config=config, logger=setup_logging(config.log_level))

    def close(self) -> None:
        """Flush log handlers at the end of a run."""
        for handler in self.logger.handlers + logging.getLogger().handlers:
            handler.flush()
