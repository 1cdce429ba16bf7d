"""Application failure logging."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import LoggerConfig

LOG_FILENAME = "froq.log"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class AppLogger:
    """Thin wrapper over a named :mod:`logging` logger.

    ``level`` and ``directory`` mirror the ``logger`` config section; when a
    directory is set, records are also written to ``<directory>/froq.log``.
    """

    def __init__(self, config: LoggerConfig | None = None, *, name: str = "froq.app") -> None:
        self._logger = logging.getLogger(name)
        self._file_handler: logging.FileHandler | None = None
        self.configure(config or LoggerConfig())

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def directory(self) -> Path | None:
        if self._file_handler is None:
            return None
        return Path(self._file_handler.baseFilename).parent

    def configure(self, config: LoggerConfig) -> None:
        self.set_level(config.level)
        self.set_directory(config.directory)

    def set_level(self, level: str | int) -> None:
        if isinstance(level, str):
            resolved = logging.getLevelName(level.upper())
            if not isinstance(resolved, int):
                raise ValueError(f"Unknown log level: {level!r}")
            level = resolved
        self._logger.setLevel(level)

    def set_directory(self, directory: str | Path | None) -> None:
        if self._file_handler is not None:
            self._logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None
        if directory is None:
            return
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path / LOG_FILENAME, encoding="utf-8")
        handler.setFormatter(logging.Formatter(_FORMAT))
        self._logger.addHandler(handler)
        self._file_handler = handler

    def log_failure(self, error: BaseException) -> None:
        """Record ``error`` with its traceback at error level."""

        self._logger.error(
            "%s: %s",
            type(error).__name__,
            error,
            exc_info=(type(error), error, error.__traceback__),
        )

    def warning(self, message: str, *args: object) -> None:
        self._logger.warning(message, *args)

    def close(self) -> None:
        self.set_directory(None)


__all__ = ["AppLogger", "LOG_FILENAME"]
