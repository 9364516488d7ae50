"""Logging helpers.

Every module logs under the ``scenario_sync`` namespace, which is silent until
an application calls ``configure_logging`` (or passes ``configure_logs=True``
to ``ScenarioEditor``).
"""

import logging
import sys
from typing import Any

ROOT_LOGGER = "scenario_sync"

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Attach a handler to the package logger.

    Calling it again swaps the handler rather than adding a second one.

    Args:
        level: Level name or number; unknown names fall back to INFO.
        format_string: Record format. Defaults to ``DEFAULT_FORMAT``.
        handler: Target handler. Defaults to a stdout stream handler.

    Returns:
        The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = handler or logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))

    package_logger = logging.getLogger(ROOT_LOGGER)
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger for one component, e.g. ``get_logger("store")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class StructuredLogger:
    """Component logger that appends ``key=value`` pairs to each message.

    Example:
        log = StructuredLogger("protocol")
        log.info("Scenario saved", scenario_id="65f0c2")
        # Scenario saved | scenario_id=65f0c2

        save_log = log.bind(operation="save")
        save_log.error("Remote call failed", status=503)
    """

    def __init__(self, name: str, **context: Any):
        self._name = name
        self._logger = get_logger(name)
        self._context: dict[str, Any] = dict(context)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **context: Any) -> "StructuredLogger":
        """New logger for the same component with extra context."""
        return StructuredLogger(self._name, **{**self._context, **context})

    def _render(self, message: str, fields: dict[str, Any]) -> str:
        pairs = {**self._context, **fields}
        if not pairs:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in pairs.items() if value is not None)
        return f"{message} | {rendered}" if rendered else message

    def debug(self, message: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(self._render(message, fields))

    def info(self, message: str, **fields: Any) -> None:
        self._logger.info(self._render(message, fields))

    def warning(self, message: str, **fields: Any) -> None:
        self._logger.warning(self._render(message, fields))

    def error(self, message: str, **fields: Any) -> None:
        self._logger.error(self._render(message, fields))

    def exception(self, message: str, **fields: Any) -> None:
        self._logger.exception(self._render(message, fields))
