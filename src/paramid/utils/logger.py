#########################################################################################
##
##                                  LOGGER MANAGER
##                                (utils/logger.py)
##
##         Central place for configuring the ``paramid`` logger hierarchy.
##         The library itself only emits records; handlers are opt-in.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import logging
import os
import sys
import threading


# CONSTANTS =============================================================================

ROOT_LOGGER_NAME = "paramid"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def _parse_level(level, default=logging.WARNING):
    """Return a numeric logging level from an int, a name or ``None``."""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    return _LEVELS.get(str(level).strip().upper(), default)


# CLASS =================================================================================

class LoggerManager:
    """Singleton that owns the ``paramid`` logger hierarchy.

    All modules obtain their logger via ``LoggerManager().get_logger(name)``,
    which returns a child of the ``paramid`` root logger. By default the root
    only carries a ``NullHandler`` so that embedding hosts stay in control of
    output. Call :meth:`configure` to attach a stream handler.

    The environment variable ``PARAMID_LOG_LEVEL`` sets the initial level
    (e.g. ``DEBUG`` or ``INFO``).

    Example
    -------
    .. code-block:: python

        from paramid import LoggerManager

        LoggerManager().configure(level="INFO")
        log = LoggerManager().get_logger("optimizer")
        log.info("restart %d finished", 3)
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._initialized = False
                cls._instance = instance
        return cls._instance


    def __init__(self):
        if self._initialized:
            return

        self._root = logging.getLogger(ROOT_LOGGER_NAME)
        self._root.addHandler(logging.NullHandler())
        self._root.setLevel(_parse_level(os.environ.get("PARAMID_LOG_LEVEL")))
        self._handler = None
        self._initialized = True


    @property
    def root(self) -> logging.Logger:
        """The ``paramid`` root logger."""
        return self._root


    def get_logger(self, name: str) -> logging.Logger:
        """Return the child logger ``paramid.<name>``.

        Names that already start with ``paramid`` (e.g. ``__name__`` of a
        package module) are used unchanged.
        """
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            return logging.getLogger(name)
        return self._root.getChild(name)


    def configure(self, level="INFO", stream=None, fmt=DEFAULT_FORMAT,
                  date_format=DEFAULT_DATE_FORMAT) -> logging.Logger:
        """Attach (or replace) a stream handler on the root logger.

        Parameters
        ----------
        level : int or str
            Logging level for the root logger and the handler.
        stream : file-like, optional
            Output stream; defaults to ``sys.stderr``.
        fmt : str
            Record format string.
        date_format : str
            Timestamp format string.

        Returns
        -------
        logging.Logger
            The configured root logger.
        """
        lvl = _parse_level(level, logging.INFO)

        if self._handler is not None:
            self._root.removeHandler(self._handler)

        handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setLevel(lvl)
        handler.setFormatter(logging.Formatter(fmt, datefmt=date_format))

        self._root.addHandler(handler)
        self._root.setLevel(lvl)
        self._handler = handler
        return self._root


    def set_level(self, level) -> None:
        """Change the level of the root logger (and handler, if configured)."""
        lvl = _parse_level(level, logging.INFO)
        self._root.setLevel(lvl)
        if self._handler is not None:
            self._handler.setLevel(lvl)


    def disable(self) -> None:
        """Remove the stream handler installed by :meth:`configure`."""
        if self._handler is not None:
            self._root.removeHandler(self._handler)
            self._handler = None
