"""
Configure the ``slimemold`` loggers.

Console and file output are driven by the ``logging`` section of the run
config (see ``LoggingConfig``). Modules log through
``logging.getLogger(__name__)`` and inherit the namespace level set here.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_NAMESPACE = "slimemold"


def _coerce_level(value: Any) -> int:
    """
    Return a valid logging level from either a string or an integer.
    Defaults to logging.INFO when the input is not recognised.
    """
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = getattr(logging, value.upper(), None)
        if isinstance(level, int):
            return level
    return logging.INFO


def configure_logging(settings: Any = None, project_root: Optional[str | Path] = None) -> Optional[Path]:
    """
    Configure Python logging from a ``LoggingConfig`` or a plain mapping.

    Supported keys:
    - enabled (bool): write a timestamped log file under ``log_dir`` (default: False)
    - level (str|int): console level (default: "INFO" when enabled, else "WARNING")
    - file_level (str|int): level for the persisted log (default: level)
    - to_console (bool): echo logs to stderr (default: True)
    - log_dir (str): directory for log files, relative to ``project_root``

    Returns the log file path when file logging is enabled.
    """
    if settings is None:
        settings = {}
    elif is_dataclass(settings):
        settings = asdict(settings)
    settings = dict(settings)

    enabled = bool(settings.get("enabled", False))
    console_level = _coerce_level(settings.get("level", "INFO" if enabled else "WARNING"))
    file_level = _coerce_level(settings.get("file_level", settings.get("level", "WARNING")))

    handlers: list[logging.Handler] = []
    if settings.get("to_console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level)
        handlers.append(console_handler)

    log_path = None
    if enabled:
        root = Path(project_root).resolve() if project_root else Path.cwd()
        log_dir = root / settings.get("log_dir", "logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"{LOG_NAMESPACE}_{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(file_level)
        handlers.append(file_handler)

    if not handlers:
        null_handler = logging.NullHandler()
        null_handler.setLevel(console_level)
        handlers.append(null_handler)

    effective_level = min(handler.level for handler in handlers)
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=effective_level, handlers=handlers, force=True)
    logging.getLogger(LOG_NAMESPACE).setLevel(effective_level)
    return log_path
