"""
Logging setup for applications embedding convo_rl.

Library modules only call ``logging.getLogger(__name__)`` and attach
conversation context through ``extra=structured(...)``. The application
decides where records go by calling ``configure_logging`` once:

- console: colored one-line records on stderr
- ``<log_dir>/convo_rl.log``: the same lines without colors, rotated
- ``<log_dir>/convo_rl.json.log``: one JSON object per record, rotated

Decision records carry the conversation id, turn, action type and reward,
so the JSON log can be replayed to audit what a policy chose and why.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

HUMAN_LOG_NAME = "convo_rl.log"
JSON_LOG_NAME = "convo_rl.json.log"

# (record attribute, JSON key) for the optional conversation fields
RECORD_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("subsystem", "subsystem"),
    ("convo_id", "convo_id"),
    ("turn", "turn"),
    ("event_type", "event"),
    ("action_type", "action_type"),
    ("reward", "reward"),
)


def structured(
    convo_id: Optional[str] = None,
    turn: Optional[int] = None,
    subsystem: str = "general",
    event_type: Optional[str] = None,
    action_type: Optional[str] = None,
    reward: Optional[float] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build the ``extra=`` mapping for a log call.

    Keyword arguments beyond the named fields end up as top-level keys of
    the JSON record.

    Example:
        >>> logger.info("Action selected", extra=structured(convo_id="c1", action_type="confirm"))
    """
    return {
        "convo_id": convo_id,
        "turn": turn,
        "subsystem": subsystem,
        "event_type": event_type,
        "action_type": action_type,
        "reward": reward,
        "extra_data": extra,
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record; unset conversation fields are omitted."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr, key in RECORD_FIELDS:
            value = getattr(record, attr, None)
            if value is not None and value != "":
                entry[key] = value
        entry.update(getattr(record, "extra_data", None) or {})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    ``HH:MM:SS.mmm LEVL [subsystem] convo=<id> turn=<n>: message``

    Decision records get ``action=<type>`` and ``reward=<+x.xxx>`` appended.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    CONVO_ID_WIDTH = 12

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def _context_tags(self, record: logging.LogRecord) -> List[str]:
        tags = []
        subsystem = getattr(record, "subsystem", "general")
        if subsystem and subsystem != "general":
            tags.append(f"[{subsystem}]")
        convo_id = getattr(record, "convo_id", None)
        if convo_id:
            tags.append(f"convo={convo_id[:self.CONVO_ID_WIDTH]}")
        turn = getattr(record, "turn", None)
        if turn is not None:
            tags.append(f"turn={turn}")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        head = " ".join([clock, record.levelname[:4]] + self._context_tags(record))

        body = record.getMessage()
        action_type = getattr(record, "action_type", None)
        if action_type:
            body += f" action={action_type}"
        reward = getattr(record, "reward", None)
        if reward is not None:
            body += f" reward={reward:+.3f}"

        line = f"{head}: {body}"
        if self.use_colors and sys.stderr.isatty():
            line = self.LEVEL_COLORS.get(record.levelno, "") + line + self.RESET
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger with shortcuts for lifecycle events and policy decisions."""

    def event(self, event_type: str, msg: str, **kwargs: Any) -> None:
        """Log a lifecycle event (reset, outcome, violation...) at INFO."""
        if self.isEnabledFor(logging.INFO):
            self._log(logging.INFO, msg, (), extra=structured(event_type=event_type, **kwargs))

    def decision(
        self,
        action_type: str,
        msg: str = "Action selected",
        reward: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        """Log a policy decision, or the reward credited to one, at DEBUG."""
        if not self.isEnabledFor(logging.DEBUG):
            return
        kwargs.setdefault("subsystem", "policy")
        self._log(
            logging.DEBUG,
            msg,
            (),
            extra=structured(event_type="decision", action_type=action_type, reward=reward, **kwargs),
        )


def _rotating(
    path: Path,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    json_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Install convo_rl's handlers on the root logger, replacing existing ones.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotated log files; console only when None
        json_file: JSON log file name or path, relative paths resolve in log_dir
        max_bytes: Rotation size of each file
        backup_count: Rotated files kept per log
    """
    logging.setLoggerClass(StructuredLogger)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root.addHandler(console)

    if not log_dir:
        return

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    json_path = directory / (json_file or JSON_LOG_NAME)

    root.addHandler(_rotating(
        directory / HUMAN_LOG_NAME, HumanFormatter(use_colors=False), max_bytes, backup_count,
    ))
    root.addHandler(_rotating(json_path, JSONFormatter(), max_bytes, backup_count))


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Loggers are StructuredLogger instances once ``configure_logging`` (or
    ``logging.setLoggerClass(StructuredLogger)``) ran before their creation.
    """
    return logging.getLogger(name)  # type: ignore[return-value]
