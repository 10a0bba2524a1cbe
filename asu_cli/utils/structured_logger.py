"""
JSON-lines event log for build sessions.

Every record is one JSON object per line carrying the event name, its level,
a timestamp, the session context and the event's own fields. The same events
are mirrored to the standard `asu_cli.events` logger as `[event] key=value`.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Optional

from asu_cli.models.events import BuildTask


class StructuredLogger:
    """
    Writes build events to `<log_dir>/asu_cli_<timestamp>.jsonl`.

    Usage:
        with StructuredLogger("asu_cli.events", log_dir=Path("logs")) as events:
            events.info("image_downloaded",
                        target="ath79/generic",
                        profile="tplink_archer-c7-v5",
                        image="openwrt-...-sysupgrade.bin",
                        size_bytes=6291456)

    Without a `log_dir` nothing is written to disk and only the mirror
    logger sees the events.
    """

    def __init__(self, name: str, log_dir: Optional[Path] = None, mirror: bool = True):
        self._logger = logging.getLogger(name)
        self.mirror = mirror
        self.json_log_path: Optional[Path] = None
        self._file: Optional[IO[str]] = None
        self._context: dict[str, Any] = {"session_id": f"{os.getpid()}-{id(self):x}"}

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"asu_cli_{stamp}.jsonl"
            self._file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

    def set_session_context(self, **fields) -> None:
        """Adds fields repeated on every following record."""
        self._context.update(fields)

    def _write(self, level: int, event: str, fields: dict[str, Any]) -> None:
        if self._file is None or self._file.closed:
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
            **self._context,
            **fields,
        }
        try:
            self._file.write(json.dumps(record, default=str) + "\n")
            self._file.flush()
        except (OSError, ValueError) as e:
            print(f"Event log write failed: {e}", file=sys.stderr)

    def record(self, level: int, event: str, **fields) -> None:
        """Writes an event to the JSON log only, without the mirror logger."""
        self._write(level, event, fields)

    def _log(self, level: int, event: str, **fields) -> None:
        if self.mirror and self._logger.isEnabledFor(level):
            details = " ".join(f"{k}={v}" for k, v in fields.items())
            self._logger.log(level, f"[{event}] {details}".rstrip())
        self._write(level, event, fields)

    def debug(self, event: str, **fields) -> None:
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields) -> None:
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields) -> None:
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields) -> None:
        self._log(logging.ERROR, event, **fields)

    def close(self) -> None:
        if self._file is not None and not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TaskLogger:
    """Specialized logger for build task and session events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def close(self) -> None:
        self.logger.close()

    def session_started(self, server: str, task_count: int, output_dir: str):
        self.logger.set_session_context(server=server)
        self.logger.info(
            "session_started",
            server=server,
            task_count=task_count,
            output_dir=output_dir,
        )

    def task_started(self, task: BuildTask):
        self.logger.debug(
            "task_started",
            target=task.target,
            profile=task.profile,
            version=task.version,
            package_count=len(task.packages),
        )

    def task_progress(self, task: BuildTask, status: str):
        self.logger.debug(
            "task_progress",
            target=task.target,
            profile=task.profile,
            state=task.state.name,
            status=status,
        )

    def image_downloaded(self, task: BuildTask, image: str, size_bytes: int):
        self.logger.info(
            "image_downloaded",
            target=task.target,
            profile=task.profile,
            image=image,
            size_bytes=size_bytes,
        )

    def task_completed(self, task: BuildTask, image_prefix: str):
        self.logger.info(
            "task_completed",
            target=task.target,
            profile=task.profile,
            image_prefix=image_prefix,
        )

    def task_failed(self, task: BuildTask, error: Exception, canceled: bool):
        fields = {
            "target": task.target,
            "profile": task.profile,
            "error": str(error),
            "error_type": type(error).__name__,
        }
        if canceled:
            self.logger.debug("task_canceled", **fields)
        else:
            # Not mirrored: the orchestrator logs failures itself.
            self.logger.record(logging.ERROR, "task_failed", **fields)

    def session_completed(
        self, duration_s: float, succeeded: int, failed: int, canceled: int
    ):
        self.logger.info(
            "session_completed",
            duration_s=round(duration_s, 2),
            tasks_succeeded=succeeded,
            tasks_failed=failed,
            tasks_canceled=canceled,
        )


def create_task_logger(log_dir: Optional[Path] = None) -> TaskLogger:
    """
    Create the task logger. Console output goes through the standard
    'asu_cli' logger; a JSON-lines file is written only when `log_dir` is set.
    """
    base = StructuredLogger("asu_cli.events", log_dir=log_dir)
    return TaskLogger(base)
