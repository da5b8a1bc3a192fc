"""
Structured logging system for better log analysis and debugging.
Provides JSON-formatted logs with context and metadata.
"""

import json
import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Enhanced logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("nexus_bridge", log_dir=Path("logs"))
        logger.info("package_installed",
                    package="SkyUI",
                    folder="SkyUI-12604-35407",
                    files=42)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = False,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Mirror events to the standard logger
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)
        self._write_lock = threading.Lock()

        self._json_file = None
        self.json_log_path: Path | None = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"nexus_bridge_{timestamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        """Format message for console output."""
        parts = [f"[{event}]"]
        for key, value in context.items():
            parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        """Write structured log entry to JSON file."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            "thread": threading.current_thread().name,
            **self._session_context,
            **context,
        }

        with self._write_lock:
            if not self._json_file or self._json_file.closed:
                return
            try:
                self._json_file.write(json.dumps(entry, default=str) + "\n")
                self._json_file.flush()
            except OSError as e:
                print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        """Log debug event."""
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        """Log info event."""
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        """Log warning event."""
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        """Log error event."""
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        with self._write_lock:
            if self._json_file and not self._json_file.closed:
                self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class PackageLogger:
    """Specialized logger for per-package pipeline events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def download_started(self, index: int, name: str, attempt: int):
        """Log package download started."""
        self.logger.info(
            "package_download_started", index=index, package=name, attempt=attempt
        )

    def download_completed(self, index: int, name: str, size_bytes: int, duration_s: float):
        """Log package download completed."""
        self.logger.info(
            "package_download_completed",
            index=index,
            package=name,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / (1024 * 1024), 2),
            duration_s=round(duration_s, 2),
        )

    def download_failed(self, index: int, name: str, error: str, transient: bool, attempt: int):
        """Log package download failed."""
        self.logger.error(
            "package_download_failed",
            index=index,
            package=name,
            error=error,
            transient=transient,
            attempt=attempt,
        )

    def install_completed(self, index: int, name: str, folder: str, files: int):
        """Log package install completed."""
        self.logger.info(
            "package_install_completed",
            index=index,
            package=name,
            folder=folder,
            files=files,
        )

    def install_warning(self, index: int, name: str, expected: int, actual: int):
        """Log an install that finished with fewer files than its source."""
        self.logger.warning(
            "package_install_incomplete",
            index=index,
            package=name,
            expected_files=expected,
            actual_files=actual,
        )

    def integrity_mismatch(self, index: int, name: str, archive: str):
        """Log a downloaded archive whose size or MD5 differs from the manifest."""
        self.logger.warning(
            "package_integrity_mismatch", index=index, package=name, archive=archive
        )

    def install_failed(self, index: int, name: str, error: str):
        """Log package install failed."""
        self.logger.error("package_install_failed", index=index, package=name, error=error)

    def package_skipped(self, index: int, name: str, reason: str):
        """Log package skipped."""
        self.logger.info("package_skipped", index=index, package=name, reason=reason)


class SessionLogger:
    """Specialized logger for session events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def session_started(self, collection: str, total_packages: int, max_workers: int):
        """Log session started."""
        self.logger.info(
            "session_started",
            collection=collection,
            total_packages=total_packages,
            max_workers=max_workers,
        )

    def load_order_built(
        self,
        mods: int,
        plugins: int,
        rules_applied: int,
        rules_dropped: int,
        violations: int,
        cycle_detected: bool,
    ):
        """Log the outcome of the load order resolution."""
        self.logger.info(
            "load_order_built",
            mods=mods,
            plugins=plugins,
            rules_applied=rules_applied,
            rules_dropped=rules_dropped,
            violations=violations,
            cycle_detected=cycle_detected,
        )

    def session_completed(self, duration_s: float, stats: dict[str, Any], cancelled: bool):
        """Log session completed."""
        self.logger.info(
            "session_completed",
            duration_s=round(duration_s, 2),
            cancelled=cancelled,
            **stats,
        )


def create_structured_logger(
    log_dir: Path | None = None,
) -> tuple[StructuredLogger, PackageLogger, SessionLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, package_logger, session_logger)
    """
    base = StructuredLogger("nexus_bridge.events", log_dir=log_dir, enable_json=True)
    return base, PackageLogger(base), SessionLogger(base)
