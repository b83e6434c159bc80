"""Run-level logging for extraction runs.

Console output is concise (one line per round, milestones highlighted);
an optional per-run log file captures everything including DEBUG lines.
Module code that only needs plain diagnostics uses
``logging.getLogger(__name__)`` instead.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class PipelineLogger:
    """Structured logger for one extraction run (or a series of them)."""

    def __init__(self, name: str = "cosmic_extractor.run", verbose: bool = False, log_dir: str | Path | None = None):
        """Initialize the logger.

        Args:
            name: Logger name.
            verbose: If True, show DEBUG level logs.
            log_dir: Directory for log files. If None, no file logging.
        """
        self.logger = logging.getLogger(name)
        self.verbose = verbose
        self._stage: str = ""
        self._stage_start: float = 0
        self._run_start: float = 0
        self._log_file: Path | None = None
        self._log_dir = Path(log_dir) if log_dir else None
        self._tick_count: int = 0
        self._tick_total: int = 0

        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(ConsoleFormatter())
            console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
            self.logger.addHandler(console_handler)

        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

    def set_verbose(self, verbose: bool):
        self.verbose = verbose
        for handler in self.logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    def _ts(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _elapsed(self) -> str:
        if self._stage_start:
            return f"{time.time() - self._stage_start:.1f}s"
        return ""

    def _total_elapsed(self) -> str:
        if self._run_start:
            elapsed = time.time() - self._run_start
            mins = int(elapsed // 60)
            secs = elapsed % 60
            if mins > 0:
                return f"{mins}m {secs:.0f}s"
            return f"{secs:.1f}s"
        return ""

    def start_run(self, source: str, target: int | None = None, mode: str = ""):
        """Mark run start and set up file logging."""
        self._run_start = time.time()

        if self._log_dir and self._log_file is None:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            stem = Path(source).stem or "run"
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self._log_file = self._log_dir / f"{stem}_{timestamp}.log"

            file_handler = logging.FileHandler(self._log_file, encoding="utf-8")
            file_handler.setFormatter(FileFormatter())
            file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(file_handler)

        details = []
        if target is not None:
            details.append(f"target={target}")
        if mode:
            details.append(f"mode={mode}")
        suffix = f" ({', '.join(details)})" if details else ""
        self.logger.info(f"[{self._ts()}] Starting run: {source}{suffix}")

    def end_run(self, state: str, stats: dict | None = None):
        """Mark run end with its final state."""
        elapsed = self._total_elapsed()

        self.logger.info("")
        if stats:
            self.summary(stats)

        self.logger.info(f"\n{'='*50}")
        self.logger.info(f"Run {state.upper()} [{elapsed}]")
        self.logger.info(f"{'='*50}")

        if self._log_file:
            self.logger.info(f"Log: {self._log_file}")

    def start_stage(self, stage: str, total: int = 0, model: str = ""):
        """Start a new stage (understanding, splitting, batch split...)."""
        self._stage = stage
        self._stage_start = time.time()
        self._tick_count = 0
        self._tick_total = total

        parts = [stage.upper()]
        if total > 0:
            parts.append(f"{total} items")
        if model:
            parts.append(model.split("/")[-1])

        header = parts[0]
        if len(parts) > 1:
            header += f" ({', '.join(parts[1:])})"

        self.logger.info("")
        self.logger.info(header)

    def tick(self, item: str = ""):
        """Log a visible progress tick (INFO level).

        Shows:   [2/3] chunk 2 (12.3s)
        """
        self._tick_count += 1
        total = self._tick_total
        if total > 0:
            elapsed = time.time() - self._stage_start
            count = f"[{self._tick_count}/{total}]"
            msg = f"  {count} {item} ({elapsed:.1f}s)" if item else f"  {count} ({elapsed:.1f}s)"
            self.logger.info(msg)

    def round_result(self, round_number: int, new_records: int, unique_processes: int, target: int, **metrics):
        """One line per completed splitting round."""
        parts = [f"round {round_number}: +{new_records} rows, {unique_processes}/{target} processes"]
        if metrics:
            parts.append(", ".join(f"{k}={v}" for k, v in metrics.items()))
        elapsed = self._elapsed()
        if elapsed:
            parts.append(f"[{elapsed}]")
        self.logger.info(f"  {' | '.join(parts)}")

    def stage_result(self, result: str, **metrics):
        """Log stage completion with key metrics."""
        elapsed = self._elapsed()
        parts = [result]
        if metrics:
            parts.append(", ".join(f"{k}={v}" for k, v in metrics.items()))
        if elapsed:
            parts.append(f"[{elapsed}]")
        self.logger.info(f"  Done: {' | '.join(parts)}")
        self._stage = ""

    def debug(self, message: str, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.debug(f"[{self._ts()}] {message}")

    def info(self, message: str, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.info(f"  {message}")

    def warning(self, message: str, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.warning(f"[{self._ts()}] WARN: {message}")

    def error(self, message: str, exc: Exception | None = None, **data):
        if data:
            message = f"{message} | {_format_data(data)}"
        if exc:
            message = f"{message} | {type(exc).__name__}: {exc}"
        self.logger.error(f"[{self._ts()}] ERROR: {message}")

    def milestone(self, message: str, **data):
        """Log a key event such as a termination decision (always visible)."""
        if data:
            message = f"{message} | {_format_data(data)}"
        self.logger.info(f"  -> {message}")

    def summary(self, stats: dict):
        lines = ["SUMMARY"]
        for key, value in stats.items():
            if isinstance(value, dict):
                lines.append(f"  {key}:")
                for k, v in value.items():
                    lines.append(f"    {k}: {v}")
            else:
                lines.append(f"  {key}: {value}")
        self.logger.info("\n".join(lines))


class ConsoleFormatter(logging.Formatter):
    """Console formatter. Messages already carry their own timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


class FileFormatter(logging.Formatter):
    """File formatter with full timestamps and level names."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = record.levelname[:4]
        return f"{ts} [{level}] {record.getMessage()}"


def _format_data(data: dict[str, Any]) -> str:
    parts = []
    for k, v in data.items():
        if isinstance(v, str) and len(v) > 50:
            v = v[:47] + "..."
        elif isinstance(v, (list, tuple, set)) and len(v) > 5:
            v = f"[{len(v)} items]"
        parts.append(f"{k}={v}")
    return ", ".join(parts)


_logger: PipelineLogger | None = None


def get_logger(verbose: bool = False, log_dir: str | Path | None = None) -> PipelineLogger:
    """Get or create the shared run logger.

    Args:
        verbose: If True, show DEBUG level logs in console.
        log_dir: Directory for log files. Applied to an existing logger that
                 has none yet.
    """
    global _logger
    if _logger is None:
        _logger = PipelineLogger(verbose=verbose, log_dir=log_dir)
    else:
        if verbose and not _logger.verbose:
            _logger.set_verbose(True)
        if log_dir and not _logger._log_dir:
            _logger._log_dir = Path(log_dir)
    return _logger


def reset_logger():
    """Reset the shared logger (for testing)."""
    global _logger
    if _logger:
        for handler in _logger.logger.handlers[:]:
            if isinstance(handler, logging.FileHandler):
                handler.close()
                _logger.logger.removeHandler(handler)
    _logger = None
