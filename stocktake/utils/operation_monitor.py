import logging
import time
import traceback
from typing import Any, Dict, List, Optional

from .snitch import get_trace_id

logger = logging.getLogger(__name__)


class OperationMonitor:
    """
    Context manager that tracks checkpoints, counters and warnings for one
    engine operation (ingest, removal, export) and logs a summary on exit.

    Fatal exceptions are always propagated.
    """
    def __init__(self, step_name: str = "unknown"):
        self.step_name = step_name

        self.start_time: Optional[float] = None
        self.duration = 0.0

        self.checkpoints: List[Dict[str, Any]] = []
        self.counters: Dict[str, int] = {}
        self.warnings: List[str] = []

        self.status = "pending"
        self.error_message: Optional[str] = None
        self.error_traceback: Optional[str] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.info(f"[{get_trace_id()}] === [{self.step_name}] started ===")
        return self

    def checkpoint(self, name: str):
        """Record elapsed milliseconds since the operation started."""
        elapsed_ms = (time.perf_counter() - self.start_time) * 1000 if self.start_time else 0.0
        self.checkpoints.append({"name": name, "elapsed_ms": round(elapsed_ms, 2)})
        logger.debug(f"[{self.step_name}] checkpoint '{name}' at {elapsed_ms:.2f}ms")

    def count(self, key: str, amount: int = 1):
        self.counters[key] = self.counters.get(key, 0) + amount

    def log_warning(self, message: str):
        """Note a problem that did not stop the operation."""
        self.warnings.append(message)
        logger.warning(f"[{self.step_name}] WARNING: {message}")

    def report(self) -> Dict[str, Any]:
        return {
            "step": self.step_name,
            "status": self.status,
            "duration_ms": round(self.duration * 1000, 2),
            "checkpoints": list(self.checkpoints),
            "counters": dict(self.counters),
            "warnings": list(self.warnings),
            "error_message": self.error_message,
        }

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration = time.perf_counter() - self.start_time

        if exc_type:
            self.status = "fatal"
            self.error_message = str(exc_val)
            self.error_traceback = "".join(traceback.format_exception(exc_type, exc_val, exc_tb))
            logger.error(f"[{get_trace_id()}] [{self.step_name}] failed after "
                         f"{self.duration * 1000:.2f}ms: {type(exc_val).__name__}: {self.error_message}")
            logger.debug(self.error_traceback)
        elif self.warnings:
            self.status = "success_with_warnings"
        else:
            self.status = "success"

        if not exc_type:
            logger.info(f"[{get_trace_id()}] === [{self.step_name}] {self.status} in "
                        f"{self.duration * 1000:.2f}ms counters={self.counters} ===")
        return False
