import contextvars
import functools
import logging
import uuid
from typing import Optional

# Trace id of the current request/operation
_trace_id_ctx = contextvars.ContextVar("trace_id", default="NO-TRACE")

logger = logging.getLogger("stocktake.trace")


def start_trace(custom_id: Optional[str] = None) -> str:
    """Call this ONCE at the start of a request or script run."""
    tid = custom_id or f"run-{str(uuid.uuid4())[:8]}"
    _trace_id_ctx.set(tid)
    logger.debug(f"[{tid}] trace started")
    return tid


def get_trace_id() -> str:
    """Retrieve the current trace id anywhere in the code."""
    return _trace_id_ctx.get()


def snitch(func):
    """Decorator to log entry/exit/crash of an operation with the trace id."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        tid = get_trace_id()
        func_name = func.__qualname__
        try:
            logger.info(f"[{tid}] >> ENTER: {func_name}")
            result = func(*args, **kwargs)
            logger.info(f"[{tid}] OK EXIT:  {func_name}")
            return result
        except Exception as e:
            logger.error(f"[{tid}] !! CRASH: {func_name} | {type(e).__name__}: {e}")
            raise
    return wrapper
