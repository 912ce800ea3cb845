import logging
import threading
from typing import Optional

from stocktake.orchestrator import InventoryOrchestrator

logger = logging.getLogger(__name__)

_orchestrator: Optional[InventoryOrchestrator] = None
_lock = threading.Lock()


def get_orchestrator() -> InventoryOrchestrator:
    """One orchestrator (and database connection) per process, created on first use."""
    global _orchestrator
    if _orchestrator is None:
        with _lock:
            if _orchestrator is None:
                _orchestrator = InventoryOrchestrator()
                logger.info(f"Orchestrator ready (database: {_orchestrator.config.database_path})")
    return _orchestrator
