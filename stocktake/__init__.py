# Spreadsheet inventory ingestion and aggregation engine

from .orchestrator import InventoryOrchestrator
from .errors import (
    StocktakeError,
    ParseFailure,
    DetectionFailed,
    ValidationFailed,
    EmptyInput,
    NotFound,
    ProtectedResource,
    ProtectedMapping,
    StorageConflict,
)
from .utils.text import normalize

__all__ = [
    'InventoryOrchestrator',
    'StocktakeError',
    'ParseFailure',
    'DetectionFailed',
    'ValidationFailed',
    'EmptyInput',
    'NotFound',
    'ProtectedResource',
    'ProtectedMapping',
    'StorageConflict',
    'normalize',
]
