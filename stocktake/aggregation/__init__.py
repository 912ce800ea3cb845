from .engine import AggregationEngine
from .file_store import FileStore

__all__ = ['AggregationEngine', 'FileStore']
