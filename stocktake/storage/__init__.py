from .schema import ensure_schema
from .store import Store

__all__ = ['ensure_schema', 'Store']
