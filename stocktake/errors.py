"""
Error taxonomy for the ingestion and aggregation engine.

Row-level malformation is never raised: the extractor skips such rows and
reports how many were skipped. Everything here is surfaced to the caller.
"""
from typing import Any, Dict, List, Optional


class StocktakeError(Exception):
    """Base class for all engine errors."""

    def to_details(self) -> Optional[Any]:
        return None


class ParseFailure(StocktakeError):
    """The uploaded bytes could not be turned into a grid."""
    pass


class DetectionFailed(StocktakeError):
    """No confident column mapping; carries fallback suggestions for manual selection."""

    def __init__(self, message: str, suggestions: Optional[List[Any]] = None,
                 role_map: Optional[Dict[str, int]] = None):
        super().__init__(message)
        self.suggestions = suggestions or []
        self.role_map = role_map or {}

    def to_details(self) -> Optional[Any]:
        return {
            "role_map": self.role_map,
            "suggestions": [s.to_dict() if hasattr(s, "to_dict") else s for s in self.suggestions],
        }


class ValidationFailed(StocktakeError):
    """A mapping or input was rejected; `errors` lists every violation."""

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        super().__init__(f"{message}: {'; '.join(errors)}" if errors else message)
        self.errors = list(errors)

    def to_details(self) -> Optional[Any]:
        return self.errors


class EmptyInput(StocktakeError):
    """Extraction produced zero usable rows."""

    def __init__(self, message: str = "No usable rows found", skipped_rows: int = 0):
        super().__init__(message)
        self.skipped_rows = skipped_rows

    def to_details(self) -> Optional[Any]:
        return {"skipped_rows": self.skipped_rows}


class NotFound(StocktakeError):
    def __init__(self, kind: str, identifier: Any):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ProtectedResource(StocktakeError):
    """Attempt to delete a resource that must be kept (e.g. the default mapping)."""
    pass


ProtectedMapping = ProtectedResource


class StorageConflict(StocktakeError):
    """The atomic upsert primitive itself failed. Retry the whole operation."""
    pass
