import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .rules import ColumnRules

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": list(self.errors)}


class MappingValidator:
    """
    Validates a role map against the structural rules.

    Every violation is collected so a caller can show all problems at once.
    """

    def __init__(self, rules: type = ColumnRules):
        self.rules = rules

    def validate(self, role_map: Dict[str, Any], headers: Optional[Sequence[Any]] = None) -> ValidationResult:
        errors: List[str] = []
        role_map = role_map or {}

        # 1. Mandatory roles
        for role in self.rules.MANDATORY_ROLES:
            if role_map.get(role) is None:
                errors.append(f"Missing required role: {role}")

        # 2. Known roles and valid indices
        used: Dict[int, List[str]] = {}
        for role, index in role_map.items():
            if index is None:
                continue
            if role not in self.rules.ROLES:
                errors.append(f"Unknown role: {role}")
                continue
            if isinstance(index, bool) or not isinstance(index, int):
                errors.append(f"Invalid column index for {role}: {index!r}")
                continue
            if index < 0:
                errors.append(f"Invalid column index for {role}: {index}")
                continue
            if headers is not None and index >= len(headers):
                errors.append(f"Column index out of bounds for {role}: {index} (columns: {len(headers)})")
                continue
            used.setdefault(index, []).append(role)

        # 3. One column per role
        for index in sorted(used):
            roles = used[index]
            if len(roles) > 1:
                errors.append(f"Duplicate column assignment: column {index} used by {', '.join(sorted(roles))}")

        if errors:
            logger.debug(f"Mapping {role_map} rejected: {errors}")
        return ValidationResult(is_valid=not errors, errors=errors)
