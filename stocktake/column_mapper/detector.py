"""
Column Role Detector - assigns semantic roles to spreadsheet columns.

Scoring happens in two passes:
- header text against the role vocabulary in `ColumnRules`
- sample cell content (numeric quantity columns, short unit tokens,
  sequential line numbers, mostly-blank columns)

Roles are then assigned greedily, highest score first, one role per column
and one column per role. The detector is pure: identical input always
yields an identical result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .rules import (
    ColumnRules,
    ROLE_LINE_NUMBER,
    ROLE_QUANTITY,
    ROLE_UNIT,
)
from ..errors import DetectionFailed
from ..utils.text import cell_to_text, is_blank, to_decimal

logger = logging.getLogger(__name__)

UNKNOWN_ROLE = "unknown"


@dataclass
class RoleAssignment:
    role: str
    column: int
    header: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "column": self.column,
            "header": self.header,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class ColumnSuggestion:
    """Ranked role candidates for one column, offered for manual mapping."""
    column: int
    header: str
    possible_roles: List[str]
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "header": self.header,
            "possible_roles": list(self.possible_roles),
            "confidence": round(self.confidence, 4),
        }


@dataclass
class DetectionResult:
    role_map: Dict[str, int]
    confidence: float
    assignments: List[RoleAssignment] = field(default_factory=list)
    suggestions: List[ColumnSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role_map": dict(self.role_map),
            "confidence": round(self.confidence, 4),
            "per_role_confidence": [a.to_dict() for a in self.assignments],
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


class ColumnRoleDetector:
    """Scores (role, column) pairs and resolves them into a role map."""

    # Content heuristics
    NUMERIC_BOOST = 0.25
    UNIT_BOOST = 0.2
    SEQUENCE_BOOST = 0.2
    BLANK_PENALTY = 0.3

    NUMERIC_SHARE = 0.8
    UNIT_SHARE = 0.8
    SEQUENCE_SHARE = 0.5
    BLANK_SHARE = 0.5
    UNIT_MAX_CHARS = 6

    # Candidates below this are not offered as suggestions
    SUGGESTION_FLOOR = 0.05

    def __init__(self, rules: type = ColumnRules):
        self.rules = rules
        self.logger = logging.getLogger(self.__class__.__name__)

    def detect(self, headers: Sequence[Any], sample_rows: Optional[Sequence[Sequence[Any]]] = None) -> DetectionResult:
        """
        Detect the role map of a header row.

        Raises:
            DetectionFailed: if headers are empty or any of name/quantity/unit
                cannot be assigned. The error carries the partial role map and
                per-column suggestions.
        """
        if not headers:
            raise DetectionFailed("No headers provided")

        header_texts = [cell_to_text(h) for h in headers]
        samples = [list(row) for row in (sample_rows or [])]
        scores = self.score_matrix(header_texts, samples)

        assignments = self._assign(scores, header_texts)
        role_map = {a.role: a.column for a in assignments}
        suggestions = self.suggest(header_texts, scores)

        missing = [role for role in self.rules.MANDATORY_ROLES if role not in role_map]
        if missing:
            found = [role for role in self.rules.MANDATORY_ROLES if role in role_map]
            self.logger.warning(f"Detection failed. Missing roles: {missing}. Headers: {header_texts}")
            raise DetectionFailed(
                f"Insufficient columns detected. Required: {', '.join(self.rules.MANDATORY_ROLES)}. "
                f"Found: {', '.join(found) or 'none'}",
                suggestions=suggestions,
                role_map=role_map,
            )

        confidence = sum(a.confidence for a in assignments) / len(assignments)
        self.logger.info(f"Detected role map {role_map} with confidence {confidence:.2f}")
        return DetectionResult(
            role_map=role_map,
            confidence=confidence,
            assignments=assignments,
            suggestions=suggestions,
        )

    def score_matrix(self, header_texts: List[str], samples: List[List[Any]]) -> Dict[str, List[float]]:
        """Score of every role for every column (header match plus content adjustments)."""
        scores: Dict[str, List[float]] = {}
        for role in self.rules.all_roles():
            role_scores = []
            for col, header in enumerate(header_texts):
                score = self.rules.score_header(header, role)
                if samples:
                    column_values = [row[col] if col < len(row) else None for row in samples]
                    score += self._content_adjustment(role, column_values)
                role_scores.append(score)
            scores[role] = role_scores
        return scores

    def _content_adjustment(self, role: str, values: List[Any]) -> float:
        populated = [v for v in values if not is_blank(v)]
        adjustment = 0.0

        if len(values) - len(populated) > len(values) * self.BLANK_SHARE:
            adjustment -= self.BLANK_PENALTY
        if not populated:
            return adjustment

        if role == ROLE_QUANTITY:
            numeric = sum(1 for v in populated if to_decimal(v) is not None)
            if numeric / len(populated) >= self.NUMERIC_SHARE:
                adjustment += self.NUMERIC_BOOST

        elif role == ROLE_UNIT:
            tokens = [cell_to_text(v) for v in populated]
            short = [t for t in tokens
                     if len(t) <= self.UNIT_MAX_CHARS and len(t.split()) == 1 and to_decimal(t) is None]
            distinct = {t.casefold() for t in short}
            if (len(short) / len(populated) >= self.UNIT_SHARE
                    and len(distinct) <= max(3, len(populated) // 2)):
                adjustment += self.UNIT_BOOST

        elif role == ROLE_LINE_NUMBER:
            sequential = 0
            for i, v in enumerate(values):
                number = to_decimal(v)
                if number is not None and number == i + 1:
                    sequential += 1
            if sequential / len(populated) >= self.SEQUENCE_SHARE:
                adjustment += self.SEQUENCE_BOOST

        return adjustment

    def _assign(self, scores: Dict[str, List[float]], header_texts: List[str]) -> List[RoleAssignment]:
        """Greedy highest-score-first assignment, one role per column."""
        candidates = [
            (score, role, col)
            for role, role_scores in scores.items()
            for col, score in enumerate(role_scores)
            if score > 0
        ]
        candidates.sort(key=lambda c: (-c[0], self.rules.priority_of(c[1]), c[2]))

        assignments: List[RoleAssignment] = []
        used_roles = set()
        used_cols = set()
        for score, role, col in candidates:
            if role in used_roles or col in used_cols:
                continue
            assignments.append(RoleAssignment(role=role, column=col, header=header_texts[col],
                                              confidence=min(1.0, score)))
            used_roles.add(role)
            used_cols.add(col)
            if len(used_roles) == len(scores):
                break

        assignments.sort(key=lambda a: a.column)
        return assignments

    def suggest(self, header_texts: List[str], scores: Dict[str, List[float]]) -> List[ColumnSuggestion]:
        """
        Per-column role candidates ranked by score.

        Every column gets an entry; a column with no plausible role is
        suggested as 'unknown' so the caller can still offer a manual choice.
        """
        suggestions = []
        for col, header in enumerate(header_texts):
            ranked = sorted(
                ((scores[role][col], role) for role in scores if scores[role][col] >= self.SUGGESTION_FLOOR),
                key=lambda pair: (-pair[0], self.rules.priority_of(pair[1])),
            )
            if ranked:
                suggestions.append(ColumnSuggestion(
                    column=col,
                    header=header,
                    possible_roles=[role for _, role in ranked],
                    confidence=min(1.0, ranked[0][0]),
                ))
            else:
                suggestions.append(ColumnSuggestion(column=col, header=header,
                                                    possible_roles=[UNKNOWN_ROLE], confidence=0.0))
        return suggestions
