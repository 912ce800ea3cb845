"""
Column Rules - Single Source of Truth for column role vocabulary.

This module defines:
1. Role Identification (header keywords -> semantic role)
2. Mandatory vs optional roles
3. Tie-break priority used by the detector
4. The seeded default mapping
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..utils.text import normalize

# Role ids
ROLE_LINE_NUMBER = "line_number"
ROLE_ITEM_ID = "item_id"
ROLE_NAME = "name"
ROLE_QUANTITY = "quantity"
ROLE_UNIT = "unit"


@dataclass
class RoleDefinition:
    """Defines how a specific column role is recognised."""
    id: str                  # Internal role id (e.g. 'quantity')
    keywords: List[str]      # Header keywords, Polish and English
    mandatory: bool = False
    priority: int = 10       # Lower value wins score ties

    def normalized_keywords(self) -> List[str]:
        return [normalize(k) for k in self.keywords]


class ColumnRules:
    """Central registry of role definitions."""

    ROLES: Dict[str, RoleDefinition] = {
        ROLE_NAME: RoleDefinition(
            id=ROLE_NAME,
            keywords=["nazwa", "nazwa towaru", "nazwa produktu", "nazwa materiału", "produkt", "towar",
                      "opis", "product", "product name", "item", "item name", "name", "description", "goods"],
            mandatory=True,
            priority=0,
        ),
        ROLE_QUANTITY: RoleDefinition(
            id=ROLE_QUANTITY,
            keywords=["ilość", "ilość szt", "ilosc", "qty", "quantity", "liczba", "amount", "count",
                      "stan", "stock", "inventory"],
            mandatory=True,
            priority=1,
        ),
        ROLE_UNIT: RoleDefinition(
            id=ROLE_UNIT,
            keywords=["jmz", "jm", "j.m.", "jednostka", "jednostka miary", "miara", "unit", "units",
                      "uom", "unit of measure", "measure", "um", "u.m."],
            mandatory=True,
            priority=2,
        ),
        ROLE_ITEM_ID: RoleDefinition(
            id=ROLE_ITEM_ID,
            keywords=["nr indeksu", "indeks", "index", "kod", "kod produktu", "kod towaru", "symbol",
                      "identyfikator", "code", "item code", "product code", "id", "item id", "sku",
                      "part number", "material"],
            priority=3,
        ),
        ROLE_LINE_NUMBER: RoleDefinition(
            id=ROLE_LINE_NUMBER,
            keywords=["l.p.", "lp", "nr porządkowy", "pozycja", "poz", "no", "nr", "line",
                      "line number", "row", "position"],
            priority=4,
        ),
    }

    MANDATORY_ROLES: Tuple[str, ...] = (ROLE_NAME, ROLE_QUANTITY, ROLE_UNIT)

    DEFAULT_MAPPING_NAME = "Standard layout"
    DEFAULT_ROLE_MAP: Dict[str, int] = {
        ROLE_LINE_NUMBER: 0,
        ROLE_ITEM_ID: 1,
        ROLE_NAME: 2,
        ROLE_QUANTITY: 3,
        ROLE_UNIT: 4,
    }

    # Header match weights
    EXACT_WEIGHT = 1.0
    PREFIX_WEIGHT = 0.75
    SUBSTRING_WEIGHT = 0.5

    @classmethod
    def all_roles(cls) -> List[str]:
        return list(cls.ROLES.keys())

    @classmethod
    def priority_of(cls, role: str) -> int:
        role_def = cls.ROLES.get(role)
        return role_def.priority if role_def else 99

    @classmethod
    def score_header(cls, header_text: str, role: str) -> float:
        """
        Best keyword match weight of a header for one role.

        Exact match beats a match at the start of the header, which beats a
        whole-word match anywhere inside it. Matching happens on normalized text.
        """
        header_key = normalize(header_text)
        if not header_key:
            return 0.0

        header_words = header_key.split()
        best = 0.0
        for keyword in cls.ROLES[role].normalized_keywords():
            if not keyword:
                continue
            if keyword == header_key:
                return cls.EXACT_WEIGHT
            keyword_words = keyword.split()
            size = len(keyword_words)
            if header_words[:size] == keyword_words:
                best = max(best, cls.PREFIX_WEIGHT)
                continue
            for start in range(1, len(header_words) - size + 1):
                if header_words[start:start + size] == keyword_words:
                    best = max(best, cls.SUBSTRING_WEIGHT)
                    break
        return best

    @classmethod
    def get_role_by_keyword(cls, header_text: str) -> Optional[str]:
        """
        Identify the role of a header based on its text alone.
        Returns the best scoring role (or None).
        """
        best_role = None
        best_score = 0.0
        for role in sorted(cls.ROLES, key=cls.priority_of):
            score = cls.score_header(header_text, role)
            if score > best_score:
                best_role, best_score = role, score
        return best_role
