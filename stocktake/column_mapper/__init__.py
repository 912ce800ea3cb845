# Column role detection, validation and saved mappings

from .rules import ColumnRules, RoleDefinition
from .detector import ColumnRoleDetector, DetectionResult, RoleAssignment, ColumnSuggestion
from .header_locator import HeaderRowLocator
from .validator import MappingValidator, ValidationResult
from .registry import MappingRegistry

__all__ = [
    'ColumnRules',
    'RoleDefinition',
    'ColumnRoleDetector',
    'DetectionResult',
    'RoleAssignment',
    'ColumnSuggestion',
    'HeaderRowLocator',
    'MappingValidator',
    'ValidationResult',
    'MappingRegistry',
]
