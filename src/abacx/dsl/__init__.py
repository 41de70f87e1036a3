from .lint import analyze_rules
from .validate import RULES_SCHEMA, validate_rules

__all__ = ["RULES_SCHEMA", "analyze_rules", "validate_rules"]
