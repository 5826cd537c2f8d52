"""Servicios de dominio puros."""

from app.domain.services.rule_conditions import all_of, conditions_predicate, rule_matches

__all__ = [
    "all_of",
    "conditions_predicate",
    "rule_matches",
]
