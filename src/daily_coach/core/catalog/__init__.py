"""
Movement catalogs for daily-coach.

Strength templates, accessory matrices and injury exclusions are loaded
from YAML once at import time and shared read-only by every expert.
"""

from .base import AccessoryFocus, InjuryProfile, MovementCatalog, PhaseProgram
from .registry import CATALOG, equipment_alternative, get_focus, get_injury, get_program

__all__ = [
    "AccessoryFocus",
    "InjuryProfile",
    "MovementCatalog",
    "PhaseProgram",
    "CATALOG",
    "equipment_alternative",
    "get_focus",
    "get_injury",
    "get_program",
]
