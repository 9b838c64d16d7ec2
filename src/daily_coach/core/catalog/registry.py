"""
Catalog registry.

The movement catalog is loaded from the bundled YAML files in
``src/daily_coach/catalog/`` at import time.  If loading fails for any
reason (missing file, parse error, missing field), a RuntimeError is
raised; the experts cannot run without a valid catalog.

User overrides: place matching files in ``~/.daily-coach/catalog/``.
"""

from ..models import Exercise
from .base import AccessoryFocus, InjuryProfile, MovementCatalog, PhaseProgram


def _build_catalog() -> MovementCatalog:
    from .loader import load_catalog_from_yaml

    loaded = load_catalog_from_yaml()
    if loaded is None:
        raise RuntimeError(
            "daily-coach: the movement catalog could not be loaded from YAML. "
            "Check that src/daily_coach/catalog/*.yaml files are present and valid."
        )
    return loaded


CATALOG: MovementCatalog = _build_catalog()


def get_program(phase: str) -> PhaseProgram:
    """
    Return the strength template for a season phase.

    Raises:
        ValueError: If the phase has no program in the catalog
    """
    if phase not in CATALOG.programs:
        valid = ", ".join(CATALOG.programs)
        raise ValueError(f"No program for season phase '{phase}'. Valid phases: {valid}")
    return CATALOG.programs[phase]


def get_focus(focus: str) -> AccessoryFocus | None:
    """Return the accessory selection for *focus* (case-insensitive), or None."""
    key = focus.strip().lower().replace("-", "_").replace(" ", "_")
    return CATALOG.accessories.get(key)


def get_injury(flag: str) -> InjuryProfile | None:
    """Return the exclusion profile for an injury flag, or None when uncatalogued."""
    return CATALOG.injuries.get(flag)


def equipment_alternative(exercise: Exercise) -> Exercise | None:
    """Return the bodyweight substitute for *exercise*, if the catalog has one."""
    return CATALOG.equipment_alternatives.get(exercise.name.lower())
