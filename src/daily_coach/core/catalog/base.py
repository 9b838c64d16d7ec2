"""
Base types for the movement catalogs.

PhaseProgram holds the strength template for one season phase,
AccessoryFocus one row of the aesthetic accessory matrix and InjuryProfile
the excluded movement patterns (plus vetted substitutes) for one injury
flag.  MovementCatalog bundles everything loaded from YAML.
"""

from dataclasses import dataclass, field

from ..models import Exercise


@dataclass(frozen=True)
class PhaseProgram:
    """Strength template for one season phase."""

    phase: str
    emphasis: str
    main: tuple[Exercise, ...]
    conditioning: tuple[Exercise, ...] = ()


@dataclass(frozen=True)
class AccessoryFocus:
    """Accessory selection for one aesthetic focus."""

    focus: str
    tooltip: str
    primary: tuple[Exercise, ...]
    secondary: tuple[Exercise, ...] = ()


@dataclass(frozen=True)
class InjuryProfile:
    """Movement patterns to avoid while an injury flag is open."""

    flag: str
    label: str
    excluded: tuple[str, ...]          # lowercase substrings of name/pattern
    alternatives: dict[str, Exercise] = field(default_factory=dict)


@dataclass(frozen=True)
class MovementCatalog:
    """
    Everything the experts read from the bundled catalogs.

    ``equipment_alternatives`` maps a lowercase exercise name to the
    bodyweight substitute used when its equipment is missing.
    """

    warm_up: tuple[Exercise, ...]
    cool_down: tuple[Exercise, ...]
    programs: dict[str, PhaseProgram]
    game_day: tuple[Exercise, ...]
    recovery_warm_up: tuple[Exercise, ...]
    recovery_main: tuple[Exercise, ...]
    recovery_cool_down: tuple[Exercise, ...]
    accessories: dict[str, AccessoryFocus]
    injuries: dict[str, InjuryProfile]
    equipment_alternatives: dict[str, Exercise] = field(default_factory=dict)
