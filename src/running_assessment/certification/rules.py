"""
Grade rule sets.

Per-grade point allocations and per-item ``{min, max, ideal}`` criteria,
versioned and time-bounded. The bundled rules live in ``data/grade_rules.yaml``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import yaml

from running_assessment.core.exceptions import InputValidationError, RuleNotFoundError

from .types import CORRECTABLE_ITEMS, GradeCode

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "data" / "grade_rules.yaml"

CATEGORIES = ("angle", "stride", "contact_time", "hfvp", "technique")
BASE_ITEMS = CORRECTABLE_ITEMS[:6]
HFVP_ITEMS = CORRECTABLE_ITEMS[6:]
TOTAL_POINTS = 100.0


def _to_datetime(value: Any) -> datetime | None:
    """YAML dates/datetimes/ISO strings as timezone-aware UTC datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        dt = datetime.fromisoformat(str(value))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Criterion:
    """Acceptable range and ideal value of one item."""

    min: float
    max: float
    ideal: float

    def __post_init__(self) -> None:
        lo, hi = sorted((float(self.min), float(self.max)))
        object.__setattr__(self, "min", lo)
        object.__setattr__(self, "max", hi)
        object.__setattr__(self, "ideal", float(self.ideal))
        if not lo <= self.ideal <= hi:
            raise InputValidationError(
                f"Ideal value {self.ideal} lies outside [{lo}, {hi}]"
            )

    @property
    def range(self) -> float:
        return self.max - self.min

    def to_dict(self) -> dict[str, float]:
        return {"min": self.min, "max": self.max, "ideal": self.ideal}


@dataclass(frozen=True)
class GradeRule:
    """Scoring rule of one grade."""

    grade: GradeCode
    pass_score: float
    points: dict[str, float]
    criteria: dict[str, Criterion]
    version: int = 1
    effective_from: datetime | None = None
    effective_until: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "grade", GradeCode.parse(self.grade))
        points = {c: float(self.points.get(c, 0.0)) for c in CATEGORIES}
        object.__setattr__(self, "points", points)

        total = sum(points.values())
        if abs(total - TOTAL_POINTS) > 1e-6:
            raise InputValidationError(
                f"Grade {self.grade}: category points must sum to {TOTAL_POINTS:g}, got {total:g}"
            )
        required = BASE_ITEMS + (HFVP_ITEMS if points["hfvp"] > 0 else ())
        missing = [item for item in required if item not in self.criteria]
        if missing:
            raise InputValidationError(f"Grade {self.grade}: missing criteria for {', '.join(missing)}")

    @property
    def includes_hfvp(self) -> bool:
        return self.points["hfvp"] > 0

    def is_active_at(self, when: datetime) -> bool:
        if self.effective_from is not None and when < self.effective_from:
            return False
        if self.effective_until is not None and when >= self.effective_until:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any], defaults: dict[str, Any] | None = None) -> GradeRule:
        """Build a rule from its YAML mapping; ``defaults`` supplies file-level fields."""
        defaults = defaults or {}
        return cls(
            grade=data["grade"],
            pass_score=float(data["pass_score"]),
            points=dict(data.get("points", {})),
            criteria={name: Criterion(**c) for name, c in data.get("criteria", {}).items()},
            version=int(data.get("version", defaults.get("version", 1))),
            effective_from=_to_datetime(data.get("effective_from", defaults.get("effective_from"))),
            effective_until=_to_datetime(data.get("effective_until", defaults.get("effective_until"))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "grade": self.grade.number,
            "pass_score": self.pass_score,
            "points": dict(self.points),
            "criteria": {name: c.to_dict() for name, c in self.criteria.items()},
            "version": self.version,
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_until": self.effective_until.isoformat() if self.effective_until else None,
        }


@dataclass
class GradeRuleSet:
    """All known rules; resolves the active one per grade and instant."""

    rules: list[GradeRule] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    @property
    def grades(self) -> list[int]:
        return sorted({r.grade.number for r in self.rules})

    def get(self, grade: GradeCode | int | str, at: datetime | None = None) -> GradeRule:
        """
        Active rule for a grade at an instant (now by default).

        The highest version among rules whose effective window contains the
        instant wins.

        Raises:
            RuleNotFoundError: No rule is active for the grade
        """
        code = GradeCode.parse(grade)
        when = at or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)

        active = [r for r in self.rules if r.grade == code and r.is_active_at(when)]
        if not active:
            raise RuleNotFoundError(f"No active rule for grade {code} at {when.isoformat()}")
        return max(active, key=lambda r: r.version)

    def add(self, rule: GradeRule) -> None:
        self.rules.append(rule)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GradeRuleSet:
        defaults = {k: data.get(k) for k in ("version", "effective_from", "effective_until")}
        defaults = {k: v for k, v in defaults.items() if v is not None}
        return cls([GradeRule.from_dict(r, defaults) for r in data.get("rules", [])])

    @classmethod
    def from_yaml(cls, path: str | Path) -> GradeRuleSet:
        """Load rules from a YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        rule_set = cls.from_dict(data)
        logger.debug("Loaded %d grade rules from %s", len(rule_set), path)
        return rule_set

    @classmethod
    def from_rules(cls, rules: Iterable[GradeRule]) -> GradeRuleSet:
        return cls(list(rules))


def load_grade_rules(path: str | Path | None = None) -> GradeRuleSet:
    """Load a rule set from ``path`` or the bundled defaults."""
    return GradeRuleSet.from_yaml(path or DEFAULT_RULES_PATH)
