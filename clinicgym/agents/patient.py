"""Patient entity for the clinic simulation.

A patient is created empty and grows its truth state visit by visit:

1. **First visit**: identity, appearance and toxicity capacity, then needs
   (one permanent primary need plus 0-2 secondary needs)
2. **First examination**: elemental constitution, fixed from then on
3. **Later visits**: only the secondary needs drift
4. **Treatment**: toxicity accumulates; crossing the capacity is fatal

All randomness goes through an injected ``random.Random`` so a seeded (or
scripted) source reproduces the same patient.
"""

import random
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Union

from loguru import logger
from pydantic import BaseModel, Field

from clinicgym.config import ClinicConfig
from clinicgym.domains.clinic.data_model import Need, NeedCatalog, catalog_codes
from clinicgym.domains.clinic.elements import Element
from clinicgym.errors import InvalidStateError


# ============================================================
# 1. Enums & value types
# ============================================================

class SatisfactionGrade(str, Enum):
    """Verdict of the last completed treatment."""
    NONE = "None"       # never treated
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ToxicityStage(str, Enum):
    """Pulse reading of accumulated toxicity."""
    UNKNOWN = "unknown"         # 未明: pulse not taken
    MILD = "mild"               # 微毒
    ACCUMULATED = "accumulated"  # 積毒
    DEEP = "deep"               # 深毒
    SEVERE = "severe"           # 劇毒


TOXICITY_STAGE_GLYPHS = {
    ToxicityStage.UNKNOWN: "未明",
    ToxicityStage.MILD: "微毒",
    ToxicityStage.ACCUMULATED: "積毒",
    ToxicityStage.DEEP: "深毒",
    ToxicityStage.SEVERE: "劇毒",
}


def stage_for_ratio(ratio: float, bounds: Sequence[float]) -> ToxicityStage:
    """Map a level/capacity ratio onto a stage; ``bounds`` are exclusive upper limits."""
    stages = [ToxicityStage.MILD, ToxicityStage.ACCUMULATED, ToxicityStage.DEEP]
    for bound, stage in zip(bounds, stages):
        if ratio < bound:
            return stage
    return ToxicityStage.SEVERE


@dataclass
class NeedChange:
    """Report of a secondary-need drift between visits."""
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class PatientSnapshot(BaseModel):
    """Serializable patient state, restored at the start of a session."""
    name: str = ""
    clothes_color: str = ""
    skin_color: str = ""
    constitution: Optional[Element] = None
    needs: list[Need] = Field(default_factory=list)
    primary_need_code: Optional[str] = None
    toxicity_capacity: Optional[int] = None
    toxicity_level: float = Field(default=0.0, ge=0)
    previous_satisfaction: SatisfactionGrade = SatisfactionGrade.NONE
    alive: bool = True


# ============================================================
# 2. Patient
# ============================================================

class Patient:
    """A single returning patient.

    Truth state is read through properties; it is changed only by the
    lifecycle methods below.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        config: Optional[ClinicConfig] = None,
    ):
        self.rng = rng if rng is not None else random.Random()
        self.config = config or ClinicConfig()

        self.name = ""
        self.clothes_color = ""
        self.skin_color = ""
        self._constitution: Optional[Element] = None
        self._needs: list[Need] = []
        self._primary_code: Optional[str] = None
        self._toxicity_capacity: Optional[int] = None
        self._toxicity_level = 0.0
        self._alive = True
        self._previous_satisfaction = SatisfactionGrade.NONE

    # ── read-only truth state ──────────────────────────────────

    @property
    def constitution(self) -> Optional[Element]:
        return self._constitution

    @property
    def needs(self) -> list[Need]:
        return list(self._needs)

    @property
    def need_codes(self) -> list[str]:
        return [n.code for n in self._needs]

    @property
    def primary_need_code(self) -> Optional[str]:
        return self._primary_code

    @property
    def toxicity_capacity(self) -> Optional[int]:
        return self._toxicity_capacity

    @property
    def toxicity_level(self) -> float:
        return self._toxicity_level

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def previous_satisfaction(self) -> SatisfactionGrade:
        return self._previous_satisfaction

    @property
    def has_identity(self) -> bool:
        return self._toxicity_capacity is not None

    # ── first visit ────────────────────────────────────────────

    def assign_identity(
        self,
        name_pool: Sequence[str] = (),
        clothes_color_pool: Sequence[str] = (),
        skin_tone_pool: Sequence[str] = (),
    ) -> None:
        """Assign name, appearance and toxicity capacity (first visit only)."""
        if self.has_identity:
            raise InvalidStateError(f"Patient '{self.name}' already has an identity")

        self.name = self.rng.choice(list(name_pool)) if name_pool else ""
        self.clothes_color = self.rng.choice(list(clothes_color_pool)) if clothes_color_pool else ""
        self.skin_color = self.rng.choice(list(skin_tone_pool)) if skin_tone_pool else ""

        tox = self.config.toxicity
        self._toxicity_capacity = tox.capacity_min + self.rng.randrange(
            tox.capacity_max - tox.capacity_min + 1
        )
        logger.info(
            f"[Patient] New patient '{self.name}' (toxicity capacity {self._toxicity_capacity})"
        )

    def assign_constitution(self, element: Optional[Element] = None) -> Element:
        """Assign the elemental constitution once; later calls are a no-op."""
        if self._constitution is not None:
            logger.debug(f"[Patient] Constitution already {self._constitution.value}, ignored")
            return self._constitution
        if element is None:
            element = self.rng.choice(list(Element))
        self._constitution = Element(element)
        logger.info(f"[Patient] {self.name} constitution: {self._constitution.value}")
        return self._constitution

    def initialize_needs(self, catalog: NeedCatalog) -> list[Need]:
        """Draw the primary need and 0-2 secondary needs."""
        if self._needs:
            raise InvalidStateError("Needs are already initialized; use update_secondary_needs")
        codes = catalog_codes(catalog)
        if not codes:
            raise ValueError("Cannot initialize needs from an empty catalog")

        available = list(codes)
        primary = available.pop(self.rng.randrange(len(available)))
        count = self.rng.randrange(self.config.needs.max_secondary + 1)

        needs = [Need(code=primary, is_main=True)]
        for _ in range(count):
            if not available:
                break
            code = available.pop(self.rng.randrange(len(available)))
            needs.append(Need(code=code, is_main=False))

        self._primary_code = primary
        self._needs = needs
        logger.info(f"[Patient] {self.name} needs: {self.need_codes} (primary {primary})")
        return self.needs

    # ── later visits ───────────────────────────────────────────

    def update_secondary_needs(self, catalog: NeedCatalog) -> Optional[NeedChange]:
        """Let the secondary needs drift. Returns ``None`` when nothing changed."""
        if not self._needs:
            raise InvalidStateError("Needs are not initialized")
        codes = catalog_codes(catalog)
        drift = self.config.needs

        kept: list[Need] = []
        removed: list[str] = []
        for need in self._needs:
            if need.is_main:
                continue
            if self.rng.random() < drift.removal_probability:
                removed.append(need.code)
            else:
                kept.append(need)

        held = {self._primary_code} | {n.code for n in kept}
        available = [c for c in codes if c not in held]
        added: list[str] = []
        for _ in removed:
            if available and self.rng.random() < drift.replacement_probability:
                code = available.pop(self.rng.randrange(len(available)))
                kept.append(Need(code=code, is_main=False))
                added.append(code)

        self._needs = [Need(code=self._primary_code, is_main=True)] + kept
        if not removed and not added:
            return None
        change = NeedChange(removed=removed, added=added)
        logger.info(f"[Patient] {self.name} secondary needs changed: {change.to_dict()}")
        return change

    # ── treatment ──────────────────────────────────────────────

    def increase_toxicity(self, delta: float) -> None:
        """Accumulate toxicity; exceeding the capacity kills the patient.

        Calls after death still add to the level.
        """
        if delta < 0:
            raise ValueError(f"Toxicity delta must be non-negative, got {delta}")
        if self._toxicity_capacity is None:
            raise InvalidStateError("Toxicity capacity is not assigned")
        if not self._alive:
            logger.warning(f"[Patient] Toxicity +{delta} applied to deceased patient '{self.name}'")

        self._toxicity_level += delta
        if self._alive and self._toxicity_level > self._toxicity_capacity:
            self._alive = False
            logger.info(
                f"[Patient] {self.name} died: toxicity "
                f"{self._toxicity_level:.1f}/{self._toxicity_capacity}"
            )

    def record_satisfaction(self, grade: SatisfactionGrade) -> None:
        if not self._alive:
            raise InvalidStateError("Cannot record satisfaction for a deceased patient")
        self._previous_satisfaction = SatisfactionGrade(grade)

    def toxicity_ratio(self) -> float:
        if not self._toxicity_capacity:
            return 0.0
        return self._toxicity_level / self._toxicity_capacity

    def toxicity_stage(self) -> ToxicityStage:
        """Classify the current toxicity ratio into a pulse stage."""
        if self._toxicity_capacity is None:
            return ToxicityStage.UNKNOWN
        return stage_for_ratio(self.toxicity_ratio(), self.config.toxicity.stage_bounds)

    # ── persistence ────────────────────────────────────────────

    def snapshot(self) -> PatientSnapshot:
        return PatientSnapshot(
            name=self.name,
            clothes_color=self.clothes_color,
            skin_color=self.skin_color,
            constitution=self._constitution,
            needs=self.needs,
            primary_need_code=self._primary_code,
            toxicity_capacity=self._toxicity_capacity,
            toxicity_level=self._toxicity_level,
            previous_satisfaction=self._previous_satisfaction,
            alive=self._alive,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Union[PatientSnapshot, dict],
        rng: Optional[random.Random] = None,
        config: Optional[ClinicConfig] = None,
    ) -> "Patient":
        """Rebuild a patient from a snapshot (or its dict form)."""
        if isinstance(snapshot, dict):
            snapshot = PatientSnapshot.model_validate(snapshot)

        mains = [n for n in snapshot.needs if n.is_main]
        codes = [n.code for n in snapshot.needs]
        if snapshot.needs and len(mains) != 1:
            raise InvalidStateError(f"Snapshot must hold exactly one primary need, got {len(mains)}")
        if len(codes) != len(set(codes)):
            raise InvalidStateError(f"Snapshot holds duplicate need codes: {codes}")

        patient = cls(rng=rng, config=config)
        patient.name = snapshot.name
        patient.clothes_color = snapshot.clothes_color
        patient.skin_color = snapshot.skin_color
        patient._constitution = snapshot.constitution
        patient._needs = mains + [n for n in snapshot.needs if not n.is_main]
        patient._primary_code = mains[0].code if mains else snapshot.primary_need_code
        patient._toxicity_capacity = snapshot.toxicity_capacity
        patient._toxicity_level = snapshot.toxicity_level
        patient._previous_satisfaction = snapshot.previous_satisfaction
        patient._alive = snapshot.alive
        return patient

    def to_dict(self) -> dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def __repr__(self) -> str:
        return (
            f"Patient(name={self.name!r}, needs={self.need_codes}, "
            f"toxicity={self._toxicity_level:.1f}/{self._toxicity_capacity}, alive={self._alive})"
        )
