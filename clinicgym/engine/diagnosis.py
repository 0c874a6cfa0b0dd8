"""Diagnosis session: what the practitioner learns during one visit.

The clue selection decides which clues exist in a visit; the diagnosis
session tracks which of them the practitioner actually collects. Observable
clues (look / listen) are picked up directly, questions (ask) are asked one
at a time in random order, and the pulse (once per session) reveals the
toxicity reading. Collected confidence per need is capped at the
completion threshold.

``finalize()`` produces the practitioner's DiagnosedState, either derived
from the confirmed needs or committed explicitly.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from loguru import logger

from clinicgym.agents.patient import Patient, ToxicityStage, stage_for_ratio
from clinicgym.config import ClinicConfig
from clinicgym.domains.clinic.data_model import (
    Clue,
    DiagnosisMethod,
    Need,
    NeedCatalog,
    catalog_codes,
)
from clinicgym.domains.clinic.elements import Element
from clinicgym.engine.clue_selection import ClueSelectionResult
from clinicgym.errors import InvalidStateError

OBSERVABLE_METHODS = (DiagnosisMethod.LOOK, DiagnosisMethod.LISTEN)
RECORD_VERSION = "1.0.0"


@dataclass
class PulseReading:
    """Toxicity as felt at the pulse."""
    level: float
    capacity: int

    @property
    def ratio(self) -> float:
        return self.level / self.capacity if self.capacity > 0 else 0.0


@dataclass
class DiagnosedState:
    """The practitioner's view of the patient after diagnosis."""
    constitution: Optional[Element]
    needs: list[Need] = field(default_factory=list)
    toxicity_stage: ToxicityStage = ToxicityStage.UNKNOWN

    @property
    def main_code(self) -> Optional[str]:
        for need in self.needs:
            if need.is_main:
                return need.code
        return None

    @property
    def codes(self) -> list[str]:
        return [n.code for n in self.needs]

    def to_dict(self) -> dict:
        return {
            "constitution": self.constitution.value if self.constitution else None,
            "needs": [n.model_dump() for n in self.needs],
            "toxicity_stage": self.toxicity_stage.value,
        }


class DiagnosisSession:
    """Collects clues for one visit and commits the diagnosis."""

    def __init__(
        self,
        patient: Patient,
        selection: ClueSelectionResult,
        need_catalog: NeedCatalog,
        rng: Optional[random.Random] = None,
        config: Optional[ClinicConfig] = None,
    ):
        self.patient = patient
        self.selection = selection
        self.rng = rng if rng is not None else random.Random()
        self.config = config or patient.config
        self.need_codes = catalog_codes(need_catalog)

        self.collected_confidences: dict[str, int] = {code: 0 for code in self.need_codes}
        self.collected_ids: list[str] = []
        self.pulse_reading: Optional[PulseReading] = None
        self.diagnosed: Optional[DiagnosedState] = None
        self._clues = {clue.id: clue for clue in selection.selected_clues}

    @property
    def threshold(self) -> int:
        return self.config.selection.completion_threshold

    @property
    def observable_clues(self) -> list[Clue]:
        return [c for c in self.selection.selected_clues if c.method in OBSERVABLE_METHODS]

    @property
    def questions(self) -> list[Clue]:
        return [c for c in self.selection.selected_clues if c.method == DiagnosisMethod.ASK]

    @property
    def remaining_questions(self) -> list[Clue]:
        return [c for c in self.questions if c.id not in self.collected_ids]

    @property
    def finalized(self) -> bool:
        return self.diagnosed is not None

    def _check_open(self) -> None:
        if self.finalized:
            raise InvalidStateError("Diagnosis already finalized")

    def collect_clue(self, clue_id: str) -> Clue:
        """Collect a revealed clue and add its weights (capped)."""
        self._check_open()
        if clue_id not in self._clues:
            raise ValueError(f"Clue '{clue_id}' was not revealed in this visit")
        if clue_id in self.collected_ids:
            raise ValueError(f"Clue '{clue_id}' already collected")

        clue = self._clues[clue_id]
        for code in self.need_codes:
            self.collected_confidences[code] = min(
                self.threshold, self.collected_confidences[code] + clue.weight(code)
            )
        self.collected_ids.append(clue_id)
        logger.debug(f"[Diagnosis] Collected {clue_id} ({clue.method.value}): {self.collected_confidences}")
        return clue

    def ask_question(self) -> Optional[Clue]:
        """Ask a random remaining question; ``None`` when none are left."""
        self._check_open()
        remaining = self.remaining_questions
        if not remaining:
            return None
        clue = remaining[self.rng.randrange(len(remaining))]
        return self.collect_clue(clue.id)

    def take_pulse(self) -> PulseReading:
        self._check_open()
        if self.pulse_reading is not None:
            raise InvalidStateError("Pulse already taken in this visit")
        if self.patient.toxicity_capacity is None:
            raise InvalidStateError("Patient has no toxicity capacity yet")
        self.pulse_reading = PulseReading(
            level=self.patient.toxicity_level,
            capacity=self.patient.toxicity_capacity,
        )
        return self.pulse_reading

    @property
    def is_complete(self) -> bool:
        """Every truth need has been confirmed."""
        return all(
            self.collected_confidences.get(code, 0) >= self.threshold
            for code in self.patient.need_codes
        )

    def confirmed_codes(self) -> list[str]:
        return [c for c in self.need_codes if self.collected_confidences[c] >= self.threshold]

    def finalize(
        self,
        main_code: Optional[str] = None,
        secondary_codes: Optional[Sequence[str]] = None,
    ) -> DiagnosedState:
        """Commit the diagnosis.

        Without arguments the diagnosed needs are the confirmed codes, with
        the main flag copied from the patient and the main need first. With
        ``main_code`` (and optional ``secondary_codes``) the practitioner's
        explicit choice is recorded instead.
        """
        self._check_open()
        secondary_codes = list(secondary_codes or [])

        if main_code is None:
            if secondary_codes:
                raise ValueError("secondary_codes require a main_code")
            primary = self.patient.primary_need_code
            confirmed = self.confirmed_codes()
            needs = [Need(code=c, is_main=(c == primary)) for c in confirmed]
            needs.sort(key=lambda n: not n.is_main)
        else:
            max_secondary = self.config.needs.max_secondary
            unknown = [c for c in [main_code] + secondary_codes if c not in self.need_codes]
            if unknown:
                raise ValueError(f"Unknown need codes: {unknown}")
            if main_code in secondary_codes or len(set(secondary_codes)) != len(secondary_codes):
                raise ValueError("Diagnosed need codes must be distinct")
            if len(secondary_codes) > max_secondary:
                raise ValueError(f"At most {max_secondary} secondary needs, got {len(secondary_codes)}")
            needs = [Need(code=main_code, is_main=True)]
            needs += [Need(code=c, is_main=False) for c in secondary_codes]

        if self.pulse_reading is None:
            stage = ToxicityStage.UNKNOWN
        else:
            stage = stage_for_ratio(self.pulse_reading.ratio, self.config.toxicity.stage_bounds)

        self.diagnosed = DiagnosedState(
            constitution=self.patient.constitution,
            needs=needs,
            toxicity_stage=stage,
        )
        logger.info(
            f"[Diagnosis] Diagnosed {self.diagnosed.codes} (main {self.diagnosed.main_code}), "
            f"toxicity {stage.value}"
        )
        return self.diagnosed

    def export_record(self) -> dict:
        """Truth vs. diagnosed state, for offline review of a diagnosis."""
        if self.diagnosed is None:
            raise InvalidStateError("Diagnosis not finalized")
        patient = self.patient
        return {
            "version": RECORD_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "diagnosis": {
                "truth": {
                    "constitution": patient.constitution.value if patient.constitution else None,
                    "needs": [n.model_dump() for n in patient.needs],
                    "toxicity": {
                        "current": patient.toxicity_level,
                        "max": patient.toxicity_capacity,
                    },
                },
                "diagnosed": self.diagnosed.to_dict(),
            },
        }
