"""Visit session: the per-patient visit state machine.

    NO_VISIT --start_visit--> AWAITING_CONSTITUTION --examine--> DIAGNOSING
    NO_VISIT --start_visit--> DIAGNOSING            (constitution known)
    DIAGNOSING --administer--> TREATED --end_visit--> NO_VISIT
    DIAGNOSING --administer--> DECEASED             (toxicity overdose)

DECEASED is absorbing: every operation on a dead patient raises
InvalidStateError. The session owns the patient for the whole visit; all
visit-scoped state (clue selection, diagnosis, outcome) lives here.
"""

import random
from enum import Enum
from typing import Optional, Sequence, Union

from loguru import logger

from clinicgym.agents.patient import NeedChange, Patient, PatientSnapshot
from clinicgym.config import ClinicConfig
from clinicgym.domains.clinic.data_model import ClinicDB
from clinicgym.domains.clinic.elements import Element
from clinicgym.engine.clue_selection import ClueSelectionResult, select_clues
from clinicgym.engine.diagnosis import DiagnosedState, DiagnosisSession
from clinicgym.engine.treatment import RemedyLike, TreatmentOutcome, score
from clinicgym.errors import InvalidStateError


class VisitState(str, Enum):
    NO_VISIT = "no_visit"
    AWAITING_CONSTITUTION = "awaiting_constitution"
    DIAGNOSING = "diagnosing"
    TREATED = "treated"
    DECEASED = "deceased"


class VisitSession:
    """Drives one patient through successive visits.

    The session and its patient share one ClinicConfig; passing a patient
    together with a different config raises ValueError.
    """

    def __init__(
        self,
        db: ClinicDB,
        patient: Optional[Patient] = None,
        rng: Optional[random.Random] = None,
        config: Optional[ClinicConfig] = None,
    ):
        if patient is not None and config is not None and patient.config != config:
            raise ValueError("Session config differs from the patient's config")
        self.db = db
        self.rng = rng if rng is not None else random.Random()
        self.config = config or (patient.config if patient else ClinicConfig())
        self.patient = patient or Patient(rng=self.rng, config=self.config)
        self.state = VisitState.NO_VISIT if self.patient.alive else VisitState.DECEASED
        self.visit_count = 0

        self.selection: Optional[ClueSelectionResult] = None
        self.need_change: Optional[NeedChange] = None
        self.diagnosis: Optional[DiagnosisSession] = None
        self.diagnosed: Optional[DiagnosedState] = None
        self.outcome: Optional[TreatmentOutcome] = None

    def _require(self, *states: VisitState) -> None:
        if self.state == VisitState.DECEASED or not self.patient.alive:
            raise InvalidStateError(f"Patient '{self.patient.name}' is deceased")
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            raise InvalidStateError(f"Operation requires state {expected}, current {self.state.value}")

    # ── lifecycle ──────────────────────────────────────────────

    def start_visit(self) -> ClueSelectionResult:
        """Open a visit: set up (or drift) the patient and select clues."""
        self._require(VisitState.NO_VISIT)
        patient = self.patient

        if not patient.has_identity:
            patient.assign_identity(
                self.db.name_pool, self.db.clothes_color_pool, self.db.skin_tone_pool
            )
        if not patient.needs:
            patient.initialize_needs(self.db.needs)
            self.need_change = None
        else:
            self.need_change = patient.update_secondary_needs(self.db.needs)

        self.selection = select_clues(
            patient, self.db.clues, self.db.needs, rng=self.rng, config=self.config.selection
        )
        self.diagnosis = None
        self.diagnosed = None
        self.outcome = None
        self.visit_count += 1

        if patient.constitution is None:
            self.state = VisitState.AWAITING_CONSTITUTION
        else:
            self.state = VisitState.DIAGNOSING
        logger.info(f"[Visit] Visit {self.visit_count} for '{patient.name}' started ({self.state.value})")
        return self.selection

    def examine(self, element: Optional[Element] = None) -> Element:
        """First in-visit interaction; assigns the constitution once."""
        self._require(VisitState.AWAITING_CONSTITUTION, VisitState.DIAGNOSING)
        constitution = self.patient.assign_constitution(element)
        self.state = VisitState.DIAGNOSING
        return constitution

    def begin_diagnosis(self) -> DiagnosisSession:
        self._require(VisitState.DIAGNOSING)
        if self.diagnosis is not None:
            raise InvalidStateError("Diagnosis already started in this visit")
        self.diagnosis = DiagnosisSession(
            self.patient, self.selection, self.db.needs, rng=self.rng, config=self.config
        )
        return self.diagnosis

    def complete_diagnosis(
        self,
        main_code: Optional[str] = None,
        secondary_codes: Optional[Sequence[str]] = None,
    ) -> DiagnosedState:
        self._require(VisitState.DIAGNOSING)
        if self.diagnosis is None:
            self.begin_diagnosis()
        self.diagnosed = self.diagnosis.finalize(main_code, secondary_codes)
        return self.diagnosed

    def administer(self, remedies: Sequence[RemedyLike]) -> TreatmentOutcome:
        """Score the remedy batch; the patient may die."""
        self._require(VisitState.DIAGNOSING)
        if self.diagnosed is None:
            raise InvalidStateError("Treatment requires a completed diagnosis")
        self.outcome = score(self.patient, remedies, self.config)
        self.state = VisitState.DECEASED if self.outcome.died else VisitState.TREATED
        return self.outcome

    def end_visit(self) -> None:
        self._require(VisitState.TREATED)
        self.selection = None
        self.diagnosis = None
        self.state = VisitState.NO_VISIT
        logger.info(f"[Visit] Visit {self.visit_count} for '{self.patient.name}' ended")

    # ── persistence ────────────────────────────────────────────

    def snapshot(self) -> PatientSnapshot:
        return self.patient.snapshot()

    @classmethod
    def restore(
        cls,
        snapshot: Union[PatientSnapshot, dict],
        db: ClinicDB,
        rng: Optional[random.Random] = None,
        config: Optional[ClinicConfig] = None,
    ) -> "VisitSession":
        """Resume from a snapshot, always between visits."""
        rng = rng if rng is not None else random.Random()
        patient = Patient.from_snapshot(snapshot, rng=rng, config=config)
        session = cls(db, patient=patient, rng=rng, config=config)
        logger.info(f"[Visit] Restored '{patient.name}' ({session.state.value})")
        return session
