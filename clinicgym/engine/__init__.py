"""Simulation engines for the Clinic GYM.

Provides:
- Clue selection (which clues a visit reveals, confidence totals, warnings)
- Diagnosis session (clue collection, questions, pulse, diagnosed state)
- Treatment scoring (toxicity delta and satisfaction grade)
- Visit session (the per-patient visit state machine)
"""

from clinicgym.engine.clue_selection import (
    ClueSelectionResult,
    SelectionTermination,
    select_clues,
)
from clinicgym.engine.diagnosis import (
    DiagnosedState,
    DiagnosisSession,
    PulseReading,
)
from clinicgym.engine.treatment import (
    TreatmentOutcome,
    collect_remedies,
    quality_rank,
    score,
)
from clinicgym.engine.visit import VisitSession, VisitState

__all__ = [
    # Clue selection
    "ClueSelectionResult",
    "SelectionTermination",
    "select_clues",
    # Diagnosis
    "DiagnosedState",
    "DiagnosisSession",
    "PulseReading",
    # Treatment
    "TreatmentOutcome",
    "collect_remedies",
    "quality_rank",
    "score",
    # Visit
    "VisitSession",
    "VisitState",
]
