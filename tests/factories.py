"""Factories for building patients, clues and catalogs in tests."""

from unittest.mock import MagicMock

from clinicgym.agents.patient import Patient, PatientSnapshot, SatisfactionGrade
from clinicgym.domains.clinic.data_model import (
    ClinicDB,
    Clue,
    DiagnosisMethod,
    Need,
    NeedDefinition,
    Recipe,
)
from clinicgym.domains.clinic.elements import Element

CODES = ["A", "B", "C", "D", "E"]


def make_need_catalog(codes=CODES) -> list[NeedDefinition]:
    return [
        NeedDefinition(code=code, label=f"{code}: need {code}", greeting_text=f"Help with {code}")
        for code in codes
    ]


def make_clue(clue_id: str, method: str = "look", **weights) -> Clue:
    return Clue(id=clue_id, method=DiagnosisMethod(method), text=f"clue {clue_id}", weights=weights)


def make_patient(
    needs=(("A", True), ("B", False)),
    constitution=Element.WOOD,
    capacity=100,
    level=0.0,
    alive=True,
    previous_satisfaction=SatisfactionGrade.NONE,
    rng=None,
    config=None,
) -> Patient:
    """Build a patient directly in a given truth state."""
    snapshot = PatientSnapshot(
        name="李玄真",
        constitution=constitution,
        needs=[Need(code=code, is_main=is_main) for code, is_main in needs],
        toxicity_capacity=capacity,
        toxicity_level=level,
        previous_satisfaction=previous_satisfaction,
        alive=alive,
    )
    return Patient.from_snapshot(snapshot, rng=rng, config=config)


def scripted_rng(random_values=(), randrange_values=(), choice_values=()) -> MagicMock:
    """A random source returning preset values in order."""
    rng = MagicMock()
    rng.random.side_effect = list(random_values)
    rng.randrange.side_effect = list(randrange_values)
    rng.choice.side_effect = list(choice_values)
    return rng


def make_db() -> ClinicDB:
    """Small catalog where every need can reach full confidence."""
    clues = [
        make_clue("LA", "look", A=60),
        make_clue("LB", "look", B=60),
        make_clue("LC", "listen", C=60),
        make_clue("QA", "ask", A=60),
        make_clue("QB", "ask", B=60),
        make_clue("QC", "ask", C=60),
        make_clue("PX", "pulse", A=10, B=10, C=10),
    ]
    recipes = [
        Recipe(name="Calm", needs=["A"], element=Element.FIRE, base_toxicity=5),
        Recipe(name="Vigor", needs=["B"], element=Element.EARTH, base_toxicity=5),
        Recipe(name="Cool", needs=["C", "A"], element=Element.WATER, base_toxicity=8),
    ]
    return ClinicDB(
        needs=make_need_catalog(["A", "B", "C"]),
        clues=clues,
        recipes=recipes,
        name_pool=["李玄真", "王守一"],
        clothes_color_pool=["#355C7D"],
        skin_tone_pool=["#F2D1B0"],
    )
