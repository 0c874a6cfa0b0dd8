"""Tests for treatment scoring and remedy intake."""

import pytest

from clinicgym.agents.patient import SatisfactionGrade
from clinicgym.config import ClinicConfig, SatisfactionConfig
from clinicgym.domains.clinic.data_model import QualityGrade, Recipe, Remedy
from clinicgym.domains.clinic.elements import Element
from clinicgym.engine.treatment import collect_remedies, quality_rank, score
from clinicgym.errors import DataIncompleteError, InvalidStateError
from tests.factories import make_patient


def remedy(needs, toxicity=0.0, element=None, quality="B") -> Remedy:
    return Remedy(needs=needs, toxicity=toxicity, element=element, quality=quality)


# ── Toxicity step ───────────────────────────────────────────────────────────


class TestToxicity:
    def test_scoring_example(self):
        patient = make_patient(needs=[("A", True), ("B", False)], constitution=Element.WOOD)
        outcome = score(patient, [remedy(["A"], 10, Element.METAL, "B")])
        assert outcome.toxicity_delta == 15.0
        assert outcome.achieved_score == pytest.approx(2.0)
        assert outcome.max_score == 3
        assert outcome.fulfillment_ratio == pytest.approx(2 / 3)
        assert outcome.satisfaction == SatisfactionGrade.MEDIUM
        assert patient.toxicity_level == 15.0
        assert patient.previous_satisfaction == SatisfactionGrade.MEDIUM

    def test_only_weakening_element_amplifies(self):
        patient = make_patient(constitution=Element.WOOD)
        outcome = score(patient, [
            remedy(["A"], 10, Element.METAL),
            remedy(["B"], 10, Element.FIRE),
            remedy(["A"], 10, None),
        ])
        assert outcome.remedy_toxicities == [15.0, 10.0, 10.0]
        assert outcome.toxicity_delta == 35.0
        assert outcome.previous_toxicity == 0.0
        assert outcome.toxicity_level == 35.0

    def test_death_stops_scoring(self):
        patient = make_patient(
            capacity=100, level=95, previous_satisfaction=SatisfactionGrade.HIGH
        )
        outcome = score(patient, [remedy(["A", "B"], 10, None, "U")])
        assert outcome.died is True
        assert outcome.satisfaction is None
        assert outcome.met_needs == []
        assert patient.alive is False
        assert patient.previous_satisfaction == SatisfactionGrade.HIGH

    def test_survives_below_capacity(self):
        patient = make_patient(capacity=100, level=95)
        outcome = score(patient, [remedy(["A"], 4)])
        assert outcome.died is False
        assert patient.toxicity_level == 99


# ── Satisfaction step ───────────────────────────────────────────────────────


class TestSatisfaction:
    def test_benefit_element_bonus(self):
        # Wood is benefited by Water
        patient = make_patient(needs=[("A", True), ("B", False)], constitution=Element.WOOD)
        outcome = score(patient, [remedy(["A", "B"], 0, Element.WATER, "B")])
        assert outcome.bonus_needs == ["A", "B"]
        assert outcome.need_scores["A"] == pytest.approx(2.4)
        assert outcome.need_scores["B"] == pytest.approx(1.2)
        assert outcome.satisfaction == SatisfactionGrade.HIGH

    def test_best_quality_among_meeting_remedies(self):
        patient = make_patient(needs=[("A", True)], constitution=Element.FIRE)
        outcome = score(patient, [remedy(["A"], 0, None, "C"), remedy(["A"], 0, None, "S")])
        assert outcome.best_quality == {"A": "S"}
        assert outcome.need_scores["A"] == pytest.approx(2 * 1.3)

    def test_category_cap(self):
        patient = make_patient(needs=[("A", True), ("B", False)], constitution=Element.WOOD)
        outcome = score(patient, [
            remedy(["A"], 0, Element.WATER, "C"),
            remedy(["B"], 0, Element.WATER, "U"),
        ])
        # 2*1.2*0.8 + 1*1.2*1.5 = 3.72 of 3
        assert outcome.fulfillment_ratio >= 0.8
        assert outcome.capped is True
        assert outcome.satisfaction == SatisfactionGrade.MEDIUM
        assert patient.previous_satisfaction == SatisfactionGrade.MEDIUM

    def test_no_cap_when_primary_has_better_grade(self):
        patient = make_patient(needs=[("A", True), ("B", False)], constitution=Element.WOOD)
        outcome = score(patient, [
            remedy(["A"], 0, None, "C"),
            remedy(["A", "B"], 0, None, "A"),
        ])
        assert outcome.capped is False
        assert outcome.satisfaction == SatisfactionGrade.HIGH

    def test_low_when_only_secondary_met(self):
        patient = make_patient(needs=[("A", True), ("B", False)], constitution=Element.WOOD)
        outcome = score(patient, [remedy(["B"], 0, None, "C")])
        assert outcome.met_needs == ["B"]
        assert outcome.fulfillment_ratio == pytest.approx(0.8 / 3)
        assert outcome.satisfaction == SatisfactionGrade.LOW

    def test_unaddressed_needs_score_zero(self):
        patient = make_patient(needs=[("A", True)], constitution=Element.EARTH)
        outcome = score(patient, [remedy(["D"], 1)])
        assert outcome.achieved_score == 0
        assert outcome.satisfaction == SatisfactionGrade.LOW

    def test_ratio_zero_without_needs(self):
        patient = make_patient(needs=[], constitution=Element.EARTH)
        outcome = score(patient, [remedy(["A"], 1)])
        assert outcome.max_score == 0
        assert outcome.fulfillment_ratio == 0.0
        assert outcome.satisfaction == SatisfactionGrade.LOW

    def test_dict_remedies_accepted(self):
        patient = make_patient(needs=[("A", True)], constitution=Element.WOOD)
        outcome = score(patient, [{"needs": ["A"], "toxicity": 2, "element": "水", "quality": "u"}])
        assert outcome.need_scores["A"] == pytest.approx(2 * 1.2 * 1.5)

    def test_outcome_to_dict(self):
        patient = make_patient(needs=[("A", True)], constitution=Element.WOOD)
        data = score(patient, [remedy(["A"], 1)]).to_dict()
        assert data["satisfaction"] == "High"
        assert data["died"] is False


# ── Preconditions ───────────────────────────────────────────────────────────


class TestPreconditions:
    def test_dead_patient_raises(self):
        patient = make_patient(alive=False, level=150)
        with pytest.raises(InvalidStateError, match="deceased"):
            score(patient, [remedy(["A"], 1)])

    def test_missing_constitution_raises(self):
        patient = make_patient(constitution=None)
        with pytest.raises(InvalidStateError, match="Constitution"):
            score(patient, [remedy(["A"], 1)])

    def test_empty_batch_raises(self):
        patient = make_patient()
        with pytest.raises(DataIncompleteError):
            score(patient, [])
        assert patient.toxicity_level == 0

    def test_too_many_remedies_raises(self):
        patient = make_patient()
        with pytest.raises(ValueError, match="At most 3"):
            score(patient, [remedy(["A"], 1)] * 4)
        assert patient.toxicity_level == 0


class TestQualityRank:
    def test_order(self):
        ranks = [quality_rank(g) for g in ["C", "B", "A", "S", "U"]]
        assert ranks == sorted(ranks)
        assert quality_rank(QualityGrade.U) > quality_rank(QualityGrade.S)


# ── Remedy intake ───────────────────────────────────────────────────────────


class TestCollectRemedies:
    def test_empty_entries_skipped(self):
        remedies = collect_remedies([{"needs": ["A"], "toxicity": 5}, {}, None])
        assert len(remedies) == 1
        assert remedies[0].quality == QualityGrade.B

    def test_partial_entry_makes_batch_incomplete(self):
        with pytest.raises(DataIncompleteError) as exc_info:
            collect_remedies([{"needs": ["A"], "toxicity": 5}, {"needs": ["B"]}])
        assert exc_info.value.incomplete == {1: ["toxicity"]}

    def test_no_complete_entries(self):
        with pytest.raises(DataIncompleteError, match="No complete"):
            collect_remedies([{}, {"quality": "A"}])

    def test_quality_alone_is_not_data(self):
        with pytest.raises(DataIncompleteError):
            collect_remedies([{"quality": "S"}])

    def test_too_many_entries(self):
        with pytest.raises(ValueError, match="At most 3"):
            collect_remedies([{}] * 4)

    def test_recipe_fills_needs_and_element(self):
        recipes = [Recipe(name="安神丹", needs=["A"], element="火", base_toxicity=8)]
        remedies = collect_remedies([{"recipe": "安神丹", "toxicity": 8, "quality": "A"}], recipes=recipes)
        assert remedies[0].needs == frozenset({"A"})
        assert remedies[0].element == Element.FIRE
        assert remedies[0].name == "安神丹"

    def test_unknown_recipe(self):
        recipes = [Recipe(name="安神丹", needs=["A"])]
        with pytest.raises(ValueError, match="Unknown recipe"):
            collect_remedies([{"recipe": "無名", "toxicity": 1}], recipes=recipes)

    def test_comma_separated_needs(self):
        remedies = collect_remedies([{"needs": "A, C", "toxicity": "2.5"}])
        assert remedies[0].needs == frozenset({"A", "C"})
        assert remedies[0].toxicity == 2.5

    def test_negative_toxicity_rejected(self):
        with pytest.raises(ValueError):
            collect_remedies([{"needs": ["A"], "toxicity": -1}])


class TestDefaultQuality:
    def test_configured_default_applies_to_dict_remedies(self):
        config = ClinicConfig(satisfaction=SatisfactionConfig(default_quality="U"))
        patient = make_patient(needs=[("A", True)], constitution=Element.FIRE, config=config)
        outcome = score(patient, [{"needs": ["A"], "toxicity": 1}], config)
        assert outcome.best_quality == {"A": "U"}
        assert outcome.need_scores["A"] == pytest.approx(2 * 1.5)

    def test_explicit_quality_wins(self):
        config = ClinicConfig(satisfaction=SatisfactionConfig(default_quality="U"))
        patient = make_patient(needs=[("A", True)], constitution=Element.FIRE, config=config)
        outcome = score(patient, [{"needs": ["A"], "toxicity": 1, "quality": "C"}])
        assert outcome.best_quality == {"A": "C"}
