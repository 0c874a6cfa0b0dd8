"""Tests for the clue selection engine."""

import random

import pytest

from clinicgym.agents.patient import Patient
from clinicgym.config import SelectionConfig
from clinicgym.domains.clinic.data_model import get_db
from clinicgym.engine.clue_selection import (
    NO_NEEDS_WARNING,
    SelectionTermination,
    clue_quality,
    select_clues,
)
from tests.factories import CODES, make_clue, make_patient, scripted_rng


class TestNoNeeds:
    def test_empty_result_with_single_warning(self, need_catalog):
        rng = scripted_rng()
        result = select_clues(Patient(), [make_clue("X", A=50)], need_catalog, rng=rng)
        assert result.selected_clues == []
        assert result.warnings == [NO_NEEDS_WARNING]
        assert "no needs" in result.warnings[0].lower()
        assert result.iterations == 0
        assert result.termination == SelectionTermination.NO_NEEDS
        rng.randrange.assert_not_called()


class TestSelectionLoop:
    def test_completes_when_present_needs_reach_threshold(self, need_catalog):
        clues = [make_clue("a1", A=60), make_clue("a2", A=50), make_clue("c1", C=70)]
        patient = make_patient(needs=[("A", True)])
        result = select_clues(patient, clues, need_catalog, rng=random.Random(0))
        assert result.termination == SelectionTermination.COMPLETE
        assert result.confidence_totals["A"] == 110
        assert result.warnings == []
        assert "c1" not in result.selected_ids

    def test_zero_weight_clue_never_selected(self, need_catalog):
        clues = [
            make_clue("a1", A=40),
            make_clue("b1", B=40),
            make_clue("a2", A=40, B=40),
            make_clue("noise", C=90, D=90),
            make_clue("blank"),
        ]
        for seed in range(50):
            patient = make_patient(needs=[("A", True), ("B", False)])
            result = select_clues(patient, clues, need_catalog, rng=random.Random(seed))
            assert "noise" not in result.selected_ids
            assert "blank" not in result.selected_ids

    def test_starvation_warns_for_unserved_need(self, need_catalog):
        clues = [make_clue("a1", A=60), make_clue("a2", A=60), make_clue("c1", C=50)]
        patient = make_patient(needs=[("A", True), ("B", False)])
        result = select_clues(patient, clues, need_catalog, rng=random.Random(1))
        assert result.termination == SelectionTermination.STARVED
        assert result.confidence_totals["A"] == 120
        assert result.warnings == ["WARNING: Need B only reached 0/100 confidence"]

    def test_exhausted_catalog(self, need_catalog):
        clues = [make_clue("a1", A=30), make_clue("a2", A=30)]
        patient = make_patient(needs=[("A", True)])
        result = select_clues(patient, clues, need_catalog, rng=random.Random(2))
        assert result.termination == SelectionTermination.EXHAUSTED
        assert result.iterations == 2
        assert result.warnings == ["WARNING: Need A only reached 60/100 confidence"]

    def test_iteration_ceiling(self, need_catalog):
        clues = [make_clue(f"a{i}", A=10) for i in range(5)]
        patient = make_patient(needs=[("A", True)])
        config = SelectionConfig(max_iterations=2)
        result = select_clues(patient, clues, need_catalog, rng=random.Random(3), config=config)
        assert result.termination == SelectionTermination.ABORTED
        assert result.iterations == 2
        assert len(result.selected_clues) == 2
        assert "WARNING: Maximum iterations reached in clue selection" in result.warnings
        assert "WARNING: Need A only reached 20/100 confidence" in result.warnings

    def test_false_positive_warning(self, need_catalog):
        clues = [make_clue("ac", A=100, C=85)]
        patient = make_patient(needs=[("A", True)])
        result = select_clues(patient, clues, need_catalog, rng=random.Random(0))
        assert result.termination == SelectionTermination.COMPLETE
        assert result.warnings == [
            "WARNING: Absent need C reached 85 confidence (false positive risk)"
        ]

    def test_totals_are_not_clamped(self, need_catalog):
        clues = [make_clue("big", A=150, B=20)]
        patient = make_patient(needs=[("A", True)])
        result = select_clues(patient, clues, need_catalog, rng=random.Random(0))
        assert result.confidence_totals == {"A": 150, "B": 20, "C": 0, "D": 0, "E": 0}

    def test_every_present_need_confirmed_or_warned(self):
        db = get_db()
        for seed in range(30):
            rng = random.Random(seed)
            patient = Patient(rng=rng)
            patient.initialize_needs(db.needs)
            result = select_clues(patient, db.clues, db.needs, rng=rng)
            for code in patient.need_codes:
                total = result.confidence_totals[code]
                assert total >= 100 or any(f"Need {code} only reached" in w for w in result.warnings)


class TestRanking:
    def test_quality_formula(self):
        clue = make_clue("x", A=40, B=20, C=9)
        assert clue_quality(clue, ["A", "B"], ["C", "D"]) == pytest.approx(60 / 10)

    def test_greedy_order_with_shortlist_of_one(self, need_catalog):
        clues = [make_clue("x", A=50, B=50), make_clue("y", A=40), make_clue("z", A=30)]
        patient = make_patient(needs=[("A", True)])
        config = SelectionConfig(shortlist_size=1)
        result = select_clues(patient, clues, need_catalog, rng=random.Random(0), config=config)
        assert result.selected_ids == ["y", "z", "x"]

    def test_ties_keep_catalog_order(self, need_catalog):
        clues = [make_clue("t1", A=50), make_clue("t2", A=50), make_clue("t3", A=50)]
        patient = make_patient(needs=[("A", True)])
        config = SelectionConfig(shortlist_size=1)
        result = select_clues(patient, clues, need_catalog, rng=random.Random(0), config=config)
        assert result.selected_ids == ["t1", "t2"]

    def test_pick_is_uniform_over_top_three(self, need_catalog):
        clues = [
            make_clue("q1", A=100),
            make_clue("q2", A=90),
            make_clue("q3", A=80),
            make_clue("q4", A=70),
        ]
        patient = make_patient(needs=[("A", True)])
        rng = scripted_rng(randrange_values=[2, 0])
        result = select_clues(patient, clues, need_catalog, rng=rng)
        assert result.selected_ids == ["q3", "q1"]
        assert [c.args for c in rng.randrange.call_args_list] == [(3,), (3,)]

    def test_shortlist_shrinks_with_pool(self, need_catalog):
        clues = [make_clue("only", A=100)]
        patient = make_patient(needs=[("A", True)])
        rng = scripted_rng(randrange_values=[0])
        select_clues(patient, clues, need_catalog, rng=rng)
        rng.randrange.assert_called_once_with(1)


class TestDeterminism:
    def test_same_seed_same_result(self):
        db = get_db()

        def run(seed):
            patient = make_patient(needs=[("A", True), ("D", False), ("E", False)])
            result = select_clues(patient, db.clues, db.needs, rng=random.Random(seed))
            return result.selected_ids, result.confidence_totals, result.warnings

        assert run(5) == run(5)

    def test_result_to_dict(self, need_catalog):
        patient = make_patient(needs=[("A", True)])
        result = select_clues(patient, [make_clue("a", A=100)], need_catalog, rng=random.Random(0))
        data = result.to_dict()
        assert data["selected_clues"] == ["a"]
        assert data["termination"] == "complete"
        assert data["iterations"] == 1
        assert set(data["confidence_totals"]) == set(CODES)
