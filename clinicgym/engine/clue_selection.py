"""Clue Selection Engine.

Decides which clues a visit reveals. Starting from zero confidence for every
catalog need, the engine repeatedly picks a clue that helps a present need
still below the completion threshold, preferring clues that point at the
patient's real needs and away from the absent ones:

    quality = sum(weights on present codes) / (sum(weights on absent codes) + 1)

The pick is uniform over the top ``shortlist_size`` candidates, so two visits
with the same patient rarely reveal the same clues in the same order.

Usage:
    result = select_clues(patient, db.clues, db.needs, rng=random.Random(7))
    for warning in result.warnings:
        print(warning)
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from loguru import logger

from clinicgym.agents.patient import Patient
from clinicgym.config import SelectionConfig
from clinicgym.domains.clinic.data_model import Clue, NeedCatalog, catalog_codes

NO_NEEDS_WARNING = "WARNING: Patient has no needs defined"


class SelectionTermination(str, Enum):
    """Why the selection loop stopped."""
    COMPLETE = "complete"      # every present need reached the threshold
    STARVED = "starved"        # no remaining clue helps an under-confident need
    EXHAUSTED = "exhausted"    # the clue catalog ran out
    ABORTED = "aborted"        # iteration ceiling reached
    NO_NEEDS = "no_needs"      # patient has no needs, nothing attempted


@dataclass
class ClueSelectionResult:
    """Outcome of one visit's clue selection."""
    selected_clues: list[Clue] = field(default_factory=list)
    confidence_totals: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    iterations: int = 0
    termination: SelectionTermination = SelectionTermination.COMPLETE

    @property
    def selected_ids(self) -> list[str]:
        return [c.id for c in self.selected_clues]

    def to_dict(self) -> dict:
        return {
            "selected_clues": self.selected_ids,
            "confidence_totals": dict(self.confidence_totals),
            "warnings": list(self.warnings),
            "iterations": self.iterations,
            "termination": self.termination.value,
        }


def clue_quality(clue: Clue, present: Sequence[str], absent: Sequence[str]) -> float:
    present_score = sum(clue.weight(c) for c in present)
    absent_score = sum(clue.weight(c) for c in absent)
    return present_score / (absent_score + 1)


def select_clues(
    patient: Patient,
    clue_catalog: Sequence[Clue],
    need_catalog: NeedCatalog,
    rng: Optional[random.Random] = None,
    config: Optional[SelectionConfig] = None,
) -> ClueSelectionResult:
    """Select the clues revealed during a visit.

    Args:
        patient: Patient whose truth needs drive the selection.
        clue_catalog: All clues available to the clinic.
        need_catalog: Need definitions (or codes); absent needs are the
            catalog codes the patient does not hold.
        rng: Random source for the shortlist pick. Defaults to a fresh
            ``random.Random()``.
        config: Thresholds and ceilings. Defaults to ``SelectionConfig()``.

    Returns:
        ClueSelectionResult. Starvation and the iteration ceiling are
        reported through ``warnings`` and ``termination``, never raised.
    """
    rng = rng if rng is not None else random.Random()
    config = config or SelectionConfig()

    present = patient.need_codes
    if not present:
        logger.warning(f"[ClueSelection] {NO_NEEDS_WARNING}")
        return ClueSelectionResult(
            warnings=[NO_NEEDS_WARNING],
            termination=SelectionTermination.NO_NEEDS,
        )

    all_codes = catalog_codes(need_catalog)
    all_codes += [c for c in present if c not in all_codes]
    absent = [c for c in all_codes if c not in present]
    threshold = config.completion_threshold

    totals = {code: 0 for code in all_codes}
    selected: list[Clue] = []
    available = list(clue_catalog)
    iterations = 0
    starved = False

    def all_present_satisfied() -> bool:
        return all(totals[c] >= threshold for c in present)

    def helps_underserved(clue: Clue) -> bool:
        return any(totals[c] < threshold and clue.weight(c) > 0 for c in present)

    while not all_present_satisfied() and available and iterations < config.max_iterations:
        iterations += 1

        pool = [clue for clue in available if helps_underserved(clue)]
        if not pool:
            starved = True
            break

        # sorted() is stable: equal-quality clues keep catalog order
        ranked = sorted(pool, key=lambda c: clue_quality(c, present, absent), reverse=True)
        shortlist = ranked[:config.shortlist_size]
        chosen = shortlist[rng.randrange(len(shortlist))]

        selected.append(chosen)
        for code in all_codes:
            totals[code] += chosen.weight(code)
        available.remove(chosen)
        logger.debug(
            f"[ClueSelection] iter {iterations}: {chosen.id} "
            f"(shortlist {[c.id for c in shortlist]}) -> {totals}"
        )

    if all_present_satisfied():
        termination = SelectionTermination.COMPLETE
    elif starved:
        termination = SelectionTermination.STARVED
    elif not available:
        termination = SelectionTermination.EXHAUSTED
    else:
        termination = SelectionTermination.ABORTED

    warnings = []
    for code in present:
        if totals[code] < threshold:
            warnings.append(
                f"WARNING: Need {code} only reached {totals[code]}/{threshold} confidence"
            )
    for code in absent:
        if totals[code] >= config.false_positive_threshold:
            warnings.append(
                f"WARNING: Absent need {code} reached {totals[code]} confidence "
                f"(false positive risk)"
            )
    if iterations >= config.max_iterations:
        warnings.append("WARNING: Maximum iterations reached in clue selection")

    for warning in warnings:
        logger.warning(f"[ClueSelection] {warning}")
    logger.info(
        f"[ClueSelection] {len(selected)} clues in {iterations} iterations "
        f"({termination.value})"
    )

    return ClueSelectionResult(
        selected_clues=selected,
        confidence_totals=totals,
        warnings=warnings,
        iterations=iterations,
        termination=termination,
    )
