"""Treatment Scoring Engine.

Turns a batch of administered remedies into a toxicity delta and a
satisfaction grade, mutating the patient:

1. **Toxicity**: each remedy's base toxicity, x1.5 when its element is the
   one that weakens the patient's constitution. The sum is applied to the
   patient; if that kills the patient, scoring stops there.
2. **Satisfaction**: every truth need is worth 2 (primary) or 1
   (secondary). A need is met when any remedy addresses it; its score is
   multiplied by 1.2 when a meeting remedy carries the benefiting element,
   and by the multiplier of the best meeting quality grade.
   ratio >= 0.8 is High, < 0.4 is Low, otherwise Medium. A primary need
   met only at grade C cannot yield High.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from loguru import logger

from clinicgym.agents.patient import Patient, SatisfactionGrade
from clinicgym.config import ClinicConfig, SatisfactionConfig
from clinicgym.domains.clinic.data_model import QualityGrade, Recipe, Remedy
from clinicgym.domains.clinic.elements import benefiting_element, weakening_element
from clinicgym.errors import DataIncompleteError, InvalidStateError

RemedyLike = Union[Remedy, Mapping[str, Any]]


@dataclass
class TreatmentOutcome:
    """Result of scoring one remedy batch."""
    toxicity_delta: float
    satisfaction: Optional[SatisfactionGrade]   # None when the patient died
    previous_toxicity: float = 0.0
    toxicity_level: float = 0.0
    remedy_toxicities: list[float] = field(default_factory=list)
    died: bool = False
    met_needs: list[str] = field(default_factory=list)
    bonus_needs: list[str] = field(default_factory=list)
    best_quality: dict[str, str] = field(default_factory=dict)
    need_scores: dict[str, float] = field(default_factory=dict)
    achieved_score: float = 0.0
    max_score: float = 0.0
    fulfillment_ratio: float = 0.0
    capped: bool = False

    def to_dict(self) -> dict:
        d = asdict(self)
        d["satisfaction"] = self.satisfaction.value if self.satisfaction else None
        return d


# ============================================================
# Helpers
# ============================================================

def quality_rank(grade: Union[QualityGrade, str]) -> int:
    """Rank of a quality grade, higher is better."""
    return QualityGrade(grade).rank


def quality_multiplier(grade: Union[QualityGrade, str], config: SatisfactionConfig) -> float:
    return float(config.quality_multipliers.get(QualityGrade(grade).value, 1.0))


def grade_for_ratio(ratio: float, config: SatisfactionConfig) -> SatisfactionGrade:
    if ratio >= config.high_threshold:
        return SatisfactionGrade.HIGH
    if ratio < config.low_threshold:
        return SatisfactionGrade.LOW
    return SatisfactionGrade.MEDIUM


def _as_remedies(remedies: Iterable[RemedyLike], default_quality: str) -> list[Remedy]:
    batch = []
    for r in remedies:
        if not isinstance(r, Remedy):
            r = dict(r)
            if not r.get("quality"):
                r["quality"] = default_quality
            r = Remedy.model_validate(r)
        batch.append(r)
    return batch


# ============================================================
# Scoring
# ============================================================

def score(
    patient: Patient,
    remedies: Sequence[RemedyLike],
    config: Optional[ClinicConfig] = None,
) -> TreatmentOutcome:
    """Score a remedy batch against the patient's truth state.

    Raises:
        InvalidStateError: patient is dead or has no constitution yet.
        DataIncompleteError: the batch is empty.
        ValueError: the batch holds more remedies than allowed.
    """
    config = config or patient.config
    sat = config.satisfaction

    if not patient.alive:
        raise InvalidStateError(f"Cannot treat deceased patient '{patient.name}'")
    if patient.constitution is None:
        raise InvalidStateError("Constitution must be assigned before treatment")
    batch = _as_remedies(remedies, sat.default_quality)
    if not batch:
        raise DataIncompleteError("Remedy batch holds no complete remedies")
    if len(batch) > sat.max_remedies_per_batch:
        raise ValueError(
            f"At most {sat.max_remedies_per_batch} remedies per batch, got {len(batch)}"
        )

    # ── toxicity step ──
    weakness = weakening_element(patient.constitution)
    remedy_toxicities = []
    for i, remedy in enumerate(batch):
        multiplier = config.toxicity.weakness_multiplier if remedy.element == weakness else 1.0
        remedy_toxicities.append(remedy.toxicity * multiplier)
        logger.debug(
            f"[Treatment] remedy {i + 1}: base={remedy.toxicity}, "
            f"element={remedy.element.value if remedy.element else None}, x{multiplier}"
        )
    delta = sum(remedy_toxicities)

    previous = patient.toxicity_level
    patient.increase_toxicity(delta)
    outcome = TreatmentOutcome(
        toxicity_delta=delta,
        satisfaction=None,
        previous_toxicity=previous,
        toxicity_level=patient.toxicity_level,
        remedy_toxicities=remedy_toxicities,
    )
    if not patient.alive:
        outcome.died = True
        logger.info(
            f"[Treatment] Toxicity {previous:.2f} -> {patient.toxicity_level:.2f} "
            f"(> {patient.toxicity_capacity}); patient died"
        )
        return outcome

    # ── satisfaction step ──
    benefit = benefiting_element(patient.constitution)
    max_score = 0.0
    achieved = 0.0
    for need in patient.needs:
        base = sat.primary_weight if need.is_main else sat.secondary_weight
        max_score += base

        meeting = [r for r in batch if r.addresses(need.code)]
        if not meeting:
            continue
        best = max((r.quality for r in meeting), key=quality_rank)
        need_score = base
        if any(r.element == benefit for r in meeting):
            need_score *= sat.benefit_multiplier
            outcome.bonus_needs.append(need.code)
        need_score *= quality_multiplier(best, sat)

        outcome.met_needs.append(need.code)
        outcome.best_quality[need.code] = best.value
        outcome.need_scores[need.code] = need_score
        achieved += need_score

    ratio = achieved / max_score if max_score > 0 else 0.0
    grade = grade_for_ratio(ratio, sat)

    primary = patient.primary_need_code
    if (
        grade == SatisfactionGrade.HIGH
        and primary in outcome.best_quality
        and outcome.best_quality[primary] == sat.capped_quality
    ):
        grade = SatisfactionGrade.MEDIUM
        outcome.capped = True
        logger.debug(f"[Treatment] Primary need met at grade {sat.capped_quality}, High capped to Medium")

    patient.record_satisfaction(grade)
    outcome.satisfaction = grade
    outcome.achieved_score = achieved
    outcome.max_score = max_score
    outcome.fulfillment_ratio = ratio
    logger.info(
        f"[Treatment] Toxicity {previous:.2f} -> {patient.toxicity_level:.2f}"
        f"/{patient.toxicity_capacity}, score {achieved:.2f}/{max_score:g} "
        f"({ratio:.1%}), satisfaction {grade.value}"
    )
    return outcome


# ============================================================
# Remedy intake
# ============================================================

_DATA_FIELDS = ("recipe", "needs", "toxicity", "element")
_REQUIRED_FIELDS = ("needs", "toxicity")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _split_needs(value: Any) -> list[str]:
    if isinstance(value, str):
        return [code.strip() for code in value.split(",") if code.strip()]
    return [str(code) for code in value]


def collect_remedies(
    entries: Sequence[Optional[Mapping[str, Any]]],
    max_batch: int = 3,
    recipes: Optional[Sequence[Recipe]] = None,
    default_quality: str = "B",
) -> list[Remedy]:
    """Validate raw remedy entries into a remedy batch.

    Each entry is a mapping with ``needs``, ``toxicity`` and optionally
    ``element``, ``quality`` and ``recipe``. A named recipe fills in
    ``needs`` and ``element`` when they are left blank.

    Empty entries are skipped. Any partially filled entry makes the whole
    batch incomplete.

    Raises:
        ValueError: more than ``max_batch`` entries, or an unknown recipe.
        DataIncompleteError: partial entries, or no complete entry at all.
    """
    if len(entries) > max_batch:
        raise ValueError(f"At most {max_batch} remedy entries, got {len(entries)}")
    book = {r.name: r for r in (recipes or [])}

    remedies = []
    incomplete: dict[int, list[str]] = {}
    for i, raw in enumerate(entries):
        entry = dict(raw or {})
        recipe_name = entry.get("recipe")
        if not _is_blank(recipe_name) and book:
            if recipe_name not in book:
                raise ValueError(f"Unknown recipe '{recipe_name}'. Available: {sorted(book)}")
            recipe = book[recipe_name]
            if _is_blank(entry.get("needs")):
                entry["needs"] = list(recipe.needs)
            if _is_blank(entry.get("element")):
                entry["element"] = recipe.element

        if all(_is_blank(entry.get(f)) for f in _DATA_FIELDS):
            continue
        missing = [f for f in _REQUIRED_FIELDS if _is_blank(entry.get(f))]
        if missing:
            incomplete[i] = missing
            continue

        remedies.append(Remedy(
            needs=_split_needs(entry["needs"]),
            toxicity=float(entry["toxicity"]),
            element=entry.get("element"),
            quality=entry.get("quality") or default_quality,
            name=recipe_name or "",
        ))

    if incomplete:
        details = "; ".join(
            f"entry {i + 1}: missing {', '.join(fields)}" for i, fields in incomplete.items()
        )
        logger.warning(f"[Treatment] Data incomplete: {details}")
        raise DataIncompleteError(f"Incomplete remedy entries: {details}", incomplete)
    if not remedies:
        raise DataIncompleteError("No complete remedy entries")
    return remedies
