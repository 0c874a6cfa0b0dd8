"""Data models for the Clinic domain.

Simulates a herbal clinic where a single patient returns visit after visit:
- Need catalog (what a patient can suffer from, coded by one symbol)
- Clue catalog (diagnostic evidence with per-need confidence weights)
- Recipe catalog (remedy templates: addressed needs and elemental affinity)
- Remedies (what is actually administered: toxicity, element, quality grade)
"""

import os
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinicgym.domains.clinic.elements import Element, parse_element
from clinicgym.environment.db import DB


class DiagnosisMethod(str, Enum):
    """The four classical examinations."""
    LOOK = "look"       # 望 observation
    LISTEN = "listen"   # 聞 listening / smelling
    ASK = "ask"         # 問 questioning
    PULSE = "pulse"     # 切 pulse taking


class QualityGrade(str, Enum):
    """Remedy quality grade, ranked U > S > A > B > C."""
    U = "U"
    S = "S"
    A = "A"
    B = "B"
    C = "C"

    @property
    def rank(self) -> int:
        """Higher is better (C=0 ... U=4)."""
        return QUALITY_ORDER.index(self)


QUALITY_ORDER = [QualityGrade.C, QualityGrade.B, QualityGrade.A, QualityGrade.S, QualityGrade.U]


class NeedDefinition(BaseModel):
    """Catalog entry for a need."""
    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1, max_length=1, description="Single-symbol need code, e.g. 'A'")
    label: str = Field(default="", description="Display label")
    greeting_text: str = Field(default="", description="What the patient says when this need is primary")


class Need(BaseModel):
    """A need held by a patient."""
    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1)
    is_main: bool = False


NeedCatalog = Sequence[Union[NeedDefinition, str]]


def catalog_codes(catalog: NeedCatalog) -> list[str]:
    """Need codes of a catalog given as definitions or bare codes."""
    codes = [n.code if isinstance(n, NeedDefinition) else str(n) for n in catalog]
    if len(codes) != len(set(codes)):
        raise ValueError(f"Need catalog has duplicate codes: {codes}")
    return codes


class Clue(BaseModel):
    """A discrete piece of diagnostic evidence."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    method: DiagnosisMethod
    text: str = ""
    hidden_rank: int = 0
    weights: Dict[str, int] = Field(
        default_factory=dict,
        description="Confidence contribution per need code",
    )

    @field_validator("weights")
    @classmethod
    def _non_negative(cls, v: Dict[str, int]) -> Dict[str, int]:
        for code, weight in v.items():
            if weight < 0:
                raise ValueError(f"Clue weight for need '{code}' must be non-negative, got {weight}")
        return v

    def weight(self, code: str) -> int:
        return self.weights.get(code, 0)


class Recipe(BaseModel):
    """Remedy template from the recipe book."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    needs: List[str] = Field(min_length=1)
    element: Optional[Element] = None
    base_toxicity: float = Field(default=0.0, ge=0)

    @field_validator("element", mode="before")
    @classmethod
    def _parse_element(cls, v):
        return parse_element(v)


class Remedy(BaseModel):
    """An administered treatment item."""
    model_config = ConfigDict(frozen=True)

    needs: FrozenSet[str] = Field(min_length=1, description="Need codes this remedy addresses")
    toxicity: float = Field(ge=0, description="Base toxicity before elemental amplification")
    element: Optional[Element] = None
    quality: QualityGrade = QualityGrade.B
    name: str = ""

    @field_validator("element", mode="before")
    @classmethod
    def _parse_element(cls, v):
        return parse_element(v)

    @field_validator("quality", mode="before")
    @classmethod
    def _parse_quality(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def addresses(self, code: str) -> bool:
        return code in self.needs


class ClinicDB(DB):
    """Clinic domain database: the static catalogs a simulation runs against."""
    needs: List[NeedDefinition] = Field(default_factory=list)
    clues: List[Clue] = Field(default_factory=list)
    recipes: List[Recipe] = Field(default_factory=list)
    name_pool: List[str] = Field(default_factory=list, description="Patient names")
    clothes_color_pool: List[str] = Field(default_factory=list)
    skin_tone_pool: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_keys(self) -> "ClinicDB":
        codes = [n.code for n in self.needs]
        if len(codes) != len(set(codes)):
            raise ValueError(f"Duplicate need codes in catalog: {codes}")
        ids = [c.id for c in self.clues]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate clue ids in catalog")
        return self

    @property
    def need_codes(self) -> list[str]:
        return [n.code for n in self.needs]

    def get_need(self, code: str) -> NeedDefinition:
        for need in self.needs:
            if need.code == code:
                return need
        raise ValueError(f"Need '{code}' not found. Available: {self.need_codes}")

    def get_clue(self, clue_id: str) -> Clue:
        for clue in self.clues:
            if clue.id == clue_id:
                return clue
        raise ValueError(f"Clue '{clue_id}' not found.")

    def recipes_for(self, code: str) -> list[Recipe]:
        return [r for r in self.recipes if code in r.needs]

    @classmethod
    def from_csv_dir(cls, data_dir: str) -> "ClinicDB":
        """Build the database from the ``needs.csv``/``clues.csv``/``recipes.csv`` files."""
        from clinicgym.data_pipeline.catalog_loader import load_catalogs

        return load_catalogs(data_dir)


_DOMAIN_DATA_DIR = os.path.join(
    os.path.dirname(os.path.abspath(__file__)),
    "..", "..", "..", "data", "domains", "clinic",
)
DATA_DIR = os.path.normpath(_DOMAIN_DATA_DIR)


def get_db() -> ClinicDB:
    """Load the bundled clinic catalogs."""
    return ClinicDB.from_csv_dir(DATA_DIR)
