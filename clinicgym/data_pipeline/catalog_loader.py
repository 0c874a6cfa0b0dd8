"""Catalog Loader: CSV catalogs -> ClinicDB.

Reads the three spreadsheet exports a clinic simulation runs against:

    needs.csv    NeedName, GreetingText
    clues.csv    ClueID, DiagnosisMethod, ClueText, HiddenRank, Conf<code>...
    recipes.csv  Name, Symptom1, Symptom2, Element[, BaseToxicity]

Malformed rows are dropped with a warning, so nothing malformed reaches the
engines. ``Conf<code>`` columns become the clue's ``weights`` mapping here
and nowhere else.

Usage:
    from clinicgym.data_pipeline.catalog_loader import load_catalogs

    db = load_catalogs("data/domains/clinic")
"""

import csv
import json
from pathlib import Path
from typing import Union

from loguru import logger
from pydantic import ValidationError

from clinicgym.domains.clinic.data_model import (
    ClinicDB,
    Clue,
    DiagnosisMethod,
    NeedDefinition,
    Recipe,
)

NEEDS_FILE = "needs.csv"
CLUES_FILE = "clues.csv"
RECIPES_FILE = "recipes.csv"
POOLS_FILE = "pools.json"

CONFIDENCE_PREFIX = "Conf"

# Spreadsheet method labels, glyphs included.
METHOD_ALIASES: dict[str, DiagnosisMethod] = {
    "望": DiagnosisMethod.LOOK,
    "聞": DiagnosisMethod.LISTEN,
    "闻": DiagnosisMethod.LISTEN,
    "問": DiagnosisMethod.ASK,
    "问": DiagnosisMethod.ASK,
    "切": DiagnosisMethod.PULSE,
    "look": DiagnosisMethod.LOOK,
    "listen": DiagnosisMethod.LISTEN,
    "ask": DiagnosisMethod.ASK,
    "pulse": DiagnosisMethod.PULSE,
}


def _read_rows(path: Path) -> list[dict[str, str]]:
    """Read a CSV file into stripped dict rows, skipping blank lines."""
    rows = []
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            cleaned = {
                (k or "").strip(): (v or "").strip()
                for k, v in row.items()
                if k is not None
            }
            if any(cleaned.values()):
                rows.append(cleaned)
    return rows


def _parse_int(value: str, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_method(value: str) -> DiagnosisMethod:
    """Map a spreadsheet method label to a DiagnosisMethod."""
    key = (value or "").strip()
    method = METHOD_ALIASES.get(key) or METHOD_ALIASES.get(key.lower())
    if method is None:
        raise ValueError(f"Unknown diagnosis method '{value}'")
    return method


# ══════════════════════════════════════════════════════════════
#  Needs
# ══════════════════════════════════════════════════════════════

def load_needs_csv(path: Union[str, Path]) -> list[NeedDefinition]:
    """Load need definitions. The code is the first character of NeedName."""
    needs = []
    seen = set()
    for line_no, row in enumerate(_read_rows(Path(path)), start=2):
        label = row.get("NeedName", "")
        if not label:
            logger.warning(f"[catalog] {path}:{line_no} dropped: empty NeedName")
            continue
        code = label[0]
        if code in seen:
            logger.warning(f"[catalog] {path}:{line_no} dropped: duplicate need code '{code}'")
            continue
        seen.add(code)
        needs.append(NeedDefinition(
            code=code,
            label=label,
            greeting_text=row.get("GreetingText", ""),
        ))
    logger.debug(f"[catalog] {len(needs)} needs loaded from {path}")
    return needs


# ══════════════════════════════════════════════════════════════
#  Clues
# ══════════════════════════════════════════════════════════════

def load_clues_csv(path: Union[str, Path], need_codes: list[str]) -> list[Clue]:
    """Load clues, translating ``Conf<code>`` columns into a weights mapping.

    Only columns for codes in ``need_codes`` are read; missing or
    non-numeric cells count as 0.
    """
    clues = []
    seen = set()
    for line_no, row in enumerate(_read_rows(Path(path)), start=2):
        clue_id = row.get("ClueID", "")
        if not clue_id:
            logger.warning(f"[catalog] {path}:{line_no} dropped: empty ClueID")
            continue
        if clue_id in seen:
            logger.warning(f"[catalog] {path}:{line_no} dropped: duplicate ClueID '{clue_id}'")
            continue
        try:
            method = parse_method(row.get("DiagnosisMethod", ""))
        except ValueError as e:
            logger.warning(f"[catalog] {path}:{line_no} dropped: {e}")
            continue

        weights = {}
        for code in need_codes:
            weight = _parse_int(row.get(f"{CONFIDENCE_PREFIX}{code}", ""))
            if weight > 0:
                weights[code] = weight
            elif weight < 0:
                logger.warning(
                    f"[catalog] {path}:{line_no} negative weight for '{code}' treated as 0"
                )

        seen.add(clue_id)
        clues.append(Clue(
            id=clue_id,
            method=method,
            text=row.get("ClueText", ""),
            hidden_rank=_parse_int(row.get("HiddenRank", "")),
            weights=weights,
        ))
    logger.debug(f"[catalog] {len(clues)} clues loaded from {path}")
    return clues


# ══════════════════════════════════════════════════════════════
#  Recipes
# ══════════════════════════════════════════════════════════════

def _symptom_to_code(value: str, need_codes: list[str]) -> str:
    """Symptoms are either a need code or its 1-based catalog position."""
    if value in need_codes:
        return value
    index = _parse_int(value, default=0)
    if 1 <= index <= len(need_codes):
        return need_codes[index - 1]
    return ""


def load_recipes_csv(path: Union[str, Path], need_codes: list[str]) -> list[Recipe]:
    """Load the recipe book."""
    recipes = []
    for line_no, row in enumerate(_read_rows(Path(path)), start=2):
        name = row.get("Name", "")
        needs = []
        for column in ("Symptom1", "Symptom2"):
            code = _symptom_to_code(row.get(column, ""), need_codes)
            if code and code not in needs:
                needs.append(code)
        try:
            recipes.append(Recipe(
                name=name,
                needs=needs,
                element=row.get("Element") or None,
                base_toxicity=float(row.get("BaseToxicity") or 0),
            ))
        except (ValidationError, ValueError) as e:
            logger.warning(f"[catalog] {path}:{line_no} dropped recipe '{name}': {e}")
    logger.debug(f"[catalog] {len(recipes)} recipes loaded from {path}")
    return recipes


# ══════════════════════════════════════════════════════════════
#  Full catalog
# ══════════════════════════════════════════════════════════════

def load_catalogs(data_dir: Union[str, Path]) -> ClinicDB:
    """Load every catalog found in ``data_dir`` into a ClinicDB.

    ``needs.csv`` is required. Clues, recipes and the identity pools
    (``pools.json``) are optional.
    """
    data_dir = Path(data_dir)
    needs_path = data_dir / NEEDS_FILE
    if not needs_path.exists():
        raise FileNotFoundError(f"Need catalog not found at {needs_path}")

    needs = load_needs_csv(needs_path)
    codes = [n.code for n in needs]

    clues = []
    clues_path = data_dir / CLUES_FILE
    if clues_path.exists():
        clues = load_clues_csv(clues_path, codes)
    else:
        logger.warning(f"[catalog] No clue catalog at {clues_path}")

    recipes = []
    recipes_path = data_dir / RECIPES_FILE
    if recipes_path.exists():
        recipes = load_recipes_csv(recipes_path, codes)

    pools = {}
    pools_path = data_dir / POOLS_FILE
    if pools_path.exists():
        with open(pools_path, "r", encoding="utf-8") as f:
            pools = json.load(f)

    db = ClinicDB(
        needs=needs,
        clues=clues,
        recipes=recipes,
        name_pool=pools.get("names", []),
        clothes_color_pool=pools.get("clothes_colors", []),
        skin_tone_pool=pools.get("skin_tones", []),
    )
    logger.info(
        f"[catalog] Loaded {len(needs)} needs, {len(clues)} clues and "
        f"{len(recipes)} recipes from {data_dir}"
    )
    return db
