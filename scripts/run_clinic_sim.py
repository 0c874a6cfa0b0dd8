#!/usr/bin/env python3
"""Run a seeded multi-visit clinic simulation with a simple prescribing policy.

The policy treats every diagnosed need with the least toxic recipe that
addresses it, preferring recipes of the benefiting element and avoiding the
weakening one.

Usage:
    python scripts/run_clinic_sim.py --seed 7 --visits 10
    python scripts/run_clinic_sim.py --config configs/clinic.yaml --quality A --log-file logs/sim.log
    python scripts/run_clinic_sim.py --export-db outputs/clinic_db.json
"""

import argparse
import json
import random
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinicgym.config import ClinicConfig
from clinicgym.domains.clinic.data_model import ClinicDB, Recipe, get_db
from clinicgym.domains.clinic.elements import Element, benefiting_element, weakening_element
from clinicgym.engine.diagnosis import DiagnosedState
from clinicgym.engine.treatment import collect_remedies
from clinicgym.engine.visit import VisitSession, VisitState


def choose_recipe(
    code: str, recipes: list[Recipe], constitution: Optional[Element]
) -> Optional[Recipe]:
    candidates = [r for r in recipes if code in r.needs]
    if not candidates:
        return None
    benefit = benefiting_element(constitution) if constitution else None
    weakness = weakening_element(constitution) if constitution else None

    def rank(recipe: Recipe):
        return (recipe.element == weakness, recipe.element != benefit, recipe.base_toxicity)

    return min(candidates, key=rank)


def prescribe(diagnosed: DiagnosedState, db: ClinicDB, quality: str, max_batch: int) -> list[dict]:
    """Build remedy entries for the diagnosed needs, main need first."""
    entries = []
    covered = set()
    for need in diagnosed.needs:
        if need.code in covered or len(entries) >= max_batch:
            continue
        recipe = choose_recipe(need.code, db.recipes, diagnosed.constitution)
        if recipe is None:
            logger.warning(f"No recipe addresses need {need.code}")
            continue
        covered.update(recipe.needs)
        entries.append({
            "recipe": recipe.name,
            "toxicity": recipe.base_toxicity,
            "quality": quality,
        })
    return entries


def run_simulation(
    db: ClinicDB, config: ClinicConfig, seed: int, visits: int, quality: str
) -> dict:
    session = VisitSession(db, rng=random.Random(seed), config=config)
    visit_log = []

    for _ in range(visits):
        selection = session.start_visit()
        session.examine()
        diagnosis = session.begin_diagnosis()
        for clue in diagnosis.observable_clues:
            diagnosis.collect_clue(clue.id)
        while diagnosis.ask_question() is not None:
            pass
        diagnosis.take_pulse()
        diagnosed = session.complete_diagnosis()

        entries = prescribe(diagnosed, db, quality, config.satisfaction.max_remedies_per_batch)
        if not entries:
            logger.error(f"Nothing to prescribe on visit {session.visit_count}; stopping")
            break
        remedies = collect_remedies(
            entries,
            max_batch=config.satisfaction.max_remedies_per_batch,
            recipes=db.recipes,
            default_quality=config.satisfaction.default_quality,
        )
        outcome = session.administer(remedies)
        visit_log.append({
            "visit": session.visit_count,
            "truth_needs": session.patient.need_codes,
            "need_change": session.need_change.to_dict() if session.need_change else None,
            "selection": selection.to_dict(),
            "diagnosed": diagnosed.to_dict(),
            "prescribed": entries,
            "outcome": outcome.to_dict(),
        })
        if session.state == VisitState.DECEASED:
            break
        session.end_visit()

    return {
        "seed": seed,
        "catalog_hash": db.get_hash(),
        "visits": visit_log,
        "final": session.snapshot().model_dump(mode="json"),
    }


def main():
    parser = argparse.ArgumentParser(description="Run a seeded clinic simulation")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--visits", type=int, default=10, help="Maximum number of visits")
    parser.add_argument("--config", type=str, default=None, help="YAML config file")
    parser.add_argument("--data-dir", type=str, default=None, help="Catalog CSV directory")
    parser.add_argument("--db", type=str, default=None, help="ClinicDB JSON (overrides --data-dir)")
    parser.add_argument("--quality", type=str, default="B", choices=["U", "S", "A", "B", "C"])
    parser.add_argument("--export-db", type=str, default=None, help="Write the catalog DB as JSON and exit")
    parser.add_argument("--output", type=str, default=None, help="Write the summary JSON here")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=str, default=None)
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level)
    if args.log_file:
        logger.add(args.log_file, level="DEBUG", rotation="10 MB")

    if args.db:
        db = ClinicDB.load(args.db)
    elif args.data_dir:
        db = ClinicDB.from_csv_dir(args.data_dir)
    else:
        db = get_db()

    if args.export_db:
        db.dump(args.export_db)
        logger.info(f"Catalog DB written to {args.export_db} (hash {db.get_hash()[:12]})")
        return

    config = ClinicConfig.from_yaml(args.config) if args.config else ClinicConfig()
    summary = run_simulation(db, config, args.seed, args.visits, args.quality)

    text = json.dumps(summary, indent=2, ensure_ascii=False)
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        logger.info(f"Summary written to {output}")
    else:
        print(text)


if __name__ == "__main__":
    main()
