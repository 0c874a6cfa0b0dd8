"""Gymnasium-compatible environment for the Clinic GYM.

One episode follows one patient across successive visits. Each visit is
opened and diagnosed automatically (every revealed clue collected, every
question asked, pulse taken); the agent only prescribes.

Observation space: Text (diagnosed state, revealed clues, recipe book)
Action space: Text (JSON list of up to 3 remedy entries)

Reward per visit: High 1.0, Medium 0.5, Low 0.0, death -1.0. An invalid or
incomplete batch earns 0.0 and leaves the visit open.
"""

import json
import random
from typing import Any, Optional

import gymnasium as gym
from gymnasium import spaces
from loguru import logger

from clinicgym.agents.patient import TOXICITY_STAGE_GLYPHS, SatisfactionGrade
from clinicgym.config import ClinicConfig
from clinicgym.domains.clinic.data_model import ClinicDB, get_db
from clinicgym.engine.treatment import collect_remedies
from clinicgym.engine.visit import VisitSession, VisitState
from clinicgym.errors import DataIncompleteError

CLINIC_ENV_ID = "ClinicGym-v0"

SATISFACTION_REWARDS = {
    SatisfactionGrade.HIGH: 1.0,
    SatisfactionGrade.MEDIUM: 0.5,
    SatisfactionGrade.LOW: 0.0,
}
DEATH_REWARD = -1.0


class ClinicGymEnv(gym.Env):
    """Gymnasium environment for prescribing remedies to a returning patient.

    Usage:
        register_clinic_gym()
        env = gym.make("ClinicGym-v0", max_visits=5)
        obs, info = env.reset(seed=0)
        obs, reward, terminated, truncated, info = env.step(
            '[{"recipe": "安神丹", "toxicity": 8, "quality": "A"}]'
        )
    """

    metadata = {"render_modes": ["human", "ansi"]}

    def __init__(
        self,
        data_dir: Optional[str] = None,
        config_path: Optional[str] = None,
        max_visits: int = 10,
        render_mode: Optional[str] = None,
        db: Optional[ClinicDB] = None,
        config: Optional[ClinicConfig] = None,
        **kwargs,
    ):
        """Initialize the GYM environment.

        Args:
            data_dir: Catalog directory. None = bundled catalogs.
            config_path: YAML config. None = defaults.
            max_visits: Visits before the episode is truncated.
            render_mode: 'human' or 'ansi' or None.
            db: Pre-built catalog database (overrides data_dir).
            config: Pre-built config (overrides config_path).
        """
        super().__init__()

        if db is None:
            db = ClinicDB.from_csv_dir(data_dir) if data_dir else get_db()
        if config is None:
            config = ClinicConfig.from_yaml(config_path) if config_path else ClinicConfig()
        self.db = db
        self.config = config
        self.max_visits = max_visits
        self.render_mode = render_mode

        # Gymnasium spaces (text-based), printable ASCII plus catalog glyphs
        _catalog_text = "".join(
            [n.label + n.greeting_text for n in db.needs]
            + [c.text for c in db.clues]
            + [r.name for r in db.recipes]
            + db.name_pool
            + list(TOXICITY_STAGE_GLYPHS.values())
        )
        _charset = "".join(chr(i) for i in range(32, 127)) + "\n" + "".join(
            sorted(set(_catalog_text) - {chr(i) for i in range(32, 127)})
        )
        self.observation_space = spaces.Text(
            min_length=0, max_length=100000, charset=_charset
        )
        self.action_space = spaces.Text(
            min_length=1, max_length=10000, charset=_charset
        )

        # State
        self._session: Optional[VisitSession] = None
        self._history: list[dict] = []
        self._total_reward = 0.0
        self._step_count = 0

    @property
    def session(self) -> Optional[VisitSession]:
        return self._session

    def reset(
        self, *, seed: Optional[int] = None, options: Optional[dict] = None
    ) -> tuple[str, dict]:
        """Start a new patient and open the first visit."""
        super().reset(seed=seed)

        rng = random.Random(int(self.np_random.integers(0, 2**31 - 1)))
        self._session = VisitSession(self.db, rng=rng, config=self.config)
        self._history = []
        self._total_reward = 0.0
        self._step_count = 0

        observation = self._open_visit()
        return observation, self._info()

    def step(self, action: str) -> tuple[str, float, bool, bool, dict]:
        """Administer a remedy batch.

        The action is a JSON list of remedy entries, each with ``needs``
        and ``toxicity`` (or a ``recipe`` name that fills in needs and
        element), plus optional ``element`` and ``quality``.
        """
        if self._session is None:
            raise RuntimeError("Call reset() before step()")
        self._step_count += 1
        session = self._session

        try:
            entries = json.loads(action)
            if isinstance(entries, dict):
                entries = entries.get("remedies", [entries])
            remedies = collect_remedies(
                entries,
                max_batch=self.config.satisfaction.max_remedies_per_batch,
                recipes=self.db.recipes,
                default_quality=self.config.satisfaction.default_quality,
            )
        except (ValueError, TypeError, DataIncompleteError) as e:
            observation = f"Invalid remedy batch: {e}"
            logger.debug(f"[ClinicGym] {observation}")
            self._record(action, observation, 0.0)
            return observation, 0.0, False, False, self._info()

        outcome = session.administer(remedies)
        terminated = False
        truncated = False

        if outcome.died:
            reward = DEATH_REWARD
            terminated = True
            observation = (
                f"The patient died: toxicity {outcome.toxicity_level:.1f} exceeded "
                f"{session.patient.toxicity_capacity}."
            )
        else:
            reward = SATISFACTION_REWARDS[outcome.satisfaction]
            observation = (
                f"Treatment result: satisfaction {outcome.satisfaction.value}, "
                f"toxicity +{outcome.toxicity_delta:.1f} "
                f"(score {outcome.achieved_score:.2f}/{outcome.max_score:g})."
            )
            session.end_visit()
            if session.visit_count >= self.max_visits:
                truncated = True
            else:
                observation += "\n\n" + self._open_visit()

        self._total_reward += reward
        self._record(action, observation, reward, outcome.to_dict())

        if self.render_mode == "human":
            self.render()

        return observation, reward, terminated, truncated, self._info()

    # ── helpers ────────────────────────────────────────────────

    def _open_visit(self) -> str:
        """Start a visit and run the diagnosis to completion."""
        session = self._session
        session.start_visit()
        session.examine()
        diagnosis = session.begin_diagnosis()
        for clue in diagnosis.observable_clues:
            diagnosis.collect_clue(clue.id)
        while diagnosis.ask_question() is not None:
            pass
        diagnosis.take_pulse()
        session.complete_diagnosis()
        return self._build_observation()

    def _build_observation(self) -> str:
        session = self._session
        patient = session.patient
        diagnosed = session.diagnosed
        stage = diagnosed.toxicity_stage
        lines = [
            f"=== Clinic GYM: visit {session.visit_count}/{self.max_visits} ===",
            f"Patient: {patient.name}",
            f"Constitution: {diagnosed.constitution.value if diagnosed.constitution else 'unknown'}",
            f"Toxicity: {stage.value} ({TOXICITY_STAGE_GLYPHS[stage]})",
        ]
        if patient.primary_need_code:
            greeting = self.db.get_need(patient.primary_need_code).greeting_text
            if greeting:
                lines.append(f"Greeting: {greeting}")

        lines.append("\n--- Revealed clues ---")
        for clue_id in session.diagnosis.collected_ids:
            clue = self.db.get_clue(clue_id)
            lines.append(f"[{clue.method.value}] {clue.text}")

        lines.append("\n--- Diagnosed needs ---")
        if diagnosed.needs:
            for need in diagnosed.needs:
                label = self.db.get_need(need.code).label
                lines.append(f"{need.code}{' (main)' if need.is_main else ''}: {label}")
        else:
            lines.append("(none confirmed)")

        if self.db.recipes:
            lines.append("\n--- Recipes ---")
            for recipe in self.db.recipes:
                element = recipe.element.value if recipe.element else "none"
                lines.append(
                    f"{recipe.name}: needs={','.join(recipe.needs)}, element={element}, "
                    f"toxicity={recipe.base_toxicity:g}"
                )

        lines.extend([
            "\n--- Instructions ---",
            f"Respond with a JSON list of at most "
            f"{self.config.satisfaction.max_remedies_per_batch} remedies, e.g.",
            '[{"recipe": "<name>", "toxicity": 8, "quality": "B"}]',
            'or [{"needs": ["A"], "toxicity": 8, "element": "fire", "quality": "A"}]',
        ])
        return "\n".join(lines)

    def _record(self, action: str, observation: str, reward: float, outcome: Optional[dict] = None):
        self._history.append({
            "step": self._step_count,
            "visit": self._session.visit_count,
            "action": action,
            "observation": observation,
            "reward": reward,
            "outcome": outcome,
        })

    def _info(self) -> dict[str, Any]:
        session = self._session
        return {
            "visit": session.visit_count,
            "state": session.state.value,
            "patient": session.patient.to_dict(),
            "diagnosed": session.diagnosed.to_dict() if session.diagnosed else None,
            "selection": session.selection.to_dict() if session.selection else None,
            "need_change": session.need_change.to_dict() if session.need_change else None,
            "total_reward": self._total_reward,
        }

    def render(self):
        """Render the environment state."""
        session = self._session
        output = []
        output.append(f"\n{'='*60}")
        if session is None:
            output.append("No episode (call reset())")
        else:
            patient = session.patient
            output.append(
                f"Patient: {patient.name} | Visit: {session.visit_count}/{self.max_visits} "
                f"| State: {session.state.value}"
            )
            output.append(
                f"Toxicity: {patient.toxicity_level:.1f}/{patient.toxicity_capacity} "
                f"| Satisfaction: {patient.previous_satisfaction.value} "
                f"| Total reward: {self._total_reward:.2f}"
            )
        output.append(f"{'='*60}")

        for entry in self._history[-3:]:  # Show last 3 steps
            output.append(f"\n[Step {entry['step']}]")
            output.append(f"  Action: {entry['action'][:200]}")
            output.append(f"  Result: {entry['observation'][:200]}")

        text = "\n".join(output)
        if self.render_mode == "human":
            print(text)
        return text

    def get_trajectory(self) -> dict:
        """Get the complete interaction trajectory for logging."""
        session = self._session
        return {
            "env_id": CLINIC_ENV_ID,
            "total_steps": self._step_count,
            "visits": session.visit_count if session else 0,
            "final_state": session.state.value if session else None,
            "patient": session.patient.to_dict() if session else None,
            "history": self._history,
            "total_reward": self._total_reward,
            "alive": session.state != VisitState.DECEASED if session else True,
        }


def register_clinic_gym():
    """Register the Clinic GYM environment with Gymnasium."""
    try:
        gym.register(
            id=CLINIC_ENV_ID,
            entry_point="clinicgym.gym.clinic_env:ClinicGymEnv",
        )
    except gym.error.Error:
        # Already registered
        pass
