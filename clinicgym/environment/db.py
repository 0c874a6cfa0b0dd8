"""Base database class for Clinic GYM domains.

A domain database is a pydantic model holding the static catalogs a
simulation runs against. It can be persisted to and restored from JSON and
fingerprinted, so two runs can prove they used identical catalogs.
"""

import hashlib
import json
from pathlib import Path
from typing import TypeVar, Union

from loguru import logger
from pydantic import BaseModel

T = TypeVar("T", bound="DB")


class DB(BaseModel):
    """Domain database backed by a JSON file."""

    @classmethod
    def load(cls: type[T], path: Union[str, Path]) -> T:
        """Load the database from a JSON file."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        db = cls.model_validate(raw)
        logger.debug(f"Loaded {cls.__name__} from {path}")
        return db

    def dump(self, path: Union[str, Path]) -> None:
        """Write the database to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

    def get_hash(self) -> str:
        """Stable SHA-256 fingerprint of the database contents."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
