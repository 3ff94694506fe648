"""Recipe lookup by canonical ingredient name."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from ingredientx.ml.errors import ModelConfigError

logger = logging.getLogger(__name__)


class RecipeLookup(Protocol):
    """Read-only mapping from ingredient to recipe titles."""

    def lookup(self, ingredient: str) -> tuple[str, ...]:
        """Return recipe titles for a canonical ingredient name (empty if unknown)."""
        ...


class StaticRecipeLookup:
    """In-memory recipe table, fixed at construction."""

    def __init__(self, recipes: Mapping[str, Iterable[str]] | None = None) -> None:
        table: dict[str, tuple[str, ...]] = {}
        for ingredient, titles in (recipes or {}).items():
            key = ingredient.strip().lower()
            table[key] = table.get(key, ()) + tuple(titles)
        self._recipes = table

    @classmethod
    def from_json(cls, path: str | Path) -> StaticRecipeLookup:
        """Load a ``{"ingredient": ["title", ...]}`` JSON file.

        Raises:
            ModelConfigError: If the file is unreadable or malformed.
        """
        recipe_path = Path(path)
        try:
            data = json.loads(recipe_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ModelConfigError(f"Cannot read recipe file {recipe_path}: {exc}") from exc

        if not isinstance(data, dict) or not all(
            isinstance(titles, list) and all(isinstance(t, str) for t in titles) for titles in data.values()
        ):
            raise ModelConfigError(f"Recipe file {recipe_path} must map ingredient names to lists of titles")

        lookup = cls(data)
        logger.info("Loaded recipes for %d ingredients from %s", len(lookup), recipe_path)
        return lookup

    def __len__(self) -> int:
        return len(self._recipes)

    def lookup(self, ingredient: str) -> tuple[str, ...]:
        return self._recipes.get(ingredient, ())
