"""Label file loading and canonicalization.

Label files are newline-delimited, one class per line in classifier output
order, conventionally written as ``<ordinal> <name>`` (e.g. ``0 tomato``).
Line order, not the ordinal, binds a label to its score index.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ingredientx.ml.errors import ModelConfigError

logger = logging.getLogger(__name__)

_ORDINAL_PREFIX = re.compile(r"^\d+\s*")


def canonicalize_label(raw_label: str) -> str:
    """Return the canonical ingredient name for a raw label.

    Strips a leading ordinal (digits plus optional whitespace), trims, and
    lowercases. ``"12   Red Onion  "`` becomes ``"red onion"``.
    """
    cleaned = _ORDINAL_PREFIX.sub("", raw_label, count=1)
    return cleaned.strip().lower()


@dataclass(frozen=True)
class LabelEntry:
    """A raw label string and its position in the classifier output."""

    index: int
    raw: str

    @property
    def canonical(self) -> str:
        return canonicalize_label(self.raw)


def parse_labels(text: str) -> tuple[LabelEntry, ...]:
    """Split label file contents into entries, skipping blank lines."""
    lines = (line.strip() for line in text.split("\n"))
    return tuple(LabelEntry(index=i, raw=line) for i, line in enumerate(line for line in lines if line))


def load_labels(path: str | Path) -> tuple[LabelEntry, ...]:
    """Load a label file.

    Raises:
        ModelConfigError: If the file cannot be read.
    """
    label_path = Path(path)
    try:
        text = label_path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ModelConfigError(f"Cannot read label file {label_path}: {exc}") from exc

    labels = parse_labels(text)
    logger.info("Loaded %d labels from %s", len(labels), label_path)
    return labels
