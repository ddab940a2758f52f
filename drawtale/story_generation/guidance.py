"""
Sensitive-content narrative guidance loaded from YAML.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml

logger = logging.getLogger(__name__)

PathLike = str | Path

DEFAULT_GUIDANCE_PATH = Path(__file__).with_name("data") / "sensitive_guidance.yaml"
FALLBACK_CATEGORY = "other"


@dataclass(frozen=True)
class GuidanceEntry:
    """
    Prompt blocks steering the outline away from harmful depictions.

    Attributes
    ----------
    category:
        Catalog key the entry was loaded under.
    principles:
        Overall narrative approach for this kind of content.
    arc_guidance:
        Shape of the main character's growth arc.
    avoidance:
        What never to depict, with positive substitutes.
    """

    category: str
    principles: str
    arc_guidance: str
    avoidance: str


class GuidanceCatalog:
    """Read-only mapping of category keys to :class:`GuidanceEntry` objects."""

    def __init__(self, entries: Mapping[str, GuidanceEntry]) -> None:
        if FALLBACK_CATEGORY not in entries:
            raise ValueError(f"Guidance catalog must define a '{FALLBACK_CATEGORY}' category.")
        self._entries = dict(entries)

    def __contains__(self, category: object) -> bool:
        return category in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def for_category(self, category: str | None) -> GuidanceEntry | None:
        """
        Return the entry for ``category``; unknown keys fall back to ``other``.

        ``None`` means no sensitive content was flagged and yields ``None``.
        """
        if category is None:
            return None
        key = category.strip().lower()
        entry = self._entries.get(key)
        if entry is None:
            logger.warning("Unknown guidance category %r, using '%s'.", category, FALLBACK_CATEGORY)
            entry = self._entries[FALLBACK_CATEGORY]
        return entry

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GuidanceCatalog":
        entries: dict[str, GuidanceEntry] = {}
        for raw_key, block in data.items():
            if not isinstance(block, Mapping):
                raise ValueError(f"Guidance category {raw_key!r} must map to a mapping.")
            key = str(raw_key).strip().lower()
            try:
                entries[key] = GuidanceEntry(
                    category=key,
                    principles=str(block["principles"]).strip(),
                    arc_guidance=str(block["arc_guidance"]).strip(),
                    avoidance=str(block["avoidance"]).strip(),
                )
            except KeyError as exc:
                raise ValueError(
                    f"Guidance category {raw_key!r} is missing the {exc.args[0]!r} field."
                ) from exc
        return cls(entries)


def load_guidance_catalog(path: PathLike | None = None) -> GuidanceCatalog:
    """
    Load a guidance catalog from YAML, defaulting to the bundled data file.
    """
    source = Path(path).expanduser() if path is not None else DEFAULT_GUIDANCE_PATH
    with source.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, Mapping):
        raise ValueError(f"Guidance file {source} must contain a mapping at the top level.")

    catalog = GuidanceCatalog.from_mapping(data)
    logger.debug("Loaded %d guidance categories from %s", len(catalog), source)
    return catalog
