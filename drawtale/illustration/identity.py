"""
Deterministic visual identity ("character DNA") for the story's main character.

The same :class:`CharacterProfile` content always yields the same anchor tags
and seed, across processes and interpreter runs.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any

from drawtale.story_generation.models import CharacterProfile

logger = logging.getLogger(__name__)

_SEED_MOD = 2_147_483_647
PAGE_SEED_STEP = 100
MAX_UNIQUE_FEATURES = 5
MAX_PALETTE_COLORS = 4
MAX_SIGNATURE_COLORS = 3
MAX_ANCHOR_FEATURES = 3

# Turkish and English colour words mapped to English.
_COLOR_MAP: dict[str, str] = {
    "beyaz": "white",
    "siyah": "black",
    "kahverengi": "brown",
    "kahve": "brown",
    "turuncu": "orange",
    "sarı": "yellow",
    "mavi": "blue",
    "yeşil": "green",
    "kırmızı": "red",
    "pembe": "pink",
    "mor": "purple",
    "gri": "gray",
    "altın": "golden",
    "gümüş": "silver",
    "krem": "cream",
    "white": "white",
    "black": "black",
    "brown": "brown",
    "orange": "orange",
    "yellow": "yellow",
    "blue": "blue",
    "green": "green",
    "red": "red",
    "pink": "pink",
    "purple": "purple",
    "gray": "gray",
    "grey": "gray",
    "golden": "golden",
    "gold": "golden",
    "silver": "silver",
    "cream": "cream",
}

_COLOR_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, _COLOR_MAP), key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


def _feature_patterns(*pairs: tuple[str, str]) -> tuple[tuple[re.Pattern[str], str], ...]:
    return tuple((re.compile(rf"\b(?:{pattern})(?:s|es)?\b", re.IGNORECASE), label) for pattern, label in pairs)


_ACCESSORY_PATTERNS = _feature_patterns(
    ("kurdele|bow|ribbon", "ribbon bow"),
    ("şapka|hat|cap", "hat"),
    ("sırt çantası|çanta|backpack|bag", "small backpack"),
    ("eşarp|scarf", "scarf"),
    ("gözlük|glasses", "glasses"),
    ("kolye|necklace", "necklace"),
    ("yaka|collar", "collar"),
)

_BODY_PATTERNS = _feature_patterns(
    ("uzun kulak|long ear", "long ears"),
    ("büyük göz|iri göz|big eye|big round eye|big blue eye", "big round eyes"),
    ("kabarık kuyruk|fluffy tail", "fluffy tail"),
    ("küçük burun|small nose", "small cute nose"),
    ("yuvarlak|round", "round body shape"),
    ("tombul|chubby", "chubby cheeks"),
)

_CLOTHING_PATTERNS = _feature_patterns(
    ("elbise|dress", "cute dress"),
    ("tulum|overalls", "overalls"),
    ("yelek|vest", "vest"),
    ("ceket|jacket", "jacket"),
    ("pantolon|pants", "pants"),
)

_CLOTHING_ITEMS = _feature_patterns(
    ("elbise|dress", "dress"),
    ("tulum|overalls", "overalls"),
    ("yelek|vest", "vest"),
    ("ceket|jacket", "jacket"),
    ("pantolon|pants", "pants"),
    ("şapka|hat", "hat"),
    ("eşarp|scarf", "scarf"),
)


@dataclass(frozen=True)
class CharacterIdentity:
    """
    Visual fingerprint placed at the front of every page's image prompt.

    Attributes
    ----------
    hash:
        blake2b hex digest of the canonicalised name, species, gender and appearance.
    consistency_seed:
        Base seed in ``[1, 2_147_483_646]``; pages offset it with :func:`page_seed`.
    anchor_tags:
        Ordered, weighted tokens; joined they form :attr:`anchor_prompt`.
    color_signature:
        Up to three colours joined with ``", "`` (``"warm colors"`` when none are found).
    color_palette:
        Up to four colours found in the appearance text.
    unique_features:
        Up to five salient features; the species feature always comes first.
    """

    hash: str
    consistency_seed: int
    anchor_tags: tuple[str, ...]
    color_signature: str
    color_palette: tuple[str, ...]
    unique_features: tuple[str, ...]

    @property
    def anchor_prompt(self) -> str:
        return ", ".join(self.anchor_tags)

    def as_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "consistency_seed": self.consistency_seed,
            "anchor_tags": list(self.anchor_tags),
            "anchor_prompt": self.anchor_prompt,
            "color_signature": self.color_signature,
            "color_palette": list(self.color_palette),
            "unique_features": list(self.unique_features),
        }


def _canonical(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def extract_colors(text: str) -> tuple[str, ...]:
    """Colour names found in ``text``, translated to English, in order of appearance."""
    colors: list[str] = []
    for match in _COLOR_PATTERN.finditer(text or ""):
        color = _COLOR_MAP[match.group(1).lower()]
        if color not in colors:
            colors.append(color)
    return tuple(colors)


def extract_unique_features(profile: CharacterProfile) -> tuple[str, ...]:
    features: list[str] = [f"{profile.species} character"]
    for pattern, feature in (*_ACCESSORY_PATTERNS, *_BODY_PATTERNS, *_CLOTHING_PATTERNS):
        if pattern.search(profile.appearance) and feature not in features:
            features.append(feature)
    return tuple(features[:MAX_UNIQUE_FEATURES])


def extract_clothing(appearance: str) -> str:
    items = [item for pattern, item in _CLOTHING_ITEMS if pattern.search(appearance or "")]
    return ", ".join(items) or "simple clothing"


def _identity_hash(profile: CharacterProfile) -> str:
    canonical = "|".join(
        _canonical(part)
        for part in (profile.name, profile.species, profile.gender, profile.appearance)
    )
    return hashlib.blake2b(canonical.encode("utf-8"), digest_size=16).hexdigest()


def _seed_from_hash(digest: str) -> int:
    seed = int(digest, 16) % _SEED_MOD
    return seed or 1


def derive_character_identity(profile: CharacterProfile) -> CharacterIdentity:
    """
    Derive the character's identity. Pure: no randomness, no process state.
    """
    colors = extract_colors(profile.appearance)
    color_signature = ", ".join(colors[:MAX_SIGNATURE_COLORS]) or "warm colors"
    unique_features = extract_unique_features(profile)

    anchor_tags: list[str] = [f"({profile.species}:1.5)"]
    if profile.gender in ("male", "female"):
        anchor_tags.append(f"({profile.gender}:1.3)")
    anchor_tags.append(f"({color_signature}:1.4)")
    anchor_tags.extend(f"({feature}:1.2)" for feature in unique_features[:MAX_ANCHOR_FEATURES])
    anchor_tags.extend((f"{profile.age} years old", "same character", "consistent appearance"))

    digest = _identity_hash(profile)
    identity = CharacterIdentity(
        hash=digest,
        consistency_seed=_seed_from_hash(digest),
        anchor_tags=tuple(anchor_tags),
        color_signature=color_signature,
        color_palette=colors[:MAX_PALETTE_COLORS],
        unique_features=unique_features,
    )

    logger.info(
        "Derived identity for %s: hash=%s seed=%d",
        profile.name,
        digest[:8],
        identity.consistency_seed,
    )
    return identity


def page_seed(identity: CharacterIdentity, page_number: int) -> int:
    """
    Seed for one page: a fixed offset from the character's base seed.
    """
    return (identity.consistency_seed + page_number * PAGE_SEED_STEP) % _SEED_MOD
