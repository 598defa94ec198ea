"""Ingredient normalization - synonym folding, noise stripping, shopping diff.

The tables (synonyms, conversational prefixes, units, dish modifiers...) are
loaded from a JSON lexicon so the algorithm below stays independent of the
specific vocabulary.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from eatwhat.core.config import get_settings
from eatwhat.schemas.recipe import IngredientItem

_PUNCTUATION = re.compile(r"[\s，,。；;：:()（）\[\]【】\"'“”‘’!！?？、~～·…/\\|]+")
_NUMERAL = r"(?:\d+(?:\.\d+)?|[一二两三四五六七八九十百半几]+)"
_PURE_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")
_PURE_CHINESE_NUMERAL = re.compile(r"^[一二两三四五六七八九十百千万半几]+$")
_LATIN_RUN = re.compile(r"[a-z]{4,}\d*")


@dataclass(frozen=True)
class IngredientLexicon:
    """Vocabulary tables used by the normalizer."""

    separators: tuple[str, ...] = ()
    synonyms: dict[str, str] = field(default_factory=dict)
    dish_folding: dict[str, str] = field(default_factory=dict)
    conversational_prefixes: tuple[str, ...] = ()
    conversational_suffixes: tuple[str, ...] = ()
    noise_markers: tuple[str, ...] = ()
    noise_words: tuple[str, ...] = ()
    units: tuple[str, ...] = ()
    dish_prefix_modifiers: tuple[str, ...] = ()
    dish_suffix_modifiers: tuple[str, ...] = ()
    suspicious_ingredients: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "IngredientLexicon":
        synonyms = {str(k).lower(): str(v) for k, v in (data.get("synonyms") or {}).items()}
        return cls(
            separators=tuple(data.get("separators") or ()),
            synonyms=_resolve_chains(synonyms),
            dish_folding={str(k).lower(): str(v) for k, v in (data.get("dish_folding") or {}).items()},
            conversational_prefixes=tuple(data.get("conversational_prefixes") or ()),
            conversational_suffixes=tuple(data.get("conversational_suffixes") or ()),
            noise_markers=tuple(data.get("noise_markers") or ()),
            noise_words=tuple(data.get("noise_words") or ()),
            units=tuple(data.get("units") or ()),
            dish_prefix_modifiers=tuple(data.get("dish_prefix_modifiers") or ()),
            dish_suffix_modifiers=tuple(data.get("dish_suffix_modifiers") or ()),
            suspicious_ingredients=tuple(data.get("suspicious_ingredients") or ()),
        )

    @classmethod
    def load(cls, path: Path) -> "IngredientLexicon":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def _resolve_chains(synonyms: dict[str, str]) -> dict[str, str]:
    """Follow a -> b -> c chains so one lookup always lands on the canonical name."""
    resolved: dict[str, str] = {}
    for key, value in synonyms.items():
        seen = {key}
        target = value
        while target.lower() in synonyms and target.lower() not in seen:
            seen.add(target.lower())
            target = synonyms[target.lower()]
        resolved[key] = target
    return resolved


def _alternation(items: Iterable[str]) -> str:
    # longest first so "以及" wins over "及"
    return "|".join(re.escape(item) for item in sorted(set(items), key=len, reverse=True))


class IngredientNormalizer:
    """Canonicalizes free-text ingredient tokens and dish names."""

    def __init__(self, lexicon: IngredientLexicon):
        self.lexicon = lexicon
        self._separator_re = re.compile(_alternation(lexicon.separators)) if lexicon.separators else None
        self._prefix_res = [re.compile(rf"^(?:{p})") for p in lexicon.conversational_prefixes]
        self._suffix_res = [re.compile(rf"(?:{p})$") for p in lexicon.conversational_suffixes]
        units = _alternation(u.lower() for u in lexicon.units)
        self._leading_qty_re = re.compile(rf"^{_NUMERAL}\s*(?:{units})") if units else None
        self._trailing_qty_re = re.compile(rf"{_NUMERAL}\s*(?:{units})$") if units else None
        self._dish_fold_re = re.compile(_alternation(lexicon.dish_folding)) if lexicon.dish_folding else None
        self._noise_words = {w.lower() for w in lexicon.noise_words}

    # ------------------------------------------------------------------
    # Ingredient tokens
    # ------------------------------------------------------------------
    def clean(self, raw: str) -> str:
        """Lowercase and strip whitespace and punctuation."""
        return _PUNCTUATION.sub("", (raw or "").strip().lower())

    def _strip_once(self, token: str) -> str:
        for pattern in self._prefix_res:
            token = pattern.sub("", token, count=1)
        for pattern in self._suffix_res:
            token = pattern.sub("", token, count=1)
        if self._leading_qty_re is not None:
            token = self._leading_qty_re.sub("", token, count=1)
        if self._trailing_qty_re is not None:
            token = self._trailing_qty_re.sub("", token, count=1)
        return token

    def normalize_name(self, raw: str) -> str:
        """Canonical name for a single token ("") when nothing is left."""
        token = self.clean(raw)
        while True:
            stripped = self._strip_once(token)
            if stripped == token:
                break
            token = stripped
        return self.lexicon.synonyms.get(token, token)

    def is_noise(self, token: str) -> bool:
        if not token:
            return True
        if token in self._noise_words:
            return True
        if _PURE_NUMBER.match(token) or _PURE_CHINESE_NUMERAL.match(token):
            return True
        if _LATIN_RUN.search(token):
            return True
        if token.startswith("我"):
            return True
        if len(token) >= 7 and any(marker in token for marker in self.lexicon.noise_markers):
            return True
        return False

    def split_tokens(self, items: Iterable[str]) -> List[str]:
        parts: List[str] = []
        for item in items:
            if not item:
                continue
            pieces = self._separator_re.split(item) if self._separator_re else [item]
            parts.extend(piece for piece in pieces if piece)
        return parts

    def normalize_list(self, items: Iterable[str]) -> List[str]:
        """Deduplicated, order-preserving canonical ingredient names."""
        result: List[str] = []
        seen: set[str] = set()
        for piece in self.split_tokens(items):
            name = self.normalize_name(piece)
            if self.is_noise(name) or name in seen:
                continue
            seen.add(name)
            result.append(name)
        return result

    def canonical_fragments(self, text: str) -> List[str]:
        """Sorted canonical fragments of free text, noise included.

        Two texts that differ only in casing, whitespace, punctuation or the
        order of their ingredients produce the same fragments.
        """
        raw_parts = _PUNCTUATION.split((text or "").lower())
        fragments = {self.normalize_name(part) for part in self.split_tokens(raw_parts)}
        fragments.discard("")
        return sorted(fragments)

    def compute_missing(self, required: Sequence[IngredientItem], owned: Iterable[str]) -> List[IngredientItem]:
        """Items of ``required`` whose normalized name is not owned."""
        owned_set = {self.normalize_name(item) for item in owned}
        owned_set.discard("")
        return [item for item in required if self.normalize_name(item.name) not in owned_set]

    def unique_items(self, items: Iterable[IngredientItem]) -> List[IngredientItem]:
        """Drop items whose normalized name was already seen; the first occurrence wins."""
        result: List[IngredientItem] = []
        seen: set[str] = set()
        for item in items:
            key = self.normalize_name(item.name) or item.name.strip()
            if key in seen:
                continue
            seen.add(key)
            result.append(item)
        return result

    # ------------------------------------------------------------------
    # Dish names and titles
    # ------------------------------------------------------------------
    def fold_dish_text(self, text: str) -> str:
        """Lowercase, strip punctuation and fold dish-level synonyms (番茄炒蛋 == 西红柿炒鸡蛋)."""
        cleaned = self.clean(text)
        if not cleaned or self._dish_fold_re is None:
            return cleaned
        return self._dish_fold_re.sub(lambda m: self.lexicon.dish_folding[m.group(0)], cleaned)

    def strip_dish_modifiers(self, name: str) -> str:
        """Drop cosmetic modifiers such as 家常 / 快手 / 简化版 / 做法."""
        stripped = name
        changed = True
        while changed and stripped:
            changed = False
            for prefix in self.lexicon.dish_prefix_modifiers:
                if stripped.startswith(prefix) and len(stripped) > len(prefix):
                    stripped = stripped[len(prefix):]
                    changed = True
            for suffix in self.lexicon.dish_suffix_modifiers:
                if stripped.endswith(suffix) and len(stripped) > len(suffix):
                    stripped = stripped[: -len(suffix)]
                    changed = True
        return stripped

    def normalize_dish_name(self, name: str) -> str:
        return self.strip_dish_modifiers(self.fold_dish_text(name))

    def find_suspicious(self, text: str, allowed: Iterable[str]) -> Optional[str]:
        """First denylisted ingredient mentioned in ``text`` but absent from ``allowed``."""
        allowed_set = set(allowed)
        for item in self.lexicon.suspicious_ingredients:
            if item in text and item not in allowed_set:
                return item
        return None


@lru_cache
def get_normalizer() -> IngredientNormalizer:
    """Process-wide normalizer built from the configured lexicon."""
    return IngredientNormalizer(IngredientLexicon.load(get_settings().lexicon_path))
