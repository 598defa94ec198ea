"""Stable request hashing used as the cache and store key."""

from __future__ import annotations

import hashlib
import json
from typing import Iterable, Optional

from eatwhat.services.ingredient_normalizer import IngredientNormalizer


def request_hash(
    normalizer: IngredientNormalizer,
    primary_text: str,
    owned_ingredients: Iterable[str] = (),
    hint: Optional[str] = None,
) -> str:
    """sha256 over the normalized request.

    Casing, whitespace, punctuation, the order of ingredients inside the text
    and the order of the owned list never change the digest.
    """
    owned = sorted({name for name in (normalizer.normalize_name(item) for item in owned_ingredients) if name})
    payload = {
        "text": normalizer.canonical_fragments(primary_text),
        "owned": owned,
        "hint": (hint or "").strip().lower(),
    }
    encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def extraction_cache_key(normalizer: IngredientNormalizer, input_text: str, draft: Iterable[str] = ()) -> str:
    return request_hash(normalizer, input_text, draft, hint="extract")


def image_cache_key(normalizer: IngredientNormalizer, dish_name: str, style: str = "", model: str = "", size: str = "") -> str:
    return request_hash(normalizer, dish_name, (), hint=f"image|{style}|{model}|{size}")
