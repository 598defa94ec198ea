"""Fuzzy dish-name matching against corpus titles."""

from __future__ import annotations

from typing import Optional, Sequence, Set

from eatwhat.schemas.corpus import ReferenceMatch
from eatwhat.services.ingredient_normalizer import IngredientNormalizer

MATCH_THRESHOLD = 0.72
CONTAINMENT_SCORE = 0.88


def _bigrams(text: str) -> Set[str]:
    if len(text) <= 2:
        return {text} if text else set()
    return {text[i:i + 2] for i in range(len(text) - 1)}


def bigram_jaccard(left: str, right: str) -> float:
    a, b = _bigrams(left), _bigrams(right)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def dish_similarity(normalizer: IngredientNormalizer, dish_name: str, title: str) -> float:
    """Similarity after synonym folding and modifier stripping; containment counts as a strong match."""
    left = normalizer.normalize_dish_name(dish_name)
    right = normalizer.normalize_dish_name(title)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    score = bigram_jaccard(left, right)
    if left in right or right in left:
        score = max(score, CONTAINMENT_SCORE)
    return score


def match_dish_to_corpus(
    normalizer: IngredientNormalizer,
    dish_name: str,
    candidates: Sequence[ReferenceMatch],
    threshold: float = MATCH_THRESHOLD,
) -> Optional[ReferenceMatch]:
    """Best-scoring candidate whose title clears ``threshold``, else None."""
    best: Optional[ReferenceMatch] = None
    best_score = 0.0
    for candidate in candidates:
        score = dish_similarity(normalizer, dish_name, candidate.title)
        if score >= threshold and score > best_score:
            best, best_score = candidate, score
    return best
