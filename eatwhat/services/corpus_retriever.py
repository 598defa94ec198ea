"""Lexical retrieval over the reference corpus (bigram shingles for CJK text)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from eatwhat.schemas.corpus import ReferenceDocument, ReferenceMatch
from eatwhat.services.corpus_index import CorpusIndex
from eatwhat.services.ingredient_normalizer import IngredientNormalizer

TITLE_BONUS = 120
TITLE_TOKEN_SCORE = 8
INGREDIENT_TOKEN_SCORE = 5
BODY_TOKEN_SCORE = 1
BODY_WINDOW = 1200
MIN_SCORE_WITH_DISH = 1
MIN_SCORE_DEFAULT = 3
PATH_MATCH_SCORE = 999

_WORD_SPLIT = re.compile(r"[^一-鿿a-z0-9]+")
_QUERY_SPLIT = re.compile(r"[\s，,。；;：:、]+")


@dataclass(frozen=True)
class _NormalizedDoc:
    doc: ReferenceDocument
    folded_title: str
    title: str
    ingredients: str
    body: str


class CorpusRetriever:
    """Scores and ranks corpus documents against dish names, free text and owned ingredients."""

    def __init__(self, index: CorpusIndex, normalizer: IngredientNormalizer):
        self.index = index
        self.normalizer = normalizer
        self._normalized: Dict[str, _NormalizedDoc] = {}

    async def ensure_ready(self) -> None:
        await self.index.ensure_loaded()

    def normalize_text(self, text: str) -> str:
        """Searchable form: the cleaned text, plus its dish-folded form when folding changes it.

        Folding shortens some ingredients (鸡蛋 -> 蛋), so the unfolded form is
        kept for per-token scoring.
        """
        cleaned = self.normalizer.clean(text or "")
        folded = self.normalizer.fold_dish_text(text or "")
        return cleaned if folded == cleaned else f"{cleaned}\n{folded}"

    def _variants(self, part: str) -> List[str]:
        variants = (
            self.normalizer.clean(part),
            self.normalizer.fold_dish_text(part),
            self.normalizer.normalize_name(part),
        )
        return list(dict.fromkeys(v for v in variants if v))

    def tokenize(self, text: str) -> List[str]:
        """Whole tokens of every variant; tokens longer than 2 chars also contribute their bigrams."""
        tokens: List[str] = []
        for part in _QUERY_SPLIT.split(text or ""):
            for variant in self._variants(part):
                for token in _WORD_SPLIT.split(variant):
                    if not token:
                        continue
                    tokens.append(token)
                    if len(token) > 2:
                        tokens.extend(token[i:i + 2] for i in range(len(token) - 1))
        return list(dict.fromkeys(tokens))

    def _normalized_doc(self, doc: ReferenceDocument) -> _NormalizedDoc:
        cached = self._normalized.get(doc.relative_path)
        if cached is None or cached.doc is not doc:
            cached = _NormalizedDoc(
                doc=doc,
                folded_title=self.normalizer.fold_dish_text(doc.title),
                title=self.normalize_text(doc.title),
                ingredients=self.normalize_text(" ".join(doc.ingredients)),
                body=self.normalize_text(doc.content[:BODY_WINDOW]),
            )
            self._normalized[doc.relative_path] = cached
        return cached

    def score(self, doc: ReferenceDocument, tokens: Iterable[str], dish_name: Optional[str] = None) -> float:
        norm = self._normalized_doc(doc)
        score = 0
        if dish_name:
            dish = self.normalizer.normalize_dish_name(dish_name)
            if dish and dish in norm.folded_title:
                score += TITLE_BONUS
        for token in tokens:
            if len(token) <= 1:
                continue
            if token in norm.title:
                score += TITLE_TOKEN_SCORE
            if token in norm.ingredients:
                score += INGREDIENT_TOKEN_SCORE
            if token in norm.body:
                score += BODY_TOKEN_SCORE
        return score

    def retrieve(
        self,
        query_text: Optional[str] = None,
        owned_ingredients: Optional[Sequence[str]] = None,
        dish_name: Optional[str] = None,
        limit: int = 3,
    ) -> List[ReferenceMatch]:
        if not self.index.loaded or not len(self.index):
            return []
        parts = [dish_name, query_text, *(owned_ingredients or [])]
        tokens = set()
        for part in parts:
            if part:
                tokens.update(self.tokenize(part))
        if not tokens and not dish_name:
            return []

        min_score = MIN_SCORE_WITH_DISH if dish_name else MIN_SCORE_DEFAULT
        scored = []
        for doc in self.index.documents:
            value = self.score(doc, tokens, dish_name)
            if value >= min_score:
                scored.append((value, doc))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [self.to_match(doc, value) for value, doc in scored[:limit]]

    def resolve_by_path(self, path_hint: str) -> Optional[ReferenceMatch]:
        """Exact path, then path-contains-hint, then hint-contains-path."""
        if not self.index.loaded:
            return None
        hint = _normalize_path(path_hint)
        if not hint:
            return None
        docs = self.index.documents
        matched = (
            next((d for d in docs if _normalize_path(d.relative_path) == hint), None)
            or next((d for d in docs if hint in _normalize_path(d.relative_path)), None)
            or next((d for d in docs if _normalize_path(d.relative_path) in hint), None)
        )
        if matched is None:
            return None
        return self.to_match(matched, PATH_MATCH_SCORE)

    def get_document(self, path: str) -> Optional[ReferenceDocument]:
        return self.index.get(path) if self.index.loaded else None

    def to_match(self, doc: ReferenceDocument, score: float) -> ReferenceMatch:
        return ReferenceMatch(title=doc.title, path=doc.relative_path, score=score, excerpt=build_excerpt(doc))


def _normalize_path(path: str) -> str:
    return (path or "").strip().lower().replace("\\", "/")


def _short(text: str, max_length: int) -> str:
    return text if len(text) <= max_length else f"{text[:max_length]}..."


def build_excerpt(doc: ReferenceDocument) -> str:
    parts = []
    if doc.ingredients:
        parts.append(f"必备原料: {'、'.join(doc.ingredients[:6])}")
    if doc.operations:
        parts.append(f"关键操作: {'；'.join(doc.operations[:3])}")
    if not parts:
        parts.append(_short(doc.content, 140))
    return _short("\n".join(parts), 180)


def build_context(matches: Sequence[ReferenceMatch]) -> str:
    """Prompt block describing the grounding documents."""
    if not matches:
        return "未命中本地菜谱数据，按常规家常做法生成。"
    return "\n\n".join(
        f"参考{idx}: {match.title}\n来源: {match.path}\n{match.excerpt}" for idx, match in enumerate(matches, start=1)
    )
