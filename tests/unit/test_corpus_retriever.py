"""Corpus index and lexical retriever tests"""

import asyncio

import pytest

from eatwhat.schemas.corpus import ReferenceDocument
from eatwhat.services.corpus_index import CorpusIndex, parse_index
from eatwhat.services.corpus_retriever import CorpusRetriever, build_context, build_excerpt


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_read(corpus_index):
    await asyncio.gather(*(corpus_index.ensure_loaded() for _ in range(5)))
    assert corpus_index.load_count == 1
    assert len(corpus_index) == 6


@pytest.mark.asyncio
async def test_missing_index_file_disables_grounding(tmp_path, normalizer):
    index = CorpusIndex(tmp_path / "missing.json")
    retriever = CorpusRetriever(index, normalizer)
    await retriever.ensure_ready()
    assert index.loaded
    assert retriever.retrieve(query_text="西红柿") == []


def test_parse_index_skips_incomplete_items():
    raw = '{"docs": [{"title": "A", "relativePath": "a.md"}, {"title": "B"}, "junk"]}'
    docs = parse_index(raw)
    assert [doc.relative_path for doc in docs] == ["a.md"]


def test_title_bonus_requires_synonym_folding(retriever):
    doc = next(d for d in retriever.index.documents if d.title == "番茄炒蛋")
    assert "西红柿炒鸡蛋" not in doc.title
    assert retriever.score(doc, [], dish_name="西红柿炒鸡蛋") == 120


def test_dish_name_retrieval_ranks_folded_title_first(retriever):
    matches = retriever.retrieve(dish_name="西红柿炒鸡蛋", limit=3)
    assert matches[0].title == "番茄炒蛋"
    assert matches[0].score >= 120
    assert len(matches) <= 3


def test_ingredient_query_retrieval(retriever):
    matches = retriever.retrieve(query_text="土豆", owned_ingredients=["土豆"])
    assert [m.title for m in matches] == ["酸辣土豆丝"]
    assert matches[0].excerpt.startswith("必备原料: 土豆")


def test_short_coincidental_hits_are_dropped(retriever):
    assert retriever.retrieve(query_text="榴莲") == []


def test_tokenize_shingles_long_tokens(retriever):
    tokens = retriever.tokenize("红烧肉 蛋")
    assert "红烧肉" in tokens
    assert {"红烧", "烧肉"} <= set(tokens)
    assert "蛋" in tokens


def test_resolve_by_path(retriever):
    exact = retriever.resolve_by_path("dishes/meat_dish/红烧肉.md")
    assert exact is not None and exact.title == "红烧肉" and exact.score == 999
    assert retriever.resolve_by_path("红烧肉").path == "dishes/meat_dish/红烧肉.md"
    assert retriever.resolve_by_path("/repo/HowToCook/dishes/meat_dish/红烧肉.md").title == "红烧肉"
    assert retriever.resolve_by_path("dishes/unknown.md") is None


def test_excerpt_falls_back_to_body():
    doc = ReferenceDocument(title="X", relative_path="x.md", content="正文" * 100)
    excerpt = build_excerpt(doc)
    assert excerpt.endswith("...")
    assert len(excerpt) == 143


def test_build_context(retriever):
    assert "未命中" in build_context([])
    context = build_context(retriever.retrieve(dish_name="红烧肉"))
    assert "参考1: 红烧肉" in context
    assert "dishes/meat_dish/红烧肉.md" in context


def test_folding_does_not_shorten_owned_ingredients(retriever):
    tokens = retriever.tokenize("鸡蛋")
    assert "鸡蛋" in tokens

    titles = [m.title for m in retriever.retrieve(owned_ingredients=["鸡蛋"])]
    assert "番茄炒蛋" in titles
    assert "西红柿鸡蛋汤" in titles


def test_ingredient_synonyms_reach_the_corpus(retriever):
    assert "鸡蛋" in retriever.tokenize("鸡子")
    assert "西红柿" in retriever.tokenize("番茄")
    assert retriever.retrieve(owned_ingredients=["鸡子"])
