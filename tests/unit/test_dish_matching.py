"""Fuzzy dish matching tests"""

from eatwhat.schemas.corpus import ReferenceMatch
from eatwhat.services.dish_matching import MATCH_THRESHOLD, bigram_jaccard, dish_similarity, match_dish_to_corpus


def test_bigram_jaccard_basics():
    assert bigram_jaccard("麻婆豆腐", "麻婆豆腐") == 1.0
    assert bigram_jaccard("西红柿炒蛋", "红烧肉") < MATCH_THRESHOLD
    assert bigram_jaccard("鱼", "鱼") == 1.0
    assert bigram_jaccard("", "鱼") == 0.0


def test_cosmetic_suffix_is_stripped_before_scoring(normalizer):
    assert bigram_jaccard("麻婆豆腐", "麻婆豆腐做法") < MATCH_THRESHOLD
    assert dish_similarity(normalizer, "麻婆豆腐", "麻婆豆腐做法") >= MATCH_THRESHOLD
    assert dish_similarity(normalizer, "家常麻婆豆腐", "麻婆豆腐") == 1.0


def test_synonyms_and_containment(normalizer):
    assert dish_similarity(normalizer, "西红柿炒鸡蛋", "番茄炒蛋") == 1.0
    assert dish_similarity(normalizer, "可乐鸡翅", "蜜汁可乐鸡翅") == 0.88
    assert dish_similarity(normalizer, "西红柿炒蛋", "红烧肉") < MATCH_THRESHOLD


def test_match_dish_to_corpus_picks_best_passing_candidate(normalizer):
    candidates = [
        ReferenceMatch(title="西红柿鸡蛋汤", path="soup.md", score=40),
        ReferenceMatch(title="番茄炒蛋", path="stir.md", score=30),
    ]
    assert match_dish_to_corpus(normalizer, "西红柿炒鸡蛋", candidates).path == "stir.md"
    assert match_dish_to_corpus(normalizer, "红烧肉", candidates) is None
