"""Ingredient extractor tests"""

import asyncio

import pytest

from eatwhat.schemas.history import NewHistoryRecord
from eatwhat.services.circuit_breaker import CircuitBreaker
from eatwhat.services.generation_client import GenerationClient
from eatwhat.services.ingredient_extractor import IngredientExtractor, split_candidates
from eatwhat.services.memory_cache import TTLCache


@pytest.fixture
def breaker():
    return CircuitBreaker(failure_threshold=5, cooldown_sec=600)


@pytest.fixture
def extractor(client, normalizer, breaker, store, settings):
    return IngredientExtractor(client, normalizer, breaker, TTLCache(1800), store, settings)


def test_split_candidates_merges_draft():
    assert split_candidates("土豆，牛肉 西红柿\n", ["鸡蛋"]) == ["土豆", "牛肉", "西红柿", "鸡蛋"]


@pytest.mark.asyncio
async def test_model_success_is_normalized(extractor, transport, breaker):
    transport.push({"ingredients": ["番茄", "鸡蛋", "2个土豆", "番茄"]})

    result = await extractor.extract("冰箱里有番茄鸡蛋和两个土豆")

    assert result.ingredients == ["西红柿", "鸡蛋", "土豆"]
    assert result.source == "model"
    assert result.reason == "model_success"
    assert breaker.consecutive_failures == 0


@pytest.mark.asyncio
async def test_model_failure_falls_back_to_rules(extractor, transport, breaker):
    result = await extractor.extract("我有西红柿和鸡蛋")

    assert result.ingredients == ["西红柿", "鸡蛋"]
    assert result.source == "rule_fallback"
    assert result.reason == "model_failed_fallback"
    assert result.raw_candidates == ["我有西红柿和鸡蛋"]
    assert breaker.consecutive_failures == 1
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_empty_model_answer_counts_as_failure(extractor, transport, breaker):
    transport.push({"ingredients": []})

    result = await extractor.extract("土豆")

    assert result.source == "rule_fallback"
    assert result.ingredients == ["土豆"]
    assert breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_open_breaker_skips_the_model(extractor, transport, breaker):
    for i in range(5):
        await extractor.extract(f"土豆{i}号")
    assert breaker.state == "open"
    calls_before = len(transport.calls)

    result = await extractor.extract("我有土豆和牛肉")

    assert len(transport.calls) == calls_before
    assert result.reason == "breaker_open"
    assert result.ingredients == ["土豆", "牛肉"]


@pytest.mark.asyncio
async def test_previous_owned_ingredients_are_reused(extractor, store):
    await store.append_history_record(
        NewHistoryRecord(kind="recommend", request_hash="h", input_text="冰箱里剩的", owned_ingredients=["土豆", "牛肉"])
    )

    result = await extractor.extract("冰箱里剩的")

    assert result.reason == "cache_reuse"
    assert result.ingredients == ["土豆", "牛肉"]


@pytest.mark.asyncio
async def test_results_are_cached_per_input(extractor, transport):
    transport.push({"ingredients": ["土豆"]})

    first = await extractor.extract("土豆", ["牛肉"])
    second = await extractor.extract(" 土豆 ", ["牛肉"])

    assert first == second
    assert len(transport.calls) == 1


class HangingTransport:
    """Transport whose call never completes until cancelled."""

    def __init__(self):
        self.started = asyncio.Event()

    async def invoke(self, system_prompt, user_prompt, **kwargs):
        self.started.set()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancelled_trial_does_not_wedge_the_breaker(normalizer, store, settings):
    now = [0.0]
    breaker = CircuitBreaker(failure_threshold=5, cooldown_sec=600, clock=lambda: now[0])
    transport = HangingTransport()
    extractor = IngredientExtractor(
        GenerationClient(transport, "test-model"), normalizer, breaker, TTLCache(1800), store, settings
    )
    for _ in range(5):
        breaker.record_failure()
    now[0] = 10_000

    task = asyncio.create_task(extractor.extract("土豆"))
    await asyncio.wait_for(transport.started.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert breaker.state == "half_open"
    assert breaker.allow_request() is True
