"""SQL history store tests against a throwaway SQLite file"""

import pytest

from eatwhat.core.errors import PersistenceError
from eatwhat.db.session import build_engine, build_session_factory, init_models
from eatwhat.db.store import SqlHistoryStore
from eatwhat.schemas.history import NewHistoryRecord
from eatwhat.schemas.recipe import RecipeDetail, RecipeStep, RecipeTiming


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
async def sql_store(engine):
    await init_models(engine)
    return SqlHistoryStore(build_session_factory(engine))


def recommendation_payload(name="番茄炒蛋"):
    return {
        "id": "dish_easy_1",
        "name": name,
        "reason": "",
        "requiredIngredients": [{"name": "西红柿", "amount": "300g"}],
        "estimatedTimeMin": 15,
        "difficulty": "easy",
        "sourceType": "corpus",
        "sourcePath": "dishes/vegetable_dish/番茄炒蛋.md",
    }


@pytest.mark.asyncio
async def test_recommendation_round_trip(sql_store):
    record_id = await sql_store.append_history_record(
        NewHistoryRecord(
            kind="recommend",
            request_hash="h1",
            input_text="  西红柿 鸡蛋 ",
            owned_ingredients=["西红柿", "鸡蛋"],
            recommendations=[recommendation_payload()],
        )
    )

    cached = await sql_store.find_cached_recommendation("h1")

    assert record_id > 0
    assert cached.recommendations[0].name == "番茄炒蛋"
    assert cached.recommendations[0].source_type == "corpus"
    assert cached.input_text == "西红柿 鸡蛋"
    assert await sql_store.find_cached_recommendation("missing") is None


@pytest.mark.asyncio
async def test_fallback_rows_are_not_cache_hits(sql_store):
    await sql_store.append_history_record(
        NewHistoryRecord(kind="recommend_fallback", request_hash="h1", recommendations=[recommendation_payload()])
    )
    assert await sql_store.find_cached_recommendation("h1") is None


@pytest.mark.asyncio
async def test_recipe_and_image_round_trip(sql_store):
    detail = RecipeDetail(
        dish_name="番茄炒蛋",
        steps=[RecipeStep(step_no=1, instruction="炒")],
        timing=RecipeTiming(prep_min=5, cook_min=5, total_min=10),
        source_type="corpus",
    )
    await sql_store.append_history_record(
        NewHistoryRecord(
            kind="recipe",
            request_hash="r1",
            dish_name="番茄炒蛋",
            recipe_detail=detail.model_dump(mode="json", by_alias=True),
        )
    )
    await sql_store.append_history_record(
        NewHistoryRecord(kind="image", request_hash="i1", image_url="https://img.example.com/a.png")
    )

    cached = await sql_store.find_cached_recipe_detail("r1")

    assert cached.dish_name == "番茄炒蛋"
    assert cached.steps[0].instruction == "炒"
    assert await sql_store.find_cached_image("i1") == "https://img.example.com/a.png"
    assert await sql_store.find_cached_image("r1") is None


@pytest.mark.asyncio
async def test_malformed_cached_recipe_is_a_miss(sql_store):
    await sql_store.append_history_record(
        NewHistoryRecord(kind="recipe", request_hash="r1", recipe_detail={"dishName": "缺时间"})
    )
    assert await sql_store.find_cached_recipe_detail("r1") is None


@pytest.mark.asyncio
async def test_latest_owned_ingredients_for_exact_text(sql_store):
    await sql_store.append_history_record(
        NewHistoryRecord(kind="recommend", request_hash="a", input_text="冰箱里的东西", owned_ingredients=["土豆"])
    )
    await sql_store.append_history_record(
        NewHistoryRecord(
            kind="recommend_fallback", request_hash="b", input_text="冰箱里的东西", owned_ingredients=["土豆", "牛肉"]
        )
    )
    await sql_store.append_history_record(
        NewHistoryRecord(kind="recommend", request_hash="c", input_text="冰箱里的东西", owned_ingredients=[])
    )

    assert await sql_store.find_latest_owned_ingredients(" 冰箱里的东西 ") == ["土豆", "牛肉"]
    assert await sql_store.find_latest_owned_ingredients("别的") is None
    assert await sql_store.find_latest_owned_ingredients("") is None


@pytest.mark.asyncio
async def test_history_is_listed_newest_first(sql_store):
    for index in range(3):
        await sql_store.append_history_record(
            NewHistoryRecord(kind="recipe", request_hash=f"r{index}", dish_name=f"菜{index}")
        )

    history = await sql_store.list_history(limit=2)

    assert [record.dish_name for record in history] == ["菜2", "菜1"]
    assert history[0].created_at is not None


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors(engine):
    store = SqlHistoryStore(build_session_factory(engine))

    with pytest.raises(PersistenceError):
        await store.find_cached_recommendation("h1")
    with pytest.raises(PersistenceError):
        await store.append_history_record(NewHistoryRecord(kind="image", request_hash="i1"))
