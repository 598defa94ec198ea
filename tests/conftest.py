import json
from collections.abc import Iterator
from typing import Any, Optional

import pytest
from langchain_core.messages import AIMessage

from eatwhat.core.config import DATA_DIR, Settings
from eatwhat.core.errors import PersistenceError
from eatwhat.schemas.history import CachedRecommendation, HistoryRecord, NewHistoryRecord
from eatwhat.schemas.recipe import RecipeDetail
from eatwhat.services.cooking_service import CookingService, build_cooking_service
from eatwhat.services.corpus_index import CorpusIndex
from eatwhat.services.corpus_retriever import CorpusRetriever
from eatwhat.services.generation_client import GenerationClient
from eatwhat.services.ingredient_normalizer import IngredientLexicon, IngredientNormalizer


class ScriptedTransport:
    """Model transport replaying a fixed script.

    Each entry is returned in order: dicts are sent back as an ``AIMessage``
    carrying their JSON, strings as raw text, exceptions are raised. Once the
    script is exhausted every call fails.
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def push(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def invoke(self, system_prompt, user_prompt, *, model, timeout, max_output_tokens, tools):
        self.calls.append(
            {
                "system": system_prompt,
                "user": user_prompt,
                "model": model,
                "timeout": timeout,
                "tools": tools,
            }
        )
        if not self.responses:
            raise RuntimeError("scripted transport exhausted")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return AIMessage(content=json.dumps(item, ensure_ascii=False))
        return item


class FakeHistoryStore:
    """In-memory HistoryStore."""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = False):
        self.records: list[HistoryRecord] = []
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def _check_read(self) -> None:
        if self.fail_reads:
            raise PersistenceError("store offline")

    def _latest(self, kind: str, request_hash: str) -> Optional[HistoryRecord]:
        for record in reversed(self.records):
            if record.kind == kind and record.request_hash == request_hash:
                return record
        return None

    async def find_cached_recommendation(self, request_hash: str) -> Optional[CachedRecommendation]:
        self._check_read()
        record = self._latest("recommend", request_hash)
        if record is None or record.recommendations is None:
            return None
        return CachedRecommendation(
            recommendations=record.recommendations,
            input_text=record.input_text,
            owned_ingredients=record.owned_ingredients,
        )

    async def find_cached_recipe_detail(self, request_hash: str) -> Optional[RecipeDetail]:
        self._check_read()
        record = self._latest("recipe", request_hash)
        return RecipeDetail.model_validate(record.recipe_detail) if record and record.recipe_detail else None

    async def find_cached_image(self, request_hash: str) -> Optional[str]:
        self._check_read()
        record = self._latest("image", request_hash)
        return record.image_url if record else None

    async def find_latest_owned_ingredients(self, input_text: str) -> Optional[list[str]]:
        self._check_read()
        for record in reversed(self.records):
            if record.input_text == input_text.strip() and record.owned_ingredients:
                return list(record.owned_ingredients)
        return None

    async def append_history_record(self, record: NewHistoryRecord) -> int:
        if self.fail_writes:
            raise PersistenceError("store offline")
        stored = HistoryRecord(id=len(self.records) + 1, **record.model_dump())
        self.records.append(stored)
        return stored.id

    async def list_history(self, limit: int = 20) -> list[HistoryRecord]:
        self._check_read()
        return list(reversed(self.records))[:limit]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        corpus_index_path=DATA_DIR / "howtocook-index.json",
        lexicon_path=DATA_DIR / "ingredient-lexicon.json",
    )


@pytest.fixture(scope="session")
def normalizer() -> IngredientNormalizer:
    return IngredientNormalizer(IngredientLexicon.load(DATA_DIR / "ingredient-lexicon.json"))


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def client(transport: ScriptedTransport) -> GenerationClient:
    return GenerationClient(transport, "test-model")


@pytest.fixture
def corpus_index(settings: Settings) -> CorpusIndex:
    return CorpusIndex(settings.corpus_index_path)


@pytest.fixture
async def retriever(corpus_index: CorpusIndex, normalizer: IngredientNormalizer) -> CorpusRetriever:
    retriever = CorpusRetriever(corpus_index, normalizer)
    await retriever.ensure_ready()
    return retriever


@pytest.fixture
def store() -> FakeHistoryStore:
    return FakeHistoryStore()


@pytest.fixture
def cooking_service(settings, normalizer, store, transport, corpus_index) -> Iterator[CookingService]:
    yield build_cooking_service(settings, normalizer, store, transport=transport, index=corpus_index)
