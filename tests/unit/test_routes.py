"""HTTP route tests"""

import pytest
from fastapi.testclient import TestClient

from eatwhat.main import app
from eatwhat.services.recommendation_service import NO_MATCH_MESSAGE

client = TestClient(app)


@pytest.fixture(autouse=True)
def installed_service(cooking_service):
    app.state.cooking_service = cooking_service
    yield cooking_service
    app.state.cooking_service = None


def dish(name):
    return {
        "name": name,
        "reason": "食材刚好",
        "requiredIngredients": [{"name": "西红柿", "amount": "300g"}, {"name": "鸡蛋", "amount": "3个"}],
        "estimatedTimeMin": 15,
        "difficulty": "easy",
    }


def test_root_health():
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_health():
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "corpus_documents" in response.json()


def test_service_not_ready():
    app.state.cooking_service = None
    response = client.get("/api/v1/health")
    assert response.status_code == 503


def test_extract(transport):
    transport.push({"ingredients": ["番茄", "鸡蛋"]})

    response = client.post("/api/v1/ingredients/extract", json={"inputText": "番茄和鸡蛋"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["ingredients"] == ["西红柿", "鸡蛋"]
    assert data["source"] == "model"
    assert "rawCandidates" in data


def test_recommend(transport):
    transport.push({"ingredients": ["西红柿", "鸡蛋"]}, {"recommendations": [dish("番茄炒蛋")]})

    response = client.post("/api/v1/recommend", json={"inputText": "我有西红柿和鸡蛋"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    first = body["data"]["recommendations"][0]
    assert first["name"] == "番茄炒蛋"
    assert first["sourceType"] == "corpus"
    assert first["sourcePath"] == "dishes/vegetable_dish/番茄炒蛋.md"
    assert first["requiredIngredients"][0]["name"] == "西红柿"
    assert body["data"]["noMatch"] is False
    assert body["data"]["ownedIngredients"] == ["西红柿", "鸡蛋"]


def test_recommend_no_match_is_still_success(transport):
    transport.push({"ingredients": ["榴莲"]}, {"recommendations": []})

    response = client.post("/api/v1/recommend", json={"inputText": "榴莲"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["noMatch"] is True
    assert body["message"] == NO_MATCH_MESSAGE


def test_recommend_without_ingredients_is_bad_request():
    response = client.post("/api/v1/recommend", json={"inputText": "abcd"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "ValidationError"


def test_recommend_transient_failure(transport):
    transport.push({"ingredients": ["榴莲"]})

    response = client.post("/api/v1/recommend", json={"inputText": "榴莲"})

    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "TransientServiceFailure"
    assert body["data"]["transientFailure"] is True
    assert body["data"]["retryable"] is True


def test_recipe_from_corpus(transport):
    response = client.post("/api/v1/recipe", json={"dishName": "番茄炒蛋", "ownedIngredients": ["番茄"]})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sourceType"] == "corpus"
    assert data["sourcePath"] == "dishes/vegetable_dish/番茄炒蛋.md"
    assert data["steps"][0]["stepNo"] == 1
    assert data["detailMode"] == "full"
    assert transport.calls == []


def test_recipe_rejects_unknown_hint_type():
    response = client.post("/api/v1/recipe", json={"dishName": "番茄炒蛋", "sourceHintType": "web"})
    assert response.status_code == 422


def test_fill(transport):
    transport.push({"steps": [{"stepNo": 1, "instruction": "鸡蛋打散炒熟"}], "tips": ["趁热吃"]})

    response = client.post(
        "/api/v1/recipe/fill",
        json={
            "dishName": "番茄炒蛋",
            "requiredIngredients": [{"name": "鸡蛋", "amount": "3个"}],
            "estimatedTimeMin": 20,
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["steps"][0]["instruction"] == "鸡蛋打散炒熟"
    assert data["tips"] == ["趁热吃"]
    assert data["timing"]["totalMin"] == 20


def test_history():
    client.post("/api/v1/recipe", json={"dishName": "红烧肉"})

    response = client.get("/api/v1/history", params={"limit": 5})

    assert response.status_code == 200
    records = response.json()["data"]
    assert records[0]["kind"] == "recipe"
    assert records[0]["dishName"] == "红烧肉"
    assert client.get("/api/v1/history", params={"limit": 0}).status_code == 422
