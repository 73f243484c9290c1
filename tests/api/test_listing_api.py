import base64
import json

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, Mock

from listing_engine.api.dependencies.pipeline import get_model_manager, get_pipeline
from listing_engine.api.main import create_app
from listing_engine.pipeline.listing import ListingPipeline, PipelineSettings
from listing_engine.pipeline.listing.normalizer import normalize_listing

GROUNDING = {
    "productIdentification": {"brand": "Nike", "model": "Air Max 90", "category": "Men's Sneakers", "confidence": "HIGH"},
    "compliance": {"isEbayCompliant": True, "level": "ALLOWED"},
}
REPLIES = [
    GROUNDING,
    {"weight": {"estimatedLbs": 2.3, "confidenceLevel": "medium"}, "condition": {"grade": "Good"}},
    {"pricing": {"suggestedPrice": 65}},
    {"title": "Nike Air Max 90 Men's Size 10", "itemSpecifics": {"US Shoe Size": "10"}},
]


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.config = {}
    manager.task.return_value = Mock(model="gemini-2.5-flash")
    manager.providers = {"gemini": Mock()}
    manager.tasks = {"grounding": Mock(), "pricing": Mock()}
    manager.prompts.refs = ["listing/grounding@v1", "listing/pricing@v1"]
    manager.health_check = AsyncMock(return_value={"gemini": True})
    return manager


@pytest.fixture
def caller():
    caller = Mock()
    caller.call = AsyncMock()
    return caller


@pytest.fixture
def client(manager, caller, fast_retry, monkeypatch):
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    pipeline = ListingPipeline(manager, settings=PipelineSettings(), retry=fast_retry, caller=caller)
    app = create_app()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_model_manager] = lambda: manager
    # no context manager: the lifespan (real providers) is not started
    return TestClient(app)


@pytest.fixture
def image_body(make_jpeg):
    def _body(count=1, mime_type="image/jpeg", **options):
        images = [{"imageBase64": base64.b64encode(make_jpeg()).decode(), "mimeType": mime_type} for _ in range(count)]
        return {"images": images, "options": options}
    return _body


def _replies(*payloads):
    return [json.dumps(p) for p in payloads]


class TestAnalyzeImages:
    def test_success(self, client, caller, image_body):
        """
        Test: Happy-path request with three images
        How: POST analyze-images with the pipeline's model caller stubbed per phase
        Ensures: 200 with the camelCase listing payload under data
        """
        caller.call.side_effect = _replies(*REPLIES)
        response = client.post("/api/v1/listing/analyze-images", json=image_body(3, userProvidedCondition="Good"))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Analysis successful"
        assert body["data"]["productIdentification"]["brand"] == "Nike"
        assert body["data"]["itemSpecifics"]["US Shoe Size"] == "10"
        assert body["data"]["metadata"]["modelVersion"] == "gemini-2.5-flash"

    def test_rejected(self, client, caller, image_body):
        caller.call.side_effect = _replies({
            "productIdentification": {"category": "Weapons"},
            "compliance": {"isEbayCompliant": False, "reason": "Weapons are prohibited"},
        })
        response = client.post("/api/v1/listing/analyze-images", json=image_body())

        assert response.status_code == 403
        body = response.json()
        assert body["rejected"] is True
        assert body["reason"] == "EBAY_POLICY_VIOLATION"
        assert body["guidance"] == "Weapons are prohibited"
        assert caller.call.await_count == 1

    def test_text_compliance_block_rejected(self, client, caller, image_body):
        caller.call.side_effect = _replies({"productIdentification": "Hunting knife", "compliance": "not allowed"})
        response = client.post("/api/v1/listing/analyze-images", json=image_body())

        assert response.status_code == 403
        assert response.json()["guidance"] == "This item cannot be sold on eBay"

    def test_requires_review(self, client, caller, image_body):
        caller.call.side_effect = _replies(dict(GROUNDING, recommendations={"reviewNeeded": True}))
        response = client.post("/api/v1/listing/analyze-images", json=image_body())

        assert response.status_code == 422
        body = response.json()
        assert body["requiresReview"] is True
        assert body["reason"] == "MANUAL_REVIEW_REQUIRED"

    def test_condensed_variant_query(self, client, caller, image_body):
        snapshot = dict(GROUNDING, weight={"value": 36, "unit": "oz", "confidence": "medium"})
        caller.call.side_effect = _replies(snapshot, {"title": "Nike Air Max 90", "pricing": {"suggestedPrice": 60}})
        response = client.post("/api/v1/listing/analyze-images?variant=condensed", json=image_body())

        assert response.status_code == 200
        assert response.json()["data"]["metadata"]["pipelineVariant"] == "condensed"
        assert caller.call.await_count == 2

    def test_unknown_variant_rejected_by_validation(self, client, image_body):
        response = client.post("/api/v1/listing/analyze-images?variant=turbo", json=image_body())
        assert response.status_code == 422

    @pytest.mark.parametrize("body_kwargs,status,code", [
        ({"count": 0}, 400, "NO_IMAGES"),
        ({"count": 17}, 400, "TOO_MANY_IMAGES"),
        ({"count": 1, "mime_type": "image/gif"}, 415, "UNSUPPORTED_MEDIA_TYPE"),
    ])
    def test_invalid_input(self, client, caller, image_body, body_kwargs, status, code):
        """
        Test: Bad caller input
        How: Empty batch, oversized batch, unsupported mime type
        Ensures: Input errors map to their status codes and no model call is made
        """
        response = client.post("/api/v1/listing/analyze-images", json=image_body(**body_kwargs))

        assert response.status_code == status
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == code
        caller.call.assert_not_called()

    def test_invalid_base64(self, client, caller):
        response = client.post("/api/v1/listing/analyze-images", json={"images": [{"imageBase64": "%%%"}]})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_BASE64"

    def test_pipeline_failure_hides_details_in_production(self, client, caller, image_body):
        caller.call.side_effect = _replies({"productIdentification": {"brand": "Nike"}})
        response = client.post("/api/v1/listing/analyze-images", json=image_body())

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == "ANALYSIS_FAILED"
        assert "correlationId" in body["details"]
        assert "message" not in body["details"]

    def test_pipeline_failure_details_in_development(self, client, caller, image_body, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        caller.call.side_effect = _replies({"productIdentification": {"brand": "Nike"}})
        response = client.post("/api/v1/listing/analyze-images", json=image_body())

        assert response.status_code == 500
        details = response.json()["details"]
        assert "missing required fields: compliance" in details["message"]
        assert details["type"] == "MissingFieldError"


class TestAnalyzeImage:
    def test_single_image(self, client, caller, make_jpeg):
        caller.call.side_effect = _replies(*REPLIES)
        body = {"imageBase64": base64.b64encode(make_jpeg()).decode(), "mimeType": "image/jpeg"}
        response = client.post("/api/v1/listing/analyze-image", json=body)

        assert response.status_code == 200
        assert len(caller.call.await_args_list[0].kwargs["images"]) == 1


class TestApiKey:
    def test_missing_key_rejected(self, client, image_body, monkeypatch):
        monkeypatch.setenv("API_KEY", "secret")
        response = client.post("/api/v1/listing/analyze-images", json=image_body())
        assert response.status_code == 401

    def test_valid_key_accepted(self, client, caller, image_body, monkeypatch):
        monkeypatch.setenv("API_KEY", "secret")
        caller.call.side_effect = _replies({"productIdentification": {}, "compliance": {"isEbayCompliant": False}})
        response = client.post("/api/v1/listing/analyze-images", json=image_body(), headers={"X-API-Key": "secret"})
        assert response.status_code == 403

    def test_health_is_open(self, client, monkeypatch):
        monkeypatch.setenv("API_KEY", "secret")
        assert client.get("/health").status_code == 200


class TestInventoryItem:
    def test_build_from_listing(self, client):
        listing = normalize_listing({
            "productIdentification": {"brand": "Nike", "model": "Air Max 90"},
            "title": "Nike Air Max 90",
            "condition": {"grade": "Good"},
            "weight": {"estimatedLbs": 2.3, "confidenceLevel": "medium"},
        }).to_dict()
        response = client.post("/api/v1/listing/inventory-item", json={"listing": listing, "quantity": 3})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["condition"] == "USED_GOOD"
        assert data["availability"]["shipToLocationAvailability"]["quantity"] == 3
        assert data["product"]["aspects"]["Brand"] == ["Nike"]

    def test_invalid_listing(self, client):
        response = client.post("/api/v1/listing/inventory-item", json={"listing": {"title": "x"}})
        assert response.status_code == 400


class TestHealth:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["name"] == "Listing Engine API"
        assert body["status"] == "operational"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["dependencies"]["provider:gemini"] == "Mock"
        assert body["dependencies"]["tasks"] == "grounding, pricing"
        assert body["dependencies"]["prompts"] == "2"

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["ready"] is True

    def test_not_ready(self, client, manager):
        manager.health_check.return_value = {"gemini": False}
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert "gemini" in response.json()["reason"]
