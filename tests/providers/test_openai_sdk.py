import asyncio

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch
from openai import APIConnectionError, APIStatusError, APITimeoutError

from listing_engine.models.providers.base import ChatRequest, ModelError, ModelRequestError, ModelRetryable, ModelTimeout
from listing_engine.models.providers.openai_sdk import OpenAIProvider
from listing_engine.pipeline.listing.types import ImageInput

REQUEST = httpx.Request("POST", "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions")


def _completion(content, finish_reason="stop"):
    completion = Mock()
    completion.choices = [Mock(message=Mock(content=content), finish_reason=finish_reason)]
    completion.model = "gemini-2.5-flash"
    completion.id = "chatcmpl-1"
    completion.usage.model_dump.return_value = {"prompt_tokens": 1200, "completion_tokens": 300, "total_tokens": 1500}
    return completion


def _status_error(status):
    response = httpx.Response(status, request=REQUEST)
    return APIStatusError(f"status {status}", response=response, body=None)


class TestOpenAIProvider:
    @pytest.fixture
    def provider(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        with patch('listing_engine.models.providers.openai_sdk.AsyncOpenAI'):
            provider = OpenAIProvider(
                base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
                api_key_env="GEMINI_API_KEY",
                timeout=90,
            )
        provider.client.chat.completions.create = AsyncMock(return_value=_completion('{"ok": true}'))
        return provider

    @pytest.fixture
    def create(self, provider):
        return provider.client.chat.completions.create

    def test_client_construction(self, monkeypatch):
        """
        Test: Client built from provider settings
        How: Inspect the patched AsyncOpenAI constructor call
        Ensures: Key comes from the named env var and SDK-level retries are disabled
        """
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        with patch('listing_engine.models.providers.openai_sdk.AsyncOpenAI') as client_cls:
            OpenAIProvider(
                base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
                api_key_env="GEMINI_API_KEY",
                timeout=90,
            )
        kwargs = client_cls.call_args.kwargs
        assert kwargs["api_key"] == "test-key"
        assert kwargs["base_url"] == "https://generativelanguage.googleapis.com/v1beta/openai/"
        assert kwargs["timeout"] == 90
        assert kwargs["max_retries"] == 0

    def test_missing_key_does_not_fail_construction(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with patch('listing_engine.models.providers.openai_sdk.AsyncOpenAI') as client_cls:
            OpenAIProvider()
        assert client_cls.call_args.kwargs["api_key"] == "missing-api-key"

    def test_basic_completion(self, provider, create):
        request = ChatRequest(
            model="gemini-2.5-flash",
            messages=[{"role": "user", "content": "hi"}],
            params={"temperature": 0.2, "max_tokens": 2048},
        )
        response = asyncio.run(provider.chat(request))

        assert response.content == '{"ok": true}'
        assert response.meta["provider"] == "openai"
        assert response.meta["model"] == "gemini-2.5-flash"
        assert response.meta["finish_reason"] == "stop"
        assert response.meta["usage"]["total_tokens"] == 1500
        kwargs = create.await_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 2048
        assert "response_format" not in kwargs

    def test_json_mode(self, provider, create):
        asyncio.run(provider.chat(ChatRequest(model="m", messages=[], json_mode=True)))
        assert create.await_args.kwargs["response_format"] == {"type": "json_object"}

    def test_images_as_data_urls(self, provider, create):
        """
        Test: Request with two images and a system message
        How: Send ImageInputs with jpeg and png mime types
        Ensures: The first user message becomes a content array of text plus image_url parts
        """
        request = ChatRequest(
            model="m",
            messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "describe"}],
            images=[ImageInput(b"a", "image/jpg", 0), ImageInput(b"b", "image/png", 1)],
        )
        asyncio.run(provider.chat(request))

        messages = create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "sys"}
        content = messages[1]["content"]
        assert content[0] == {"type": "text", "text": "describe"}
        assert content[1]["image_url"] == {"url": "data:image/jpeg;base64,YQ==", "detail": "high"}
        assert content[2]["image_url"]["url"] == "data:image/png;base64,Yg=="

    def test_length_finish_reason_recorded(self, provider, create):
        create.return_value = _completion('{"title": "Nike', finish_reason="length")
        response = asyncio.run(provider.chat(ChatRequest(model="m", messages=[])))
        assert response.meta["finish_reason"] == "length"

    def test_timeout(self, provider, create):
        create.side_effect = APITimeoutError(request=REQUEST)
        with pytest.raises(ModelTimeout):
            asyncio.run(provider.chat(ChatRequest(model="m", messages=[])))

    def test_connection_error_is_retryable(self, provider, create):
        create.side_effect = APIConnectionError(request=REQUEST)
        with pytest.raises(ModelRetryable):
            asyncio.run(provider.chat(ChatRequest(model="m", messages=[])))

    @pytest.mark.parametrize("status,expected", [
        (429, ModelRetryable),
        (503, ModelRetryable),
        (400, ModelRequestError),
        (401, ModelRequestError),
    ])
    def test_status_error_mapping(self, provider, create, status, expected):
        create.side_effect = _status_error(status)
        with pytest.raises(ModelError) as exc:
            asyncio.run(provider.chat(ChatRequest(model="m", messages=[])))
        assert type(exc.value) is expected

    def test_empty_choices(self, provider, create):
        completion = _completion("x")
        completion.choices = []
        create.return_value = completion
        with pytest.raises(ModelError, match="Invalid response structure"):
            asyncio.run(provider.chat(ChatRequest(model="m", messages=[])))

    def test_health_check(self, provider):
        provider.client.models.list = AsyncMock()
        assert asyncio.run(provider.health_check()) is True
        provider.client.models.list = AsyncMock(side_effect=APIConnectionError(request=REQUEST))
        assert asyncio.run(provider.health_check()) is False

    def test_cleanup_closes_client(self, provider):
        provider.client.close = AsyncMock()
        asyncio.run(provider.cleanup())
        provider.client.close.assert_awaited_once()
