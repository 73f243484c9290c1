from __future__ import annotations
from typing import Dict, Any, Optional, List
import time
from os import getenv
from pydantic import ValidationError

from openai import AsyncOpenAI
from openai import APIError, APIStatusError, APITimeoutError, APIConnectionError

from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRequestError, ModelRetryable, ModelTimeout
from ...utils.image_converter import to_data_url

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (APITimeoutError, APIConnectionError)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code in RETRYABLE_STATUS
    if isinstance(exc, ModelRetryable):
        return True
    return False

class OpenAIProvider(ModelProvider):
    """
    Provider for OpenAI-compatible chat completion endpoints.

    Also serves Gemini through Google's OpenAI-compatible base URL, so the same
    code path handles both. The API key comes from `api_key` or the env var
    named by `api_key_env`.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, api_key_env: str = "OPENAI_API_KEY", default_headers: Optional[Dict[str, str]] = None, timeout: float = 60.0, image_detail: str = "high", **kwargs):
        self.client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or getenv(api_key_env) or "missing-api-key",
            default_headers=default_headers or {},
            timeout=timeout,
            max_retries=0, #retries are owned by the pipeline's RetryExecutor
            **kwargs
        )
        self.base_url = base_url
        self.timeout = timeout
        self.image_detail = image_detail

    def _format_messages(self, messages: List[Dict[str, Any]], images: List[Any]) -> List[Dict[str, Any]]:
        """Format messages with images for OpenAI - converts to content array format"""
        if not images:
            return messages

        image_contents = []
        for img in images:
            try:
                image_contents.append({
                    "type": "image_url",
                    "image_url": {
                        "url": to_data_url(img),
                        "detail": self.image_detail
                    }
                })
            except Exception as e:
                raise ModelError(f"Failed to convert image for OpenAI: {e}") from e

        # images ride along with the first user message
        processed_messages = []
        images_added = False

        for msg in messages:
            if msg.get("role") == "user" and not images_added:
                processed_msg = msg.copy()
                content_array = [{"type": "text", "text": msg.get("content", "")}]
                content_array.extend(image_contents)
                processed_msg["content"] = content_array
                processed_messages.append(processed_msg)
                images_added = True
            else:
                processed_messages.append(msg)

        return processed_messages

    @staticmethod
    def _response_format(req: ChatRequest) -> Optional[Dict[str, Any]]:
        if req.schema is not None:
            return {
                "type": "json_schema",
                "json_schema": {"name": "response_schema", "schema": req.schema.model_json_schema()},
            }
        if req.json_mode:
            return {"type": "json_object"}
        return None

    def _response_meta(self, response: Any, req: ChatRequest, latency: float) -> Dict[str, Any]:
        choice = response.choices[0]
        meta = {
            "provider": "openai",
            "model": getattr(response, "model", None) or req.model,
            "latency": latency,
            "base_url": self.base_url or "https://api.openai.com/v1",
            "finish_reason": getattr(choice, "finish_reason", None),
            "id": getattr(response, "id", None),
        }
        usage = getattr(response, "usage", None)
        if usage is not None:
            meta["usage"] = usage.model_dump() if hasattr(usage, "model_dump") else dict(usage)
        return meta

    async def chat(self, req: ChatRequest) -> ModelResponse:
        completion_params: Dict[str, Any] = {
            "model": req.model,
            "messages": self._format_messages(req.messages, req.images or []),
            **(req.params or {}),
        }
        response_format = self._response_format(req)
        if response_format:
            completion_params["response_format"] = response_format
        if req.extra_body:
            completion_params["extra_body"] = req.extra_body

        t0 = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(**completion_params)
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI timeout: {e}") from e
        except APIError as e:
            msg = f"OpenAI API error: {e}"
            if _is_retryable(e):
                raise ModelRetryable(msg) from e
            if isinstance(e, APIStatusError):
                raise ModelRequestError(msg) from e
            raise ModelError(msg) from e
        except Exception as e:
            raise ModelError(f"OpenAI provider error: {e}") from e
        latency = time.perf_counter() - t0

        try:
            content = response.choices[0].message.content or ""
        except (IndexError, AttributeError, TypeError) as e:
            raise ModelError(f"Invalid response structure from OpenAI API: {e}") from e
        meta = self._response_meta(response, req, latency)

        parsed = None
        if req.schema is not None and content:
            try:
                parsed = req.schema.model_validate_json(content)
            except ValidationError as ve:
                meta["validation_error"] = str(ve)

        return ModelResponse(content=content, raw=response, meta=meta, parsed=parsed)

    async def health_check(self) -> bool:
        try:
            await self.client.models.list()
            return True
        except Exception:
            return False

    async def cleanup(self) -> None:
        await self.client.close()
