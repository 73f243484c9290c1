from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
import time
import httpx
from pydantic import ValidationError
from ollama import AsyncClient, ResponseError
from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRequestError, ModelRetryable, ModelTimeout
from ...utils.image_converter import to_base64

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}
EVAL_FIELDS = ("total_duration", "load_duration", "prompt_eval_count", "prompt_eval_duration", "eval_count", "eval_duration", "done_reason")

def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, ResponseError):
        try:
            return int(getattr(exc, "status_code", 0)) in RETRYABLE_STATUS
        except (TypeError, ValueError):
            return False
    return isinstance(exc, ModelRetryable)

class OllamaProvider(ModelProvider):
    def __init__(self, host: str = "http://localhost:11434", request_timeout_s: float = 300, keep_alive: str = "5m"):
        self.client = AsyncClient(host=host, timeout=request_timeout_s)
        self.keep_alive = keep_alive
        self.host = host
        self.request_timeout_s = request_timeout_s
        self._timeout_clients: Dict[float, AsyncClient] = {}

    def _client_for(self, timeout: float) -> AsyncClient:
        """One shared client per distinct task timeout; the default timeout uses self.client."""
        if timeout == self.request_timeout_s:
            return self.client
        client = self._timeout_clients.get(timeout)
        if client is None:
            client = AsyncClient(host=self.host, timeout=timeout)
            self._timeout_clients[timeout] = client
        return client

    def _process_messages(self, messages: List[Dict[str, Any]], images: Optional[List[Any]]) -> List[Dict[str, Any]]:
        if not images: return messages
        base64_images = [to_base64(img) for img in images]
        processed_messages = []
        images_added = False
        for msg in messages:
            if msg.get("role") == "user" and not images_added:
                processed_msg = msg.copy()
                processed_msg["images"] = base64_images
                processed_messages.append(processed_msg)
                images_added = True
            else:
                processed_messages.append(msg)
        return processed_messages

    @staticmethod
    def _read_response(response: Any) -> Tuple[str, Dict[str, Any]]:
        """(content, top-level fields) from a dict or a ChatResponse object; the client returns either depending on version."""
        if isinstance(response, dict):
            message = response.get("message")
            content = message.get("content") if isinstance(message, dict) else ""
            return content or "", response
        message = getattr(response, "message", None)
        if message is None or not hasattr(message, "content"):
            raise ModelError(f"Received unexpected response structure from Ollama: {response!r}")
        fields = {key: getattr(response, key) for key in ("model", *EVAL_FIELDS) if getattr(response, key, None) is not None}
        return message.content or "", fields

    @staticmethod
    def _build_options(params: Dict[str, Any]) -> Dict[str, Any]:
        options = dict(params)
        #ollama names the output token ceiling num_predict
        if "max_tokens" in options:
            options["num_predict"] = options.pop("max_tokens")
        return options

    async def chat(self, req: ChatRequest) -> ModelResponse:
        options = self._build_options(req.params or {})
        keep_alive = options.pop('keep_alive', self.keep_alive)

        custom_timeout = options.pop('timeout', self.request_timeout_s)
        client = self._client_for(custom_timeout)

        messages = self._process_messages(req.messages, req.images)
        if req.schema is not None:
            json_format = req.schema.model_json_schema()
        elif req.json_mode:
            json_format = "json"
        else:
            json_format = None

        t0 = time.perf_counter()

        try:
            response = await client.chat(
                model=req.model,
                messages=messages,
                options=options,
                format=json_format,
                keep_alive=keep_alive
            )
        except httpx.ReadTimeout as e:
            raise ModelTimeout(f"Ollama timeout after {custom_timeout}s: {e}") from e
        except ResponseError as e:
            msg = str(e)
            if _is_retryable(e): raise ModelRetryable(msg) from e
            raise ModelRequestError(msg) from e
        except Exception as e:
            if _is_retryable(e): raise ModelRetryable(f"Ollama connection failed: {e}") from e
            raise ModelError(f"Ollama request failed: {e}") from e

        content, fields = self._read_response(response)
        meta = {"provider": "ollama", "model": fields.get("model") or req.model, "latency": time.perf_counter() - t0}
        meta.update({key: fields[key] for key in EVAL_FIELDS if key in fields})

        parsed = None
        if req.schema and content:
            try:
                parsed = req.schema.model_validate_json(content)
            except ValidationError as ve:
                meta["validation_error"] = f"Failed to validate JSON: {ve}. Raw content: {content[:500]}"

        return ModelResponse(content=content, raw=response, meta=meta, parsed=parsed)

    async def health_check(self) -> bool:
        try:
            await self.client.list()
            return True
        except Exception:
            return False

    async def cleanup(self) -> None:
        for client in (self.client, *self._timeout_clients.values()):
            await client.close()
        self._timeout_clients.clear()
