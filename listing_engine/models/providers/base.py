from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Union, Type
from pydantic import BaseModel
from PIL import Image

#unified model errors
class ModelError(RuntimeError):
    retryable: Optional[bool] = None  #None -> classify by message
class ModelTimeout(ModelError):
    retryable = True
class ModelRetryable(ModelError):
    retryable = True
class ModelRequestError(ModelError):
    retryable = False  #provider refused the request itself (non-transient 4xx)

@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: List[Dict[str, Any]]
    params: Dict[str, Any] | None = None
    schema: Optional[Type[BaseModel]] = None #pydantic model -> json schema
    json_mode: bool = False #force a JSON object response when no schema is given
    extra_body: Optional[Dict[str, Any]] = None #extra body for openai-compatible endpoints
    images: Optional[List[Union[str, bytes, Image.Image, Any]]] = None #images to include in the chat

@dataclass(frozen=True)
class ModelResponse:
    content: str
    raw: Any #provider-native response obj/dict
    meta: Dict[str, Any] #timings, token counts, model, finish reason, etc.
    parsed: Optional[BaseModel] = None #populated if schema was provided

class ModelProvider(ABC):
    @abstractmethod
    async def chat(self, req: ChatRequest) -> ModelResponse:
        raise NotImplementedError

    @abstractmethod
    async def health_check(self) -> bool:
        raise NotImplementedError

    async def cleanup(self) -> None:
        return None
