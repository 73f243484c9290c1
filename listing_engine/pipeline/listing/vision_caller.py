from __future__ import annotations
from typing import Any, Dict, Optional, Sequence
import logging

from ...models.manager import ModelManager
from .errors import EmptyResponseError
from .types import ImageInput

logger = logging.getLogger(__name__)


class VisionCaller:
    """One multimodal request per call: rendered phase prompt plus the image set, raw text back."""

    def __init__(self, manager: ModelManager):
        self.model_manager = manager

    async def call(
        self,
        task: str,
        prompt_ref: str,
        variables: Dict[str, Any],
        images: Sequence[ImageInput] = (),
        correlation_id: Optional[str] = None,
        **params,
    ) -> str:
        response = await self.model_manager.call(
            task=task,
            prompt_ref=prompt_ref,
            variables=variables,
            images=list(images) or None,
            **params,
        )

        text = response.content or ""
        if not text.strip():
            raise EmptyResponseError(f"Empty response from {task}")

        finish_reason = response.meta.get("finish_reason") or response.meta.get("done_reason")
        if finish_reason == "length":
            # the sanitizer will try to close the truncated JSON
            logger.warning(f"[{correlation_id}] {task}: output hit the token ceiling")
        logger.debug(f"[{correlation_id}] {task}: {len(text)} chars from {response.meta.get('model')} in {response.meta.get('latency', 0):.2f}s")
        return text
