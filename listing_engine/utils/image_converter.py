from __future__ import annotations
from pathlib import Path
from typing import Any, Union
import base64
import io
from PIL import Image


def to_base64(image_data: Union[str, Path, bytes, Image.Image, Any]) -> str:
    # ImageInput-like objects carry raw bytes on .data
    if hasattr(image_data, "data") and isinstance(getattr(image_data, "data"), (bytes, bytearray)):
        return base64.b64encode(bytes(image_data.data)).decode('utf-8')

    if isinstance(image_data, (str, Path)):
        path = Path(image_data)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {image_data}")
        return base64.b64encode(path.read_bytes()).decode('utf-8')

    elif isinstance(image_data, (bytes, bytearray)):
        return base64.b64encode(bytes(image_data)).decode('utf-8')

    elif isinstance(image_data, Image.Image):
        if image_data.mode in ('RGBA', 'P'):
            image_data = image_data.convert('RGB')

        buffer = io.BytesIO()
        image_data.save(buffer, format='PNG')
        buffer.seek(0)
        return base64.b64encode(buffer.getvalue()).decode('utf-8')

    else:
        raise ValueError(f"Unsupported image data type: {type(image_data)}")


def mime_type_of(image_data: Any, default: str = "image/jpeg") -> str:
    mime_type = getattr(image_data, "mime_type", None)
    if mime_type:
        return "image/jpeg" if mime_type == "image/jpg" else mime_type
    if isinstance(image_data, Image.Image):
        return "image/png"
    if isinstance(image_data, (str, Path)):
        suffix = Path(image_data).suffix.lower().lstrip(".")
        if suffix in ("jpg", "jpeg"):
            return "image/jpeg"
        if suffix == "tif":
            return "image/tiff"
        if suffix:
            return f"image/{suffix}"
    return default


def to_data_url(image_data: Union[str, Path, bytes, Image.Image, Any]) -> str:
    return f"data:{mime_type_of(image_data)};base64,{to_base64(image_data)}"
