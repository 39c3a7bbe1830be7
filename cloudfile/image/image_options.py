"""
Provider-neutral image processing options.

One option set describes resize, crop, watermark and colour adjustments; each
backend's :class:`~cloudfile.image.image_processor.ImageProcessor` turns it
into that backend's native processing string. The options also travel in a
compact query-string form::

    resize=w:300,h:200,m:lfit&quality=90&format=webp
"""

import re
from typing import Any, ClassVar, Literal, Optional
from urllib.parse import quote_plus, unquote_plus

from pydantic import BaseModel, Field, field_validator


ResizeMode = Literal["lfit", "mfit", "fill", "pad", "fixed"]
Gravity = Literal["nw", "north", "ne", "west", "center", "east", "sw", "south", "se"]
ImageFormat = Literal["jpg", "jpeg", "png", "webp", "bmp", "gif", "tiff", "heif", "avif"]

_SAFE_VALUE = re.compile(r"^[a-zA-Z0-9._-]*$")


class ResizeOptions(BaseModel):
    mode: Optional[ResizeMode] = None
    width: Optional[int] = Field(default=None, ge=1, le=30000)
    height: Optional[int] = Field(default=None, ge=1, le=30000)
    limit: Optional[int] = Field(default=None, ge=1, le=30000)  # long edge
    short: Optional[int] = Field(default=None, ge=1, le=30000)  # short edge
    percentage: Optional[int] = Field(default=None, ge=1, le=1000)

    short_keys: ClassVar[dict[str, str]] = {
        "width": "w",
        "height": "h",
        "mode": "m",
        "limit": "l",
        "short": "s",
        "percentage": "p",
    }


class CropOptions(BaseModel):
    x: Optional[int] = Field(default=None, ge=0)
    y: Optional[int] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, ge=1, le=30000)
    height: Optional[int] = Field(default=None, ge=1, le=30000)
    gravity: Optional[Gravity] = None

    short_keys: ClassVar[dict[str, str]] = {
        "x": "x",
        "y": "y",
        "width": "w",
        "height": "h",
        "gravity": "g",
    }


class IndexCropOptions(BaseModel):
    axis: Optional[Literal["x", "y"]] = None
    length: Optional[int] = Field(default=None, ge=1, le=30000)
    index: Optional[int] = Field(default=None, ge=0)

    short_keys: ClassVar[dict[str, str]] = {
        "axis": "a",
        "length": "l",
        "index": "i",
    }


class WatermarkOptions(BaseModel):
    """Text or image overlay. ``content`` is the text, or the object key of the overlay image."""

    type: Optional[Literal["text", "image"]] = None
    content: Optional[str] = None
    position: Optional[Gravity] = None
    x: Optional[int] = Field(default=None, ge=0, le=4096)
    y: Optional[int] = Field(default=None, ge=0, le=4096)
    transparency: Optional[int] = Field(default=None, ge=0, le=100)
    size: Optional[int] = Field(default=None, ge=1, le=1000)  # text only
    color: Optional[str] = None  # text only
    font: Optional[str] = None  # text only

    short_keys: ClassVar[dict[str, str]] = {
        "type": "t",
        "content": "c",
        "position": "p",
        "x": "x",
        "y": "y",
        "transparency": "tr",
        "size": "s",
        "color": "co",
        "font": "f",
    }

    @property
    def is_text(self) -> bool:
        return (self.type or "text") == "text"


class BlurOptions(BaseModel):
    radius: Optional[int] = Field(default=None, ge=1, le=50)
    sigma: Optional[int] = Field(default=None, ge=1, le=50)

    short_keys: ClassVar[dict[str, str]] = {
        "radius": "r",
        "sigma": "s",
    }


# Query-string parameter name -> (field name, nested model or None)
_QUERY_FIELDS: dict[str, tuple[str, Optional[type[BaseModel]]]] = {
    "resize": ("resize", ResizeOptions),
    "quality": ("quality", None),
    "format": ("format", None),
    "rotate": ("rotate", None),
    "crop": ("crop", CropOptions),
    "circle": ("circle", None),
    "roundedCorners": ("rounded_corners", None),
    "indexcrop": ("indexcrop", IndexCropOptions),
    "watermark": ("watermark", WatermarkOptions),
    "blur": ("blur", BlurOptions),
    "sharpen": ("sharpen", None),
    "bright": ("bright", None),
    "contrast": ("contrast", None),
    "info": ("info", None),
    "averageHue": ("average_hue", None),
    "autoOrient": ("auto_orient", None),
    "interlace": ("interlace", None),
    "raw": ("raw", None),
}

_BOOLEAN_FIELDS = {"info", "average_hue"}


class ImageProcessOptions(BaseModel):
    """
    Unified image processing options.

    Every field is optional; unset fields produce no operation. When ``raw``
    is set, processors use it verbatim and ignore everything else.
    """

    resize: Optional[ResizeOptions] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    format: Optional[ImageFormat] = None
    rotate: Optional[int] = Field(default=None, ge=0, le=360)

    crop: Optional[CropOptions] = None
    circle: Optional[int] = Field(default=None, ge=1, le=4096)
    indexcrop: Optional[IndexCropOptions] = None
    rounded_corners: Optional[int] = Field(default=None, ge=1, le=4096)

    watermark: Optional[WatermarkOptions] = None
    blur: Optional[BlurOptions] = None
    sharpen: Optional[int] = Field(default=None, ge=0, le=300)

    bright: Optional[int] = Field(default=None, ge=-100, le=100)
    contrast: Optional[int] = Field(default=None, ge=-100, le=100)

    info: bool = False
    average_hue: bool = False
    auto_orient: Optional[int] = Field(default=None, ge=0, le=1)
    interlace: Optional[int] = Field(default=None, ge=0, le=1)

    raw: Optional[str] = None

    @field_validator("format", mode="before")
    @classmethod
    def _lowercase_format(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def to_dict(self) -> dict[str, Any]:
        """Set options only, nested models as dicts."""
        data = self.model_dump(exclude_none=True)
        for name in _BOOLEAN_FIELDS:
            if not data.get(name):
                data.pop(name, None)
        return data

    def is_empty(self) -> bool:
        return not self.to_dict()

    # Query-string form

    def to_query_string(self) -> str:
        parts = []
        for param, (name, nested) in _QUERY_FIELDS.items():
            value = getattr(self, name)
            if value is None or value is False:
                continue

            if nested is not None:
                encoded = _encode_object(value)
            elif name in _BOOLEAN_FIELDS:
                encoded = "1"
            elif name == "raw":
                encoded = quote_plus(value)
            else:
                encoded = str(value)
            parts.append(f"{param}={encoded}")

        return "&".join(parts)

    @classmethod
    def from_query_string(cls, query: str) -> "ImageProcessOptions":
        """
        Parse the compact query-string form.

        Unknown parameters are ignored.

        Raises:
            pydantic.ValidationError: If a value is out of range
        """
        data: dict[str, Any] = {}
        for pair in query.lstrip("?").split("&"):
            if not pair:
                continue
            param, _, value = pair.partition("=")
            field = _QUERY_FIELDS.get(unquote_plus(param))
            if field is None:
                continue

            name, nested = field
            if nested is not None:
                data[name] = _decode_object(value, nested)
            elif name in _BOOLEAN_FIELDS:
                data[name] = unquote_plus(value).lower() not in ("", "0", "false")
            else:
                data[name] = unquote_plus(value)

        return cls.model_validate(data)

    def __str__(self) -> str:
        return self.to_query_string()


def _encode_object(model: BaseModel) -> str:
    pairs = []
    for name, value in model.model_dump(exclude_none=True).items():
        short_key = model.short_keys.get(name, name)
        value = str(value)
        if not _SAFE_VALUE.match(value):
            value = quote_plus(value)
        pairs.append(f"{short_key}:{value}")
    return ",".join(pairs)


def _decode_object(value: str, model: type[BaseModel]) -> dict[str, Any]:
    long_keys = {short: name for name, short in model.short_keys.items()}
    result: dict[str, Any] = {}
    for pair in value.split(","):
        short_key, sep, raw = pair.partition(":")
        if not sep:
            continue
        result[long_keys.get(short_key, short_key)] = unquote_plus(raw)
    return result
