"""
Translate unified image options into backend-specific processing strings.
"""

import base64
from abc import ABC, abstractmethod
from typing import Callable, Optional

from cloudfile.image.image_options import (
    BlurOptions,
    CropOptions,
    ImageProcessOptions,
    IndexCropOptions,
    ResizeOptions,
    WatermarkOptions,
)


class ImageProcessor(ABC):
    """Turns :class:`ImageProcessOptions` into one backend's query parameter."""

    parameter_name: str = ""

    @abstractmethod
    def build_process_string(self, options: ImageProcessOptions) -> str:
        """Return the processing string, or ``""`` when no operation is set."""
        pass

    def build_url(self, url: str, options: ImageProcessOptions) -> str:
        """Append the processing parameter to an object URL."""
        process = self.build_process_string(options)
        if not process:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{self.parameter_name}={process}"


def _url_safe_b64(value: str) -> str:
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def _join(operation: str, parts: list[str]) -> str:
    return f"{operation},{','.join(parts)}" if parts else ""


class OSSImageProcessor(ImageProcessor):
    """
    Aliyun OSS image processing (``x-oss-process``).

    Example::

        image/resize,m_lfit,w_300,h_200/quality,q_90/format,webp
    """

    parameter_name = "x-oss-process"

    def build_process_string(self, options: ImageProcessOptions) -> str:
        if options.raw:
            return options.raw

        builders: list[Callable[[ImageProcessOptions], Optional[str]]] = [
            lambda o: self._resize(o.resize) if o.resize else None,
            lambda o: f"quality,q_{o.quality}" if o.quality else None,
            lambda o: f"format,{o.format}" if o.format else None,
            lambda o: f"rotate,{o.rotate}" if o.rotate is not None else None,
            lambda o: self._crop(o.crop) if o.crop else None,
            lambda o: f"circle,r_{o.circle}" if o.circle else None,
            lambda o: self._blur(o.blur) if o.blur else None,
            lambda o: f"bright,{o.bright}" if o.bright is not None else None,
            lambda o: f"contrast,{o.contrast}" if o.contrast is not None else None,
            lambda o: f"sharpen,{o.sharpen}" if o.sharpen else None,
            lambda o: self._watermark(o.watermark) if o.watermark else None,
            lambda o: f"rounded-corners,r_{o.rounded_corners}" if o.rounded_corners else None,
            lambda o: self._indexcrop(o.indexcrop) if o.indexcrop else None,
            lambda o: f"auto-orient,{o.auto_orient}" if o.auto_orient is not None else None,
            lambda o: f"interlace,{o.interlace}" if o.interlace is not None else None,
            lambda o: "info" if o.info else None,
            lambda o: "average-hue" if o.average_hue else None,
        ]

        operations = [op for op in (build(options) for build in builders) if op]
        return f"image/{'/'.join(operations)}" if operations else ""

    def _resize(self, resize: ResizeOptions) -> str:
        parts = []
        if resize.mode:
            parts.append(f"m_{resize.mode}")
        if resize.width is not None:
            parts.append(f"w_{resize.width}")
        if resize.height is not None:
            parts.append(f"h_{resize.height}")
        if resize.limit is not None:
            parts.append(f"l_{resize.limit}")
        if resize.short is not None:
            parts.append(f"s_{resize.short}")
        if resize.percentage is not None:
            parts.append(f"p_{resize.percentage}")
        return _join("resize", parts)

    def _crop(self, crop: CropOptions) -> str:
        parts = []
        if crop.x is not None:
            parts.append(f"x_{crop.x}")
        if crop.y is not None:
            parts.append(f"y_{crop.y}")
        if crop.width is not None:
            parts.append(f"w_{crop.width}")
        if crop.height is not None:
            parts.append(f"h_{crop.height}")
        if crop.gravity:
            parts.append(f"g_{crop.gravity}")
        return _join("crop", parts)

    def _blur(self, blur: BlurOptions) -> str:
        parts = []
        if blur.radius is not None:
            parts.append(f"r_{blur.radius}")
        if blur.sigma is not None:
            parts.append(f"s_{blur.sigma}")
        return _join("blur", parts)

    def _watermark(self, watermark: WatermarkOptions) -> str:
        parts = []
        if watermark.is_text:
            if watermark.content is not None:
                parts.append(f"text_{_url_safe_b64(watermark.content)}")
            if watermark.font:
                parts.append(f"type_{watermark.font}")
            if watermark.size is not None:
                parts.append(f"size_{watermark.size}")
            if watermark.color:
                parts.append(f"color_{watermark.color}")
        elif watermark.content is not None:
            parts.append(f"image_{_url_safe_b64(watermark.content)}")

        if watermark.position:
            parts.append(f"g_{watermark.position}")
        if watermark.x is not None:
            parts.append(f"x_{watermark.x}")
        if watermark.y is not None:
            parts.append(f"y_{watermark.y}")
        if watermark.transparency is not None:
            parts.append(f"t_{watermark.transparency}")
        return _join("watermark", parts)

    def _indexcrop(self, indexcrop: IndexCropOptions) -> str:
        parts = []
        if indexcrop.axis and indexcrop.length is not None:
            parts.append(f"{indexcrop.axis}_{indexcrop.length}")
        if indexcrop.index is not None:
            parts.append(f"i_{indexcrop.index}")
        return _join("indexcrop", parts)
