"""
Image processing options and backend-specific processors.
"""

from .image_options import (
    BlurOptions,
    CropOptions,
    ImageProcessOptions,
    IndexCropOptions,
    ResizeOptions,
    WatermarkOptions,
)
from .image_processor import ImageProcessor, OSSImageProcessor


__all__ = [
    "ImageProcessOptions",
    "ResizeOptions",
    "CropOptions",
    "IndexCropOptions",
    "WatermarkOptions",
    "BlurOptions",
    "ImageProcessor",
    "OSSImageProcessor",
]
