from __future__ import annotations

from pathlib import Path

import numpy as np

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}

def load_rgb(path: Path) -> np.ndarray:
    """Decode an image file to HxWx3 uint8 RGB, honoring EXIF orientation."""
    from PIL import Image, ImageOps
    with Image.open(str(path)) as im:
        im = ImageOps.exif_transpose(im)
        rgb = np.array(im.convert("RGB"))
    if rgb.size == 0:
        raise RuntimeError(f"Image decode produced empty array: {path}")
    return rgb

def as_rgb(pixels: np.ndarray) -> np.ndarray:
    """Coerce a decoded frame (gray, RGB or RGBA) to a contiguous HxWx3 uint8 array."""
    arr = np.asarray(pixels)
    if arr.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got {arr.dtype}")
    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, None], 3, axis=2)
    elif arr.ndim == 3 and arr.shape[2] == 1:
        arr = np.repeat(arr, 3, axis=2)
    elif arr.ndim == 3 and arr.shape[2] == 4:
        arr = arr[:, :, :3]
    elif not (arr.ndim == 3 and arr.shape[2] == 3):
        raise ValueError(f"Unsupported pixel buffer shape: {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ValueError("Empty pixel buffer")
    return np.ascontiguousarray(arr)
