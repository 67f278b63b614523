"""
Detection of blank "preview not available" renders.

Illustrator files saved without PDF compatibility still rasterize, but what
comes out is a near-white page with a short notice on it. Those must not be
stored as thumbnails.
"""
from pathlib import Path
from typing import Sequence

from PIL import Image, ImageStat


def looks_blank(means: Sequence[float],
                stddevs: Sequence[float],
                byte_size: int,
                white_mean: float,
                max_stddev: float,
                small_bytes: int) -> bool:
    """
    Pure classification on channel statistics.

    Placeholder if every channel is near-white with low variance, or if the
    encoded output is tiny and near-white (JPEG of a flat page compresses to
    almost nothing).
    """
    near_white = all(m > white_mean for m in means)
    if not near_white:
        return False
    if all(s < max_stddev for s in stddevs):
        return True
    return byte_size < small_bytes


def is_placeholder(image_path: Path,
                   white_mean: float = 240.0,
                   max_stddev: float = 8.0,
                   small_bytes: int = 6 * 1024) -> bool:
    with Image.open(image_path) as im:
        stat = ImageStat.Stat(im.convert("RGB"))
    return looks_blank(
        stat.mean,
        stat.stddev,
        Path(image_path).stat().st_size,
        white_mean,
        max_stddev,
        small_bytes,
    )
