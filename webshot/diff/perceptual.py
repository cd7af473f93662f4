"""Perceptual image diff — antialiasing-aware YIQ color distance.

Pixel classification follows pixelmatch: a pixel differs when its YIQ
distance exceeds ``35215 * 0.1**2``, unless it looks like antialiasing in
either image (a brightness gradient with "many siblings" on both sides).
Everything is computed on whole numpy arrays instead of per pixel.
"""

from __future__ import annotations

import io
import logging

import numpy as np
from PIL import Image

from webshot.models.record import DiffOutcome

logger = logging.getLogger(__name__)

MAX_YIQ_DELTA = 35215.0
PIXEL_THRESHOLD = 0.1
DIFF_ALPHA = 0.1

# Neighbour scan order (dx, dy): column by column, top to bottom.
_OFFSETS = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]

_AA_COLOR = (255, 255, 0, 255)
_DIFF_COLOR = (255, 0, 0, 255)


def compare_images(current: bytes, previous: bytes, threshold: float = 1.0) -> DiffOutcome:
    """Compare two encoded images and report the changed-pixel percentage.

    ``threshold`` is a percentage; ``has_diff`` is set only when the
    percentage is strictly greater. Images of different dimensions are 100%
    different. Any decode or comparison failure is also reported as 100%
    different, never as unchanged.
    """
    try:
        with Image.open(io.BytesIO(current)) as current_img, Image.open(io.BytesIO(previous)) as previous_img:
            if current_img.size != previous_img.size:
                logger.info(
                    "Image dimensions differ (%dx%d vs %dx%d), treating as 100%% diff",
                    *current_img.size, *previous_img.size,
                )
                return DiffOutcome.maximal()
            a = np.asarray(current_img.convert("RGBA"))
            b = np.asarray(previous_img.convert("RGBA"))

        diff_mask, aa_mask = diff_masks(a, b)
        total = diff_mask.size
        diff_pixels = int(diff_mask.sum())
        percentage = round(diff_pixels / total * 100, 2) if total else 0.0
        has_diff = percentage > threshold

        logger.debug(
            "Diff: %d/%d pixels (%.2f%%, threshold %.2f%%, %d antialiased)",
            diff_pixels, total, percentage, threshold, int(aa_mask.sum()),
        )
        return DiffOutcome(
            has_diff=has_diff,
            diff_percentage=percentage,
            diff_pixels=diff_pixels,
            diff_image=render_diff_image(a, diff_mask, aa_mask) if has_diff else None,
        )
    except Exception as e:
        logger.warning("Image comparison failed, treating as 100%% diff: %s", e)
        return DiffOutcome.maximal()


def diff_masks(a: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return (differing, antialiased) boolean masks for two RGBA arrays of equal shape."""
    height, width = a.shape[:2]
    none = np.zeros((height, width), dtype=bool)
    if np.array_equal(a, b):
        return none, none

    y1, i1, q1 = _yiq(_blend_white(a))
    y2, i2, q2 = _yiq(_blend_white(b))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2
    candidates = delta > MAX_YIQ_DELTA * PIXEL_THRESHOLD * PIXEL_THRESHOLD
    if not candidates.any():
        return none, none

    # Antialiasing checks look two pixels out (neighbour of a neighbour), so
    # only the bounding box of the candidates plus a 2px margin is needed.
    rows, cols = np.nonzero(candidates)
    top, bottom = max(int(rows.min()) - 2, 0), min(int(rows.max()) + 3, height)
    left, right = max(int(cols.min()) - 2, 0), min(int(cols.max()) + 3, width)
    window = (slice(top, bottom), slice(left, right))

    aa = none.copy()
    aa[window] = candidates[window] & _antialiased(
        a[window], b[window], y1[window], y2[window],
        origin=(top, left), shape=(height, width),
    )
    return candidates & ~aa, aa


def render_diff_image(a: np.ndarray, diff_mask: np.ndarray, aa_mask: np.ndarray) -> bytes:
    """Faded grayscale of the current image with changed pixels red, antialiasing yellow."""
    rgba = a.astype(np.float32)
    y = _brightness(rgba[..., :3])
    gray = 255.0 + (y - 255.0) * (DIFF_ALPHA * rgba[..., 3] / 255.0)
    out = np.empty(a.shape[:2] + (4,), dtype=np.uint8)
    out[..., :3] = np.clip(gray, 0, 255).astype(np.uint8)[..., None]
    out[..., 3] = 255
    out[aa_mask] = _AA_COLOR
    out[diff_mask] = _DIFF_COLOR

    buf = io.BytesIO()
    Image.fromarray(out).save(buf, format="PNG")
    return buf.getvalue()


def _blend_white(rgba: np.ndarray) -> np.ndarray:
    rgb = rgba[..., :3].astype(np.float32)
    alpha = rgba[..., 3:4].astype(np.float32) / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _brightness(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.29889531 + rgb[..., 1] * 0.58662247 + rgb[..., 2] * 0.11448223


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = _brightness(rgb)
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def _shifted(arr: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """out[y, x] == arr[y + dy, x + dx]; out-of-range cells repeat the edge (mask them)."""
    height, width = arr.shape[:2]
    pad = [(1, 1), (1, 1)] + [(0, 0)] * (arr.ndim - 2)
    padded = np.pad(arr, pad, mode="edge")
    return padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]


def _in_bounds(height: int, width: int, dx: int, dy: int) -> np.ndarray:
    ys = np.arange(height)[:, None] + dy
    xs = np.arange(width)[None, :] + dx
    return (ys >= 0) & (ys < height) & (xs >= 0) & (xs < width)


def _antialiased(
    ra: np.ndarray,
    rb: np.ndarray,
    ya: np.ndarray,
    yb: np.ndarray,
    origin: tuple[int, int],
    shape: tuple[int, int],
) -> np.ndarray:
    height, width = ra.shape[:2]
    gy = np.arange(height)[:, None] + origin[0]
    gx = np.arange(width)[None, :] + origin[1]
    edge = (gy == 0) | (gy == shape[0] - 1) | (gx == 0) | (gx == shape[1] - 1)
    valid = [_in_bounds(height, width, dx, dy) for dx, dy in _OFFSETS]

    siblings_a = _has_many_siblings(ra, edge, valid)
    siblings_b = _has_many_siblings(rb, edge, valid)
    return (
        _is_antialiased(ya, siblings_a, siblings_b, edge, valid)
        | _is_antialiased(yb, siblings_b, siblings_a, edge, valid)
    )


def _has_many_siblings(rgba: np.ndarray, edge: np.ndarray, valid: list[np.ndarray]) -> np.ndarray:
    """More than two identical neighbours (image border counts as one)."""
    count = edge.astype(np.int8)
    for (dx, dy), ok in zip(_OFFSETS, valid):
        count += ok & np.all(_shifted(rgba, dx, dy) == rgba, axis=-1)
    return count > 2


def _is_antialiased(
    y: np.ndarray,
    siblings_self: np.ndarray,
    siblings_other: np.ndarray,
    edge: np.ndarray,
    valid: list[np.ndarray],
) -> np.ndarray:
    zeroes = edge.astype(np.int8)
    min_delta = np.zeros_like(y)
    max_delta = np.zeros_like(y)
    min_siblings = np.zeros(y.shape, dtype=bool)
    max_siblings = np.zeros(y.shape, dtype=bool)

    for (dx, dy), ok in zip(_OFFSETS, valid):
        delta = y - _shifted(y, dx, dy)
        zeroes += ok & (delta == 0)
        both = _shifted(siblings_self, dx, dy) & _shifted(siblings_other, dx, dy)

        darker = ok & (delta < min_delta)
        min_delta = np.where(darker, delta, min_delta)
        min_siblings = np.where(darker, both, min_siblings)

        brighter = ok & (delta > max_delta)
        max_delta = np.where(brighter, delta, max_delta)
        max_siblings = np.where(brighter, both, max_siblings)

    return (zeroes <= 2) & (min_delta < 0) & (max_delta > 0) & (min_siblings | max_siblings)
