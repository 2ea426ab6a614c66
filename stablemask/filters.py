"""Per-stage mask filters.

Every function here is pure: it takes a field and returns a freshly
allocated result, leaving its inputs untouched. Spatial filters work on
(H, W) arrays; binary masks hold 0/1 values.
"""

import numpy as np
import cv2
from typing import Optional

# 3x3 structuring element shared by morphology and boundary expansion
_KERNEL_3X3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


def sanitize_confidence(values: np.ndarray) -> np.ndarray:
    """
    Clamp confidences to [0, 1].

    NaN is treated as background; +/-inf clamp to the nearest bound.
    """
    cleaned = np.nan_to_num(values.astype(np.float32), nan=0.0, posinf=1.0, neginf=0.0)
    return np.clip(cleaned, 0.0, 1.0)


def temporal_smooth(
    current: np.ndarray,
    previous: Optional[np.ndarray],
    alpha: float,
) -> np.ndarray:
    """
    Exponential moving average between consecutive frames.

    Formula: smoothed = alpha * current + (1 - alpha) * previous

    Args:
        current: Confidences of the current frame
        previous: Smoothed confidences of the previous frame, or None
        alpha: Weight of the current frame in (0, 1]

    Returns:
        Smoothed confidences (a copy of current when there is no history)
    """
    if previous is None or previous.shape != current.shape:
        return current.astype(np.float32, copy=True)

    blended = alpha * current + (1.0 - alpha) * previous
    return np.clip(blended, 0.0, 1.0).astype(np.float32)


def apply_threshold(values: np.ndarray, threshold: float) -> np.ndarray:
    """Binary decision: 1 where value >= threshold, else 0."""
    return (values >= threshold).astype(np.float32)


def apply_hysteresis_threshold(
    values: np.ndarray,
    previous_state: np.ndarray,
    threshold: float,
    delta: float,
) -> np.ndarray:
    """
    Per-pixel Schmitt trigger.

    Values at or above threshold + delta become foreground, values at or
    below threshold - delta become background, and anything inside the band
    keeps the pixel's previous binary state.

    Args:
        values: Confidences of the current frame
        previous_state: Binary decisions from the previous frame (same shape)
        threshold: Centre of the indecision band
        delta: Half-width of the band

    Returns:
        Binary mask as float32 0/1
    """
    upper = threshold + delta
    lower = threshold - delta

    held = previous_state >= 0.5
    decided = np.where(values >= upper, True, np.where(values <= lower, False, held))
    return decided.astype(np.float32)


def _neighbourhood_sum(field: np.ndarray) -> np.ndarray:
    """Sum over each 3x3 window; cells outside the frame contribute nothing."""
    h, w = field.shape
    padded = np.pad(field, 1, mode='constant', constant_values=0)
    total = np.zeros((h, w), dtype=np.int32)
    for dy in range(3):
        for dx in range(3):
            total += padded[dy:dy + h, dx:dx + w]
    return total


def neighborhood_consensus(binary: np.ndarray, passes: int = 1) -> np.ndarray:
    """
    Majority vote over each pixel's 3x3 neighbourhood.

    Only in-bounds cells vote, so border pixels see 4 or 6 cells instead of
    9. A pixel becomes foreground when foreground cells are a strict
    majority of the cells counted; an exact tie resolves to background.
    This removes isolated single-pixel spots and fills single-pixel holes.

    Args:
        binary: (H, W) binary mask
        passes: Number of sequential passes, each reading the previous output

    Returns:
        Filtered (H, W) float32 binary mask
    """
    current = (binary >= 0.5).astype(np.int32)
    valid = _neighbourhood_sum(np.ones_like(current))

    for _ in range(passes):
        votes = _neighbourhood_sum(current)
        current = (2 * votes > valid).astype(np.int32)

    return current.astype(np.float32)


def erode(binary: np.ndarray) -> np.ndarray:
    """3x3 erosion; out-of-bounds cells count as background."""
    return cv2.erode(
        np.ascontiguousarray(binary, dtype=np.uint8),
        _KERNEL_3X3,
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def dilate(binary: np.ndarray) -> np.ndarray:
    """3x3 dilation; out-of-bounds cells contribute nothing."""
    return cv2.dilate(
        np.ascontiguousarray(binary, dtype=np.uint8),
        _KERNEL_3X3,
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def morphological_cleanup(binary: np.ndarray) -> np.ndarray:
    """
    Opening (erode, dilate) followed by closing (dilate, erode).

    Opening strips thin protrusions and small islands; closing fills small
    notches and gaps along the boundary.

    Cells outside the frame are background for both operations, so the
    final erosion always clears the outermost row and column of the frame:
    a subject cut off by the frame edge loses a one-pixel ring there.
    Feathering softens that ring afterwards.

    Args:
        binary: (H, W) binary mask

    Returns:
        Cleaned (H, W) float32 binary mask
    """
    mask = (binary >= 0.5).astype(np.uint8)
    opened = dilate(erode(mask))
    closed = erode(dilate(opened))
    return closed.astype(np.float32)


def _ring_distance(seeds: np.ndarray, radius: int) -> np.ndarray:
    """
    Chebyshev distance from every pixel to the nearest seed, up to radius.

    Breadth-first expansion: each 3x3 dilation adds one ring. Pixels not
    reached within radius steps get radius + 1; seeds themselves get 0.
    """
    distance = np.full(seeds.shape, radius + 1, dtype=np.int32)
    reached = seeds.astype(np.uint8)
    distance[reached > 0] = 0

    for step in range(1, radius + 1):
        grown = dilate(reached)
        frontier = (grown > 0) & (reached == 0)
        if not frontier.any():
            break
        distance[frontier] = step
        reached = grown

    return distance


def feather(binary: np.ndarray, radius: int) -> np.ndarray:
    """
    Turn a hard binary mask into a soft alpha field along its boundary.

    Foreground pixels within radius (Chebyshev) of background, and
    background pixels within radius of foreground, get a linear ramp across
    a band of 2 * radius pixels centred on the boundary. For a pixel at
    distance d from the other side:

        foreground: 0.5 + (d - 0.5) / (2 * radius)
        background: 0.5 - (d - 0.5) / (2 * radius)

    Pixels farther than radius from the boundary keep their 0/1 value. The
    frame edge is not a boundary.

    Args:
        binary: (H, W) binary mask
        radius: Falloff half-width in pixels (0 disables feathering)

    Returns:
        (H, W) float32 alpha in [0, 1]
    """
    mask = (binary >= 0.5)
    result = mask.astype(np.float32)
    if radius <= 0 or mask.all() or not mask.any():
        return result

    to_background = _ring_distance(~mask, radius)
    to_foreground = _ring_distance(mask, radius)

    span = 2.0 * radius
    inner = mask & (to_background <= radius)
    outer = ~mask & (to_foreground <= radius)

    result[inner] = 0.5 + (to_background[inner] - 0.5) / span
    result[outer] = 0.5 - (to_foreground[outer] - 0.5) / span

    return np.clip(result, 0.0, 1.0)
