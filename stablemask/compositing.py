"""Compositing a subject over a new background using a processed alpha mask."""

import numpy as np
import cv2
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from stablemask.mask import MaskValues, as_flat_array, validate_mask_dimensions


@dataclass(frozen=True)
class BlurBackground:
    """Use a blurred copy of the frame itself as the background."""
    radius: int = 25

    def render(self, frame: np.ndarray) -> np.ndarray:
        ksize = 2 * max(self.radius, 1) + 1
        return cv2.GaussianBlur(frame, (ksize, ksize), 0)


Background = Union[Tuple[int, int, int], np.ndarray, BlurBackground]


def _alpha_for_frame(alpha: MaskValues, frame: np.ndarray) -> np.ndarray:
    """Validate an alpha field against a frame and return it as (H, W, 1)."""
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) frame, got shape {frame.shape}")

    h, w = frame.shape[:2]
    values = as_flat_array(alpha)
    validate_mask_dimensions(values, w, h)
    return np.clip(values, 0.0, 1.0).reshape(h, w, 1)


def compose_with_alpha(frame: np.ndarray, alpha: MaskValues) -> np.ndarray:
    """
    Attach an alpha mask to an RGB frame.

    Args:
        frame: RGB frame (H, W, 3) uint8
        alpha: Flat or (H, W) alpha in [0, 1], matching the frame size

    Returns:
        RGBA frame (H, W, 4) uint8
    """
    a = _alpha_for_frame(alpha, frame)
    alpha_channel = np.round(a * 255).astype(np.uint8)
    return np.concatenate([frame.astype(np.uint8), alpha_channel], axis=2)


def render_background(background: Background, frame: np.ndarray) -> np.ndarray:
    """
    Produce an (H, W, 3) uint8 background matching the frame.

    Args:
        background: RGB colour tuple, an RGB image (resized to the frame if
                    needed), or a BlurBackground
        frame: The RGB frame being composited

    Returns:
        Background image with the frame's shape
    """
    h, w = frame.shape[:2]

    if isinstance(background, BlurBackground):
        return background.render(frame)

    if isinstance(background, np.ndarray):
        if background.ndim != 3 or background.shape[2] != 3:
            raise ValueError(f"Background image must be (H, W, 3), got shape {background.shape}")
        if background.shape[:2] != (h, w):
            background = cv2.resize(background, (w, h), interpolation=cv2.INTER_LINEAR)
        return background.astype(np.uint8)

    if len(background) != 3:
        raise ValueError(f"Background colour must be an RGB triple, got {background}")
    return np.full((h, w, 3), background, dtype=np.uint8)


def replace_background(
    frame: np.ndarray,
    alpha: MaskValues,
    background: Background,
) -> np.ndarray:
    """
    Composite the subject of a frame over a new background.

    out = alpha * frame + (1 - alpha) * background

    Args:
        frame: RGB frame (H, W, 3) uint8
        alpha: Flat or (H, W) alpha in [0, 1], matching the frame size
        background: See render_background

    Returns:
        Composited RGB frame (H, W, 3) uint8
    """
    a = _alpha_for_frame(alpha, frame)
    backdrop = render_background(background, frame).astype(np.float32)
    blended = a * frame.astype(np.float32) + (1.0 - a) * backdrop
    return np.clip(np.round(blended), 0, 255).astype(np.uint8)


def create_mask_visualisation(alpha: MaskValues, width: int, height: int) -> np.ndarray:
    """
    Render an alpha mask as a greyscale image.

    Args:
        alpha: Flat alpha values in [0, 1]
        width: Mask width
        height: Mask height

    Returns:
        (H, W) uint8 image, 0 = background, 255 = subject
    """
    values = as_flat_array(alpha)
    validate_mask_dimensions(values, width, height)
    return (np.clip(values, 0.0, 1.0) * 255).astype(np.uint8).reshape(height, width)


_CHANNELS = {"red": 0, "green": 1, "blue": 2}
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _ring_kernel(radius: int) -> np.ndarray:
    """Ones where 2 <= distance from the centre <= radius."""
    offsets = np.arange(-radius, radius + 1, dtype=np.float32)
    dist = np.sqrt(offsets[None, :] ** 2 + offsets[:, None] ** 2)
    return ((dist >= 2.0) & (dist <= radius)).astype(np.float32)


def decontaminate_edges(
    frame: np.ndarray,
    alpha: MaskValues,
    low: float = 0.1,
    high: float = 0.9,
    sample_radius: int = 5,
    strength: float = 0.7,
    channels: Sequence[str] = ("green", "blue"),
) -> np.ndarray:
    """
    Remove background colour spill from the soft edge of the subject.

    Each pixel with low <= alpha <= high averages the clearly-background
    pixels (alpha < 0.2) in a ring just outside it. When one of the enabled
    channels dominates that sample, the pixel's copy of the channel is
    reduced in proportion to how much background the pixel holds
    (1 - alpha). If this takes away more than 30% of the pixel's luminance,
    all channels are boosted back up (by at most 1.5x).

    Args:
        frame: RGB frame (H, W, 3) uint8
        alpha: Flat or (H, W) alpha in [0, 1], matching the frame size
        low: Lower alpha bound of the edge band
        high: Upper alpha bound of the edge band
        sample_radius: Outer radius of the background sampling ring
        strength: Fraction of the spill removed, 0 to 1
        channels: Spill colours to remove ('red', 'green', 'blue')

    Returns:
        De-spilled RGB frame (H, W, 3) uint8
    """
    a = _alpha_for_frame(alpha, frame)[..., 0]
    if sample_radius < 2:
        raise ValueError(f"Sample radius must be >= 2, got {sample_radius}")
    unknown = set(channels) - set(_CHANNELS)
    if unknown:
        raise ValueError(f"Unknown channels: {sorted(unknown)}")

    rgb = frame.astype(np.float32)
    background = (a < 0.2).astype(np.float32)
    kernel = _ring_kernel(sample_radius)

    sums = cv2.filter2D(rgb * background[..., None], -1, kernel, borderType=cv2.BORDER_CONSTANT)
    counts = np.rint(cv2.filter2D(background, -1, kernel, borderType=cv2.BORDER_CONSTANT))
    edge = (a >= low) & (a <= high) & (counts >= 3)

    out = frame.astype(np.uint8).copy()
    if not np.any(edge):
        return out

    pixels = rgb[edge]
    alphas = a[edge]
    bg_colour = np.floor(np.rint(sums[edge]) / counts[edge][:, None])

    # The first enabled channel that strictly dominates the sample wins
    result = pixels.copy()
    handled = np.zeros(len(pixels), dtype=bool)
    for name in ("green", "blue", "red"):
        if name not in channels:
            continue
        c = _CHANNELS[name]
        others = [i for i in range(3) if i != c]
        dominant = (
            (bg_colour[:, c] > bg_colour[:, others[0]])
            & (bg_colour[:, c] > bg_colour[:, others[1]])
            & ~handled
        )
        reduction = strength * (1.0 - alphas) * (bg_colour[:, c] / 255.0)
        result[dominant, c] = np.floor(pixels[dominant, c] * (1.0 - reduction[dominant]))
        handled |= dominant

    old_luma = pixels @ _LUMA
    new_luma = result @ _LUMA
    darkened = new_luma < 0.7 * old_luma
    boost = np.minimum(old_luma / np.maximum(new_luma, 1.0), 1.5)
    result[darkened] = np.floor(result[darkened] * boost[darkened, None])

    out[edge] = np.clip(result, 0, 255).astype(np.uint8)
    return out
