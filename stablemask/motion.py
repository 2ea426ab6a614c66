"""Motion-compensated temporal smoothing of confidence masks."""

from typing import Optional
import numpy as np
import cv2
from pydantic import BaseModel, Field

from stablemask.config import _to_camel
from stablemask.mask import MaskValues, as_flat_array, validate_mask_dimensions


class MotionFilterConfig(BaseModel):
    """Options for MotionAwareTemporalFilter."""
    temporal_alpha: float = Field(0.3, gt=0.0, le=1.0, description="EMA weight of the new mask")
    use_motion_compensation: bool = Field(True, description="Warp the previous mask along estimated motion")
    motion_threshold: float = Field(0.1, ge=0.0, description="RMS block motion (pixels) that triggers warping")
    max_motion_pixels: float = Field(50.0, ge=0.0, description="Clamp for each motion vector component")
    block_size: int = Field(16, ge=2, description="Side of the square blocks used for matching")
    search_radius: int = Field(8, ge=0, description="Largest offset searched in each direction")

    class Config:
        frozen = True
        extra = "forbid"
        alias_generator = _to_camel
        populate_by_name = True


def to_grey(frame: np.ndarray) -> np.ndarray:
    """Convert an (H, W, 3) RGB frame to float32 luma."""
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) frame, got shape {frame.shape}")
    grey = cv2.cvtColor(np.ascontiguousarray(frame, dtype=np.uint8), cv2.COLOR_RGB2GRAY)
    return grey.astype(np.float32)


def _block_sum(field: np.ndarray, block_size: int) -> np.ndarray:
    h, w = field.shape
    return field.reshape(h // block_size, block_size, w // block_size, block_size).sum(axis=(1, 3))


def _neighbour_mean(vectors: np.ndarray) -> np.ndarray:
    """Mean over each 3x3 block neighbourhood, in-bounds blocks only."""
    kernel = np.ones((3, 3), dtype=np.float32)
    ones = np.ones(vectors.shape[:2], dtype=np.float32)
    counts = cv2.filter2D(ones, -1, kernel, borderType=cv2.BORDER_CONSTANT)
    sums = cv2.filter2D(vectors, -1, kernel, borderType=cv2.BORDER_CONSTANT)
    return (sums.reshape(vectors.shape) / counts[..., None]).astype(np.float32)


def estimate_block_motion(
    previous: np.ndarray,
    current: np.ndarray,
    block_size: int = 16,
    search_radius: int = 8,
    max_motion: float = 50.0,
) -> np.ndarray:
    """
    Block-matching motion estimation between two greyscale frames.

    Every full block of the previous frame is compared against the current
    frame at each offset within search_radius. The cost is the mean absolute
    difference over the pixels that stay in bounds; ties go to the smaller
    offset, so flat regions report no motion. The winning vectors are
    clamped to max_motion and averaged with their neighbouring blocks.

    Args:
        previous: (H, W) greyscale frame
        current: (H, W) greyscale frame
        block_size: Side of each square block
        search_radius: Largest offset searched in each direction
        max_motion: Clamp for each vector component

    Returns:
        (blocks_y, blocks_x, 2) float32 array of (dx, dy); a block that moved
        right by 4 pixels reports (4, 0). Empty when the frame is smaller
        than one block.
    """
    if previous.shape != current.shape:
        raise ValueError(f"Frame shapes differ: {previous.shape} vs {current.shape}")

    h, w = previous.shape
    blocks_y, blocks_x = h // block_size, w // block_size
    if blocks_x == 0 or blocks_y == 0:
        return np.zeros((0, 0, 2), dtype=np.float32)

    ch, cw = blocks_y * block_size, blocks_x * block_size
    r = search_radius
    prev = previous[:ch, :cw].astype(np.float32)
    padded = np.pad(current.astype(np.float32), r, mode='constant', constant_values=0)
    in_bounds = np.pad(np.ones(current.shape, dtype=np.float32), r, mode='constant', constant_values=0)

    best_cost = np.full((blocks_y, blocks_x), np.inf, dtype=np.float64)
    vectors = np.zeros((blocks_y, blocks_x, 2), dtype=np.float32)

    offsets = [(dx, dy) for dy in range(-r, r + 1) for dx in range(-r, r + 1)]
    offsets.sort(key=lambda o: abs(o[0]) + abs(o[1]))

    for dx, dy in offsets:
        shifted = padded[r + dy:r + dy + ch, r + dx:r + dx + cw]
        valid = in_bounds[r + dy:r + dy + ch, r + dx:r + dx + cw]

        sad = _block_sum(np.abs(prev - shifted) * valid, block_size)
        count = _block_sum(valid, block_size)
        cost = np.full(sad.shape, np.inf, dtype=np.float64)
        np.divide(sad, count, out=cost, where=count > 0)

        better = cost < best_cost
        best_cost[better] = cost[better]
        vectors[better] = (dx, dy)

    np.clip(vectors, -max_motion, max_motion, out=vectors)
    return _neighbour_mean(vectors)


def average_motion(vectors: np.ndarray) -> float:
    """Root-mean-square vector length, 0 when there are no blocks."""
    if vectors.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.sum(vectors.astype(np.float64) ** 2, axis=-1))))


def warp_mask(mask: np.ndarray, vectors: np.ndarray, block_size: int) -> np.ndarray:
    """
    Move an (H, W) mask along per-block motion vectors.

    Each output pixel takes its block's vector (edge blocks extend over any
    remainder) and bilinearly samples the mask at (x - dx, y - dy),
    replicating the border for samples that fall outside.
    """
    h, w = mask.shape
    blocks_y, blocks_x = vectors.shape[:2]
    rows = np.minimum(np.arange(h) // block_size, blocks_y - 1)
    cols = np.minimum(np.arange(w) // block_size, blocks_x - 1)
    field = vectors[rows[:, None], cols[None, :]]

    xs, ys = np.meshgrid(np.arange(w, dtype=np.float32), np.arange(h, dtype=np.float32))
    map_x = (xs - field[..., 0]).astype(np.float32)
    map_y = (ys - field[..., 1]).astype(np.float32)
    return cv2.remap(
        mask.astype(np.float32), map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE
    )


class MotionAwareTemporalFilter:
    """
    Exponential moving average over masks that follows motion in the video.

    Plain EMA smears a moving subject: the previous mask still sits where
    the subject was. This filter estimates block motion between consecutive
    RGB frames and, when the motion is large enough, warps the previous
    result into place before blending.

    Frames must arrive in display order. A size change starts a new
    sequence; reset() does so explicitly.
    """

    def __init__(self, config: Optional[MotionFilterConfig] = None):
        self.config = config or MotionFilterConfig()
        self.previous_grey: Optional[np.ndarray] = None
        self.previous_mask: Optional[np.ndarray] = None
        self.last_motion = 0.0

    @property
    def has_history(self) -> bool:
        return self.previous_mask is not None

    def reset(self) -> None:
        """Forget the previous frame and mask."""
        self.previous_grey = None
        self.previous_mask = None
        self.last_motion = 0.0

    def process(self, mask_values: MaskValues, frame: np.ndarray, width: int, height: int) -> np.ndarray:
        """
        Smooth one mask against the history.

        Args:
            mask_values: Flat confidence values, length width * height
            frame: RGB frame (height, width, 3) the mask was computed from
            width: Mask width
            height: Mask height

        Returns:
            Flat float32 smoothed mask
        """
        values = as_flat_array(mask_values)
        validate_mask_dimensions(values, width, height)
        grey = to_grey(frame)
        if grey.shape != (height, width):
            raise ValueError(
                f"Frame size {grey.shape[1]}x{grey.shape[0]} does not match mask size {width}x{height}"
            )

        config = self.config
        current = values.reshape(height, width)

        if self.previous_mask is not None and self.previous_mask.shape == current.shape:
            previous = self.previous_mask
            self.last_motion = 0.0
            if config.use_motion_compensation:
                vectors = estimate_block_motion(
                    self.previous_grey, grey,
                    config.block_size, config.search_radius, config.max_motion_pixels,
                )
                self.last_motion = average_motion(vectors)
                if self.last_motion > config.motion_threshold:
                    previous = warp_mask(previous, vectors, config.block_size)
            result = config.temporal_alpha * current + (1.0 - config.temporal_alpha) * previous
        else:
            self.last_motion = 0.0
            result = current.copy()

        result = result.astype(np.float32)
        self.previous_grey = grey
        self.previous_mask = result.copy()
        return result.reshape(-1)
