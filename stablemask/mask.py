"""Mask value type and resolution utilities.

A mask is a dense per-pixel field of foreground probabilities (or alpha
values) stored as a flat, row-major array together with its width and height.
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

MaskValues = Union[Sequence[float], np.ndarray]


def validate_mask_dimensions(values: np.ndarray, width: int, height: int) -> None:
    """
    Check that a flat value array matches the declared dimensions.

    Args:
        values: Flat array of per-pixel values
        width: Declared mask width
        height: Declared mask height

    Raises:
        ValueError: If the dimensions are not positive or the array length
            differs from width * height
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Mask dimensions must be > 0, got {width}x{height}")
    if values.size != width * height:
        raise ValueError(
            f"Mask size ({values.size}) does not match width*height "
            f"({width}x{height} = {width * height})"
        )


def as_flat_array(values: MaskValues) -> np.ndarray:
    """Convert any sequence of floats to a flat float32 array (always a copy)."""
    return np.array(values, dtype=np.float32).reshape(-1)


@dataclass(frozen=True)
class Mask:
    """Immutable per-pixel probability or alpha field."""
    values: np.ndarray  # Flat (width * height,) float32, index = y * width + x
    width: int
    height: int

    def __post_init__(self):
        values = as_flat_array(self.values)
        validate_mask_dimensions(values, self.width, self.height)
        values.flags.writeable = False
        object.__setattr__(self, "values", values)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Mask":
        """
        Build a mask from a 2-D (H, W) array.

        Args:
            array: Field with shape (height, width)

        Returns:
            Mask with the same contents
        """
        array = np.asarray(array)
        if array.ndim != 2:
            raise ValueError(f"Expected a 2-D (H, W) array, got shape {array.shape}")
        height, width = array.shape
        return cls(values=array, width=width, height=height)

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), numpy order."""
        return self.height, self.width

    def to_array(self) -> np.ndarray:
        """Return a writable (H, W) copy of the field."""
        return self.values.reshape(self.height, self.width).copy()

    def foreground_count(self, threshold: float = 0.5) -> int:
        """Number of pixels at or above the threshold."""
        return int(np.count_nonzero(self.values >= threshold))

    def __eq__(self, other):
        if not isinstance(other, Mask):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.values, other.values)
        )

    def __hash__(self):
        return hash((self.width, self.height, self.values.tobytes()))


def normalize_to_frame_size(mask: Mask, target_width: int, target_height: int) -> np.ndarray:
    """
    Resize a mask to the frame resolution with nearest-neighbour sampling.

    Segmentation models usually emit masks at a lower resolution than the
    source video. Destination pixel (dx, dy) takes the source value at
    (floor(dx * src_w / dst_w), floor(dy * src_h / dst_h)); no interpolation
    is done so hard edges stay hard.

    Args:
        mask: Source mask
        target_width: Output width
        target_height: Output height

    Returns:
        Flat float32 array of length target_width * target_height
    """
    validate_mask_dimensions(mask.values, mask.width, mask.height)
    if target_width <= 0 or target_height <= 0:
        raise ValueError(
            f"Target dimensions must be > 0, got {target_width}x{target_height}"
        )

    if mask.width == target_width and mask.height == target_height:
        return mask.values.copy()

    # Integer arithmetic keeps the floor exact for any size
    src_x = (np.arange(target_width, dtype=np.int64) * mask.width) // target_width
    src_y = (np.arange(target_height, dtype=np.int64) * mask.height) // target_height

    source = mask.values.reshape(mask.height, mask.width)
    return source[np.ix_(src_y, src_x)].reshape(-1).copy()
