"""
Tests for the Mask value type and nearest-neighbour resolution normalisation.
"""

import numpy as np
import pytest

from stablemask.mask import Mask, normalize_to_frame_size
from stablemask.processor import MaskProcessor


def test_upscale_preserves_corners():
    mask = Mask(values=[0.0, 1.0, 1.0, 0.0], width=2, height=2)

    normalized = MaskProcessor.normalize_to_frame_size(mask, 4, 4)

    assert normalized.size == 16
    assert normalized[0] == 0.0
    assert normalized[3] == 1.0
    assert normalized[12] == 1.0
    assert normalized[15] == 0.0


def test_upscale_replicates_blocks():
    mask = Mask(values=[0.0, 1.0, 1.0, 0.0], width=2, height=2)

    grid = normalize_to_frame_size(mask, 4, 4).reshape(4, 4)

    expected = np.array([
        [0, 0, 1, 1],
        [0, 0, 1, 1],
        [1, 1, 0, 0],
        [1, 1, 0, 0],
    ], dtype=np.float32)
    np.testing.assert_array_equal(grid, expected)


def test_downscale_samples_floor_positions():
    source = np.arange(16, dtype=np.float32).reshape(4, 4) / 16.0
    mask = Mask.from_array(source)

    out = normalize_to_frame_size(mask, 2, 2).reshape(2, 2)

    # dst (x, y) samples src (2x, 2y)
    np.testing.assert_array_equal(out, source[::2, ::2])


def test_non_uniform_scale():
    mask = Mask(values=[0.1, 0.2, 0.3], width=3, height=1)

    out = normalize_to_frame_size(mask, 5, 2)

    assert out.size == 10
    # floor(dx * 3 / 5) for dx = 0..4 -> 0, 0, 1, 1, 2
    np.testing.assert_allclose(out[:5], [0.1, 0.1, 0.2, 0.2, 0.3])
    np.testing.assert_allclose(out[5:], out[:5])


def test_same_size_returns_copy():
    mask = Mask(values=[0.25, 0.75], width=2, height=1)

    out = normalize_to_frame_size(mask, 2, 1)

    np.testing.assert_array_equal(out, mask.values)
    out[0] = 1.0
    assert mask.values[0] == 0.25


def test_invalid_target_size_rejected():
    mask = Mask(values=[0.0], width=1, height=1)
    with pytest.raises(ValueError, match="Target dimensions"):
        normalize_to_frame_size(mask, 0, 4)


def test_mask_rejects_length_mismatch():
    with pytest.raises(ValueError, match="does not match"):
        Mask(values=[0.0, 1.0, 0.5], width=2, height=2)
    with pytest.raises(ValueError, match="must be > 0"):
        Mask(values=[], width=0, height=3)


def test_mask_is_immutable():
    mask = Mask(values=[0.0, 1.0], width=2, height=1)

    with pytest.raises(ValueError):
        mask.values[0] = 0.5
    with pytest.raises(AttributeError):
        mask.width = 3


def test_mask_does_not_alias_caller_array():
    source = np.zeros(4, dtype=np.float32)
    mask = Mask(values=source, width=2, height=2)

    source[0] = 1.0

    assert mask.values[0] == 0.0
    assert mask.foreground_count() == 0


if __name__ == "__main__":
    test_upscale_preserves_corners()
    test_upscale_replicates_blocks()
    test_downscale_samples_floor_positions()
    print("All resize tests passed!")
