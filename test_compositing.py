"""
Tests for alpha compositing helpers.
"""

import numpy as np
import pytest

from stablemask.compositing import (
    BlurBackground,
    compose_with_alpha,
    create_mask_visualisation,
    decontaminate_edges,
    replace_background,
)


def make_frame(h: int = 4, w: int = 6) -> np.ndarray:
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[..., 0] = 200
    frame[..., 1] = 100
    frame[..., 2] = 50
    return frame


def make_green_screen(edge_alpha: float, background=(0, 200, 0)):
    """Subject on the left, a one-pixel soft edge at column 10, backdrop on the right."""
    frame = np.zeros((20, 20, 3), dtype=np.uint8)
    frame[:, :10] = (150, 100, 90)
    frame[:, 10] = (100, 180, 80)  # edge pixel with green spill
    frame[:, 11:] = background

    alpha = np.zeros((20, 20), dtype=np.float32)
    alpha[:, :10] = 1.0
    alpha[:, 10] = edge_alpha
    return frame, alpha


def test_compose_with_alpha_adds_channel():
    frame = make_frame()
    alpha = np.zeros(24, dtype=np.float32)
    alpha[:12] = 1.0

    rgba = compose_with_alpha(frame, alpha)

    assert rgba.shape == (4, 6, 4)
    assert rgba.dtype == np.uint8
    np.testing.assert_array_equal(rgba[..., :3], frame)
    assert rgba[0, 0, 3] == 255
    assert rgba[3, 5, 3] == 0


def test_replace_background_with_colour():
    frame = make_frame(2, 2)
    alpha = np.array([1.0, 0.0, 0.5, 0.0], dtype=np.float32)

    out = replace_background(frame, alpha, (0, 0, 0))

    np.testing.assert_array_equal(out[0, 0], [200, 100, 50])
    np.testing.assert_array_equal(out[0, 1], [0, 0, 0])
    np.testing.assert_array_equal(out[1, 0], [100, 50, 25])


def test_replace_background_resizes_image():
    frame = make_frame(4, 6)
    backdrop = np.full((2, 3, 3), 10, dtype=np.uint8)
    alpha = np.zeros((4, 6), dtype=np.float32)

    out = replace_background(frame, alpha, backdrop)

    assert out.shape == frame.shape
    assert np.all(out == 10)


def test_replace_background_blur_keeps_uniform_frame():
    frame = make_frame(8, 8)
    out = replace_background(frame, np.zeros(64), BlurBackground(radius=2))
    np.testing.assert_array_equal(out, frame)


def test_alpha_size_must_match_frame():
    with pytest.raises(ValueError, match="does not match"):
        compose_with_alpha(make_frame(4, 6), np.zeros(10))
    with pytest.raises(ValueError, match="frame"):
        compose_with_alpha(np.zeros((4, 6)), np.zeros(24))


def test_mask_visualisation():
    image = create_mask_visualisation([0.0, 1.0, 0.5, 2.0], 2, 2)

    assert image.shape == (2, 2)
    assert image.dtype == np.uint8
    np.testing.assert_array_equal(image, [[0, 255], [127, 255]])


def test_decontaminate_reduces_green_spill_on_edge_band():
    frame, alpha = make_green_screen(edge_alpha=0.5)

    out = decontaminate_edges(frame, alpha)

    # g * (1 - 0.7 * (1 - 0.5) * 200 / 255), floored
    assert np.all(out[:, 10, 1] == 130)
    assert np.all(out[:, 10, 0] == 100)
    assert np.all(out[:, 10, 2] == 80)
    # Solid subject and backdrop are untouched
    np.testing.assert_array_equal(out[:, :10], frame[:, :10])
    np.testing.assert_array_equal(out[:, 11:], frame[:, 11:])
    # Input is not modified
    assert frame[0, 10, 1] == 180


def test_decontaminate_boosts_luminance_after_heavy_removal():
    frame, alpha = make_green_screen(edge_alpha=0.15, background=(0, 255, 0))

    out = decontaminate_edges(frame, alpha, strength=1.0)

    edge = out[5, 10].astype(int)
    assert edge[1] < 60
    # Other channels were scaled up by the 1.5x cap
    assert edge[0] == 150
    assert edge[2] == 120


def test_decontaminate_ignores_neutral_background():
    frame, alpha = make_green_screen(edge_alpha=0.5, background=(120, 120, 120))

    out = decontaminate_edges(frame, alpha)

    np.testing.assert_array_equal(out, frame)


def test_decontaminate_respects_enabled_channels():
    frame, alpha = make_green_screen(edge_alpha=0.5)

    out = decontaminate_edges(frame, alpha, channels=("blue",))

    np.testing.assert_array_equal(out, frame)
    with pytest.raises(ValueError, match="Unknown channels"):
        decontaminate_edges(frame, alpha, channels=("purple",))


if __name__ == "__main__":
    test_compose_with_alpha_adds_channel()
    test_replace_background_with_colour()
    test_decontaminate_reduces_green_spill_on_edge_band()
    print("All compositing tests passed!")
