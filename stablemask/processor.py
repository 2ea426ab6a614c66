"""Stateful mask post-processing pipeline."""

import numpy as np
from typing import Optional

from stablemask.config import MaskProcessingConfig
from stablemask.mask import (
    Mask,
    MaskValues,
    as_flat_array,
    normalize_to_frame_size,
    validate_mask_dimensions,
)
from stablemask.filters import (
    sanitize_confidence,
    temporal_smooth,
    apply_threshold,
    apply_hysteresis_threshold,
    neighborhood_consensus,
    morphological_cleanup,
    feather,
)
from stablemask.speckle import SpeckleRemover


class MaskProcessor:
    """
    Converts raw segmentation confidences into a stable, clean alpha mask.

    The processor keeps per-pixel history across frames (the previous
    smoothed confidences and the previous binary decisions), so frames of one
    sequence must be fed in display order from a single caller. Use one
    instance per sequence; call reset() on a new clip or a non-sequential
    seek.

    Stages, in fixed order, each only when enabled:
    1. Temporal smoothing (EMA over confidences)
    2. Threshold, or hysteresis threshold
    3. Neighbourhood consensus filter
    4. Morphological opening + closing
    5. Speckle removal
    6. Edge feathering
    """

    def __init__(self, config: Optional[MaskProcessingConfig] = None):
        """
        Initialise the processor.

        Args:
            config: Pipeline configuration (defaults if None). Validation
                    happens when the config is built, never per frame.
        """
        self.config = config or MaskProcessingConfig()
        self.speckle_remover = SpeckleRemover.from_config(self.config)

        self._width: Optional[int] = None
        self._height: Optional[int] = None
        self._previous_smoothed: Optional[np.ndarray] = None
        self._previous_state: Optional[np.ndarray] = None
        self._frames_processed = 0

    @property
    def frames_processed(self) -> int:
        """Frames processed since construction or the last reset."""
        return self._frames_processed

    @property
    def has_history(self) -> bool:
        """Whether the next frame will be processed against stored history."""
        return self._width is not None

    def reset(self) -> None:
        """Discard temporal and hysteresis history, keeping the configuration."""
        self._width = None
        self._height = None
        self._previous_smoothed = None
        self._previous_state = None
        self._frames_processed = 0

    def process_mask(self, raw_values: MaskValues, width: int, height: int) -> np.ndarray:
        """
        Process one frame's raw confidence mask.

        The first frame, or a frame whose size differs from the previous
        one, starts a new sequence: the smoothing history is seeded with the
        frame itself and the hysteresis state with its plain threshold.

        Args:
            raw_values: Flat row-major confidences, length width * height
            width: Mask width
            height: Mask height

        Returns:
            Flat float32 array of length width * height

        Raises:
            ValueError: If the input does not match its declared dimensions.
                History is left untouched in that case.
        """
        values = as_flat_array(raw_values)
        validate_mask_dimensions(values, width, height)

        config = self.config
        confidence = sanitize_confidence(values)

        new_sequence = (width, height) != (self._width, self._height)
        if new_sequence:
            previous_smoothed = None
            previous_state = apply_threshold(confidence, config.threshold)
        else:
            previous_smoothed = self._previous_smoothed
            previous_state = self._previous_state

        # Step 1: temporal smoothing on confidences
        if config.use_temporal_smoothing:
            confidence = temporal_smooth(
                confidence, previous_smoothed, config.temporal_smoothing_factor
            )

        # Step 2: threshold, holding near-threshold pixels when hysteresis is on
        if config.use_hysteresis_threshold:
            binary = apply_hysteresis_threshold(
                confidence, previous_state, config.threshold, config.hysteresis_delta
            )
        else:
            binary = apply_threshold(confidence, config.threshold)

        mask = binary.reshape(height, width)

        # Step 3: isolated spots and pinholes
        if config.apply_neighborhood_consensus_filter:
            mask = neighborhood_consensus(mask, config.consensus_passes)

        # Step 4: boundary cleanup
        if config.apply_morphology:
            mask = morphological_cleanup(mask)

        # Step 5: larger noise blobs
        if config.remove_speckles:
            mask = self.speckle_remover.process(mask)

        # Step 6: soft edges
        if config.apply_feather:
            mask = feather(mask, config.feather_radius)

        result = np.ascontiguousarray(mask, dtype=np.float32).reshape(-1).copy()

        # Commit history only once the whole frame has gone through
        self._width = width
        self._height = height
        self._previous_smoothed = confidence if config.use_temporal_smoothing else None
        self._previous_state = binary
        self._frames_processed = 1 if new_sequence else self._frames_processed + 1

        return result

    def process(self, mask: Mask) -> Mask:
        """Process a Mask, returning a new Mask of the same size."""
        values = self.process_mask(mask.values, mask.width, mask.height)
        return Mask(values=values, width=mask.width, height=mask.height)

    @staticmethod
    def normalize_to_frame_size(mask: Mask, target_width: int, target_height: int) -> np.ndarray:
        """Nearest-neighbour resize to the video frame resolution."""
        return normalize_to_frame_size(mask, target_width, target_height)
