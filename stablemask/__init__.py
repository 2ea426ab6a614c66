"""Stablemask - temporal post-processing for video segmentation masks."""

__version__ = "0.1.0"

from stablemask.mask import Mask, normalize_to_frame_size
from stablemask.config import MaskProcessingConfig, load_config
from stablemask.processor import MaskProcessor
from stablemask.speckle import SpeckleRemover
from stablemask.motion import MotionAwareTemporalFilter, MotionFilterConfig
from stablemask.sequence import (
    ErrorPolicy,
    FrameResult,
    FrameStatus,
    SequenceProcessor,
    SequenceResult,
    SequenceSummary,
)

__all__ = [
    "Mask",
    "normalize_to_frame_size",
    "MaskProcessingConfig",
    "load_config",
    "MaskProcessor",
    "SpeckleRemover",
    "MotionAwareTemporalFilter",
    "MotionFilterConfig",
    "ErrorPolicy",
    "FrameResult",
    "FrameStatus",
    "SequenceProcessor",
    "SequenceResult",
    "SequenceSummary",
]
