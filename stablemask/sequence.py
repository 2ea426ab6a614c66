"""Runs a MaskProcessor over an ordered sequence of frames."""

import time
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union
import numpy as np
import cv2
from pydantic import BaseModel, Field
from tqdm import tqdm

from stablemask.config import MaskProcessingConfig
from stablemask.mask import Mask
from stablemask.motion import MotionAwareTemporalFilter
from stablemask.processor import MaskProcessor

FrameInput = Union[Mask, np.ndarray]


class FrameStatus(str, Enum):
    """Outcome of processing one frame."""
    SUCCESS = "success"
    FAILED = "failed"


class ErrorPolicy(str, Enum):
    """What to do when a frame cannot be processed."""
    SKIP = "skip"  # Record the failure and carry on
    REUSE_PREVIOUS = "reuse_previous"  # Substitute the last good processed mask
    ABORT = "abort"  # Stop the sequence


class FrameResult(BaseModel):
    """Result for a single frame: either a processed mask or a failure reason."""
    frame_number: int = Field(..., description="Position of the frame in the sequence")
    status: FrameStatus = Field(..., description="Whether the frame was processed")
    values: Optional[np.ndarray] = Field(None, description="Processed flat mask on success")
    width: Optional[int] = Field(None, description="Width of the returned mask")
    height: Optional[int] = Field(None, description="Height of the returned mask")
    reason: Optional[str] = Field(None, description="Failure reason")
    reused_previous: bool = Field(False, description="Values were copied from the previous frame")

    class Config:
        arbitrary_types_allowed = True

    @property
    def ok(self) -> bool:
        return self.status == FrameStatus.SUCCESS

    def to_mask(self) -> Mask:
        """Return the processed values as a Mask."""
        if not self.ok:
            raise ValueError(f"Frame {self.frame_number} failed: {self.reason}")
        return Mask(values=self.values, width=self.width, height=self.height)


class SequenceSummary(BaseModel):
    """Counts and timing for a processed sequence."""
    total_frames: int = 0
    succeeded: int = 0
    failed: int = 0
    reused: int = 0
    aborted: bool = False
    processing_time_seconds: Optional[float] = None


class SequenceResult(BaseModel):
    """Per-frame results plus a summary."""
    frames: List[FrameResult] = Field(default_factory=list)
    summary: SequenceSummary = Field(default_factory=SequenceSummary)

    def to_stack(self, fill_value: float = 0.0) -> np.ndarray:
        """
        Stack the results into an (N, H, W) array.

        Failed frames are filled with fill_value. All successful frames must
        share one size.
        """
        shapes = {(r.height, r.width) for r in self.frames if r.ok}
        if len(shapes) > 1:
            raise ValueError(f"Frames have differing sizes: {sorted(shapes)}")
        if not shapes:
            return np.zeros((len(self.frames), 0, 0), dtype=np.float32)

        h, w = shapes.pop()
        stack = np.full((len(self.frames), h, w), fill_value, dtype=np.float32)
        for i, result in enumerate(self.frames):
            if result.ok:
                stack[i] = result.values.reshape(h, w)
        return stack


def _as_mask(frame: FrameInput) -> Mask:
    if isinstance(frame, Mask):
        return frame
    return Mask.from_array(frame)


class SequenceProcessor:
    """
    Processes the frames of one clip in display order.

    A single MaskProcessor is used for the whole sequence so temporal and
    hysteresis history carry from frame to frame. A frame that violates the
    input contract never touches that history, so the sequence can carry on
    after it according to the error policy.

    When the RGB frames are passed alongside the masks, each mask first goes
    through a MotionAwareTemporalFilter so the temporal blend follows the
    subject. The MaskProcessor's own temporal smoothing is usually turned
    off in that case.
    """

    def __init__(
        self,
        config: Optional[MaskProcessingConfig] = None,
        on_error: Union[ErrorPolicy, str] = ErrorPolicy.SKIP,
        target_size: Optional[Tuple[int, int]] = None,
        motion_filter: Optional[MotionAwareTemporalFilter] = None,
    ):
        """
        Initialise the sequence processor.

        Args:
            config: Pipeline configuration
            on_error: Error policy ('skip', 'reuse_previous' or 'abort')
            target_size: Optional (width, height) every processed mask is
                         resized to with nearest-neighbour sampling
            motion_filter: Filter used when images are supplied; a default
                           one is created if omitted
        """
        self.processor = MaskProcessor(config)
        self.motion_filter = motion_filter or MotionAwareTemporalFilter()
        self.on_error = ErrorPolicy(on_error)

        if target_size is not None and (target_size[0] <= 0 or target_size[1] <= 0):
            raise ValueError(f"Target size must be positive, got {target_size}")
        self.target_size = target_size

    def reset(self) -> None:
        """Start a new clip."""
        self.processor.reset()
        self.motion_filter.reset()

    def _process_frame(
        self,
        frame_number: int,
        frame: FrameInput,
        image: Optional[np.ndarray] = None,
    ) -> FrameResult:
        mask = _as_mask(frame)
        if image is not None:
            values = self.motion_filter.process(mask.values, image, mask.width, mask.height)
            mask = Mask(values=values, width=mask.width, height=mask.height)
        mask = self.processor.process(mask)

        if self.target_size is not None:
            width, height = self.target_size
            values = MaskProcessor.normalize_to_frame_size(mask, width, height)
        else:
            width, height = mask.width, mask.height
            values = np.array(mask.values)

        return FrameResult(
            frame_number=frame_number,
            status=FrameStatus.SUCCESS,
            values=values,
            width=width,
            height=height,
        )

    def process(
        self,
        frames: Iterable[FrameInput],
        show_progress: bool = True,
        total: Optional[int] = None,
        images: Optional[Iterable[np.ndarray]] = None,
    ) -> SequenceResult:
        """
        Process every frame in order.

        Args:
            frames: Masks or (H, W) confidence arrays in display order
            show_progress: Whether to show a progress bar
            total: Number of frames, for the progress bar
            images: Optional RGB frames (H, W, 3), one per mask, enabling
                    motion-compensated smoothing

        Returns:
            SequenceResult with one FrameResult per frame consumed
        """
        if total is None and hasattr(frames, '__len__'):
            total = len(frames)

        if images is None:
            pairs = ((frame, None) for frame in frames)
        else:
            if hasattr(images, '__len__') and total is not None and len(images) != total:
                raise ValueError(f"Got {len(images)} images for {total} masks")
            pairs = zip(frames, images)

        iterator = enumerate(pairs)
        if show_progress:
            print(f"Processing {total if total is not None else 'all'} frames...")
            iterator = tqdm(iterator, total=total, desc="Processing")

        result = SequenceResult()
        summary = result.summary
        previous: Optional[FrameResult] = None
        start = time.perf_counter()

        for frame_number, (frame, image) in iterator:
            try:
                frame_result = self._process_frame(frame_number, frame, image)
            except (ValueError, cv2.error) as e:
                frame_result = self._handle_failure(frame_number, str(e), previous)
                if show_progress:
                    print(f"Warning: Frame {frame_number} failed: {e}")

            result.frames.append(frame_result)
            summary.total_frames += 1

            if frame_result.ok:
                summary.succeeded += 1
                summary.reused += int(frame_result.reused_previous)
                previous = frame_result
            else:
                summary.failed += 1
                if self.on_error == ErrorPolicy.ABORT:
                    summary.aborted = True
                    break

        summary.processing_time_seconds = time.perf_counter() - start

        if show_progress:
            print(
                f"Processed {summary.total_frames} frames: {summary.succeeded} succeeded, "
                f"{summary.failed} failed, {summary.reused} reused"
            )

        return result

    def _handle_failure(
        self,
        frame_number: int,
        reason: str,
        previous: Optional[FrameResult],
    ) -> FrameResult:
        if self.on_error == ErrorPolicy.REUSE_PREVIOUS and previous is not None:
            return FrameResult(
                frame_number=frame_number,
                status=FrameStatus.SUCCESS,
                values=previous.values.copy(),
                width=previous.width,
                height=previous.height,
                reason=reason,
                reused_previous=True,
            )

        return FrameResult(frame_number=frame_number, status=FrameStatus.FAILED, reason=reason)
