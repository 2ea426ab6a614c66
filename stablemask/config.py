"""Configuration for mask post-processing."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class MaskProcessingConfig(BaseModel):
    """
    Options for the mask post-processing pipeline.

    Stages run in a fixed order (temporal smoothing, threshold/hysteresis,
    neighbourhood consensus, morphology, speckle removal, feather) and only
    when their flag is enabled. All cross-field constraints are checked here
    so a processor can never be built from an invalid configuration.

    Field names may also be given in camelCase (e.g. ``hysteresisDelta``).
    """
    threshold: float = Field(0.5, ge=0.0, le=1.0, description="Foreground decision boundary")

    use_temporal_smoothing: bool = Field(True, description="Blend each frame with the previous smoothed frame")
    temporal_smoothing_factor: float = Field(
        0.3, gt=0.0, le=1.0, description="EMA weight of the new frame (higher = less smoothing)"
    )

    use_hysteresis_threshold: bool = Field(True, description="Use a per-pixel Schmitt trigger instead of a plain threshold")
    hysteresis_delta: float = Field(0.08, description="Half-width of the indecision band around threshold")

    apply_neighborhood_consensus_filter: bool = Field(True, description="3x3 majority vote denoising")
    consensus_passes: int = Field(1, description="Number of majority filter iterations")

    apply_morphology: bool = Field(True, description="3x3 opening followed by closing")

    remove_speckles: bool = Field(True, description="Remove small connected foreground components")
    min_speckle_size: int = Field(50, ge=0, description="Components smaller than this are cleared")
    fill_holes: bool = Field(False, description="Fill small enclosed background holes after speckle removal")
    max_hole_size: int = Field(100, ge=0, description="Holes smaller than this are filled")
    keep_largest_component: bool = Field(False, description="Keep only the largest foreground component")

    apply_feather: bool = Field(True, description="Soften the final mask boundary")
    feather_radius: int = Field(3, ge=0, description="Falloff half-width in pixels")

    class Config:
        frozen = True
        extra = "forbid"
        alias_generator = _to_camel
        populate_by_name = True

    @field_validator("hysteresis_delta")
    @classmethod
    def _non_negative_delta(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"hysteresis_delta must be >= 0, got {value}")
        return value

    @model_validator(mode="after")
    def _check_enabled_stages(self) -> "MaskProcessingConfig":
        if self.apply_neighborhood_consensus_filter and self.consensus_passes <= 0:
            raise ValueError(
                f"consensus_passes must be > 0 when the consensus filter is enabled, "
                f"got {self.consensus_passes}"
            )
        return self

    @classmethod
    def passthrough(cls, threshold: float = 0.5) -> "MaskProcessingConfig":
        """Configuration with every optional stage disabled."""
        return cls(
            threshold=threshold,
            use_temporal_smoothing=False,
            use_hysteresis_threshold=False,
            apply_neighborhood_consensus_filter=False,
            apply_morphology=False,
            remove_speckles=False,
            apply_feather=False,
        )

    @classmethod
    def mild(cls) -> "MaskProcessingConfig":
        """Light cleanup for fairly clean segmentation output."""
        return cls(min_speckle_size=25, fill_holes=True, max_hole_size=50)

    @classmethod
    def aggressive(cls) -> "MaskProcessingConfig":
        """Heavy cleanup for noisy segmentation output."""
        return cls(
            consensus_passes=2,
            min_speckle_size=100,
            fill_holes=True,
            max_hole_size=200,
            keep_largest_component=True,
        )

    @classmethod
    def minimal(cls) -> "MaskProcessingConfig":
        """Removes only the smallest islands; holes are left alone."""
        return cls(min_speckle_size=10, max_hole_size=25)


PRESETS = {
    "default": MaskProcessingConfig,
    "passthrough": MaskProcessingConfig.passthrough,
    "mild": MaskProcessingConfig.mild,
    "aggressive": MaskProcessingConfig.aggressive,
    "minimal": MaskProcessingConfig.minimal,
}


def get_preset(name: str) -> MaskProcessingConfig:
    """
    Look up a named preset.

    Args:
        name: One of the keys of PRESETS

    Returns:
        The preset configuration
    """
    try:
        factory = PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset: {name}. Available: {', '.join(PRESETS)}") from None
    return factory()


def load_config(
    path: Union[str, Path],
    base: Optional[MaskProcessingConfig] = None,
) -> MaskProcessingConfig:
    """
    Load a configuration from a JSON file.

    Args:
        path: JSON file containing an object of options
        base: Optional configuration whose values are used for options
              missing from the file

    Returns:
        Validated MaskProcessingConfig
    """
    with open(path, 'r') as f:
        options = json.load(f)

    if not isinstance(options, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")

    return merge_config(options, base)


def merge_config(
    options: Dict[str, Any],
    base: Optional[MaskProcessingConfig] = None,
) -> MaskProcessingConfig:
    """Overlay options (snake_case or camelCase) on top of a base configuration."""
    aliases = {_to_camel(name): name for name in MaskProcessingConfig.model_fields}
    merged = base.model_dump() if base is not None else {}
    merged.update({aliases.get(key, key): value for key, value in options.items()})
    return MaskProcessingConfig(**merged)
