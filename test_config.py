"""
Tests for MaskProcessingConfig validation, presets and loading.
"""

import json
import os
import tempfile

import pytest
from pydantic import ValidationError

from stablemask.config import (
    MaskProcessingConfig,
    get_preset,
    load_config,
    merge_config,
)
from stablemask.processor import MaskProcessor


def test_defaults_enable_every_stage():
    config = MaskProcessingConfig()

    assert config.threshold == 0.5
    assert config.use_temporal_smoothing
    assert config.use_hysteresis_threshold
    assert config.apply_neighborhood_consensus_filter
    assert config.apply_morphology
    assert config.remove_speckles
    assert config.apply_feather
    assert config.consensus_passes == 1


def test_zero_consensus_passes_rejected_when_filter_enabled():
    with pytest.raises(ValidationError, match="consensus_passes"):
        MaskProcessingConfig(consensus_passes=0)

    # Irrelevant when the filter is off
    config = MaskProcessingConfig(apply_neighborhood_consensus_filter=False, consensus_passes=0)
    assert config.consensus_passes == 0


def test_negative_hysteresis_delta_rejected():
    with pytest.raises(ValidationError, match="hysteresis_delta"):
        MaskProcessingConfig(hysteresis_delta=-0.1)


@pytest.mark.parametrize("options", [
    {"threshold": 1.5},
    {"temporal_smoothing_factor": 0.0},
    {"temporal_smoothing_factor": 1.2},
    {"min_speckle_size": -1},
    {"feather_radius": -2},
    {"unknown_option": True},
])
def test_invalid_options_rejected(options):
    with pytest.raises(ValueError):
        MaskProcessingConfig(**options)


def test_invalid_config_never_reaches_processor():
    with pytest.raises(ValueError):
        MaskProcessor(MaskProcessingConfig(consensus_passes=-1))


def test_config_is_frozen():
    config = MaskProcessingConfig()
    with pytest.raises(ValidationError):
        config.threshold = 0.7


def test_camel_case_aliases():
    config = MaskProcessingConfig(hysteresisDelta=0.2, useTemporalSmoothing=False, featherRadius=1)

    assert config.hysteresis_delta == 0.2
    assert not config.use_temporal_smoothing
    assert config.feather_radius == 1


def test_presets():
    passthrough = get_preset("passthrough")
    assert not any([
        passthrough.use_temporal_smoothing,
        passthrough.use_hysteresis_threshold,
        passthrough.apply_neighborhood_consensus_filter,
        passthrough.apply_morphology,
        passthrough.remove_speckles,
        passthrough.apply_feather,
    ])

    aggressive = get_preset("aggressive")
    assert aggressive.min_speckle_size == 100
    assert aggressive.keep_largest_component

    with pytest.raises(ValueError, match="Unknown preset"):
        get_preset("nonexistent")


def test_merge_config_overlays_base():
    base = MaskProcessingConfig.passthrough()

    merged = merge_config({"applyFeather": True, "feather_radius": 5}, base=base)

    assert merged.apply_feather
    assert merged.feather_radius == 5
    assert not merged.apply_morphology


def test_load_config_from_json():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config.json")
        with open(path, "w") as f:
            json.dump({"threshold": 0.6, "consensusPasses": 2}, f)

        config = load_config(path)

    assert config.threshold == 0.6
    assert config.consensus_passes == 2


def test_load_config_rejects_non_object():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config.json")
        with open(path, "w") as f:
            json.dump([1, 2, 3], f)

        with pytest.raises(ValueError, match="JSON object"):
            load_config(path)


if __name__ == "__main__":
    test_defaults_enable_every_stage()
    test_zero_consensus_passes_rejected_when_filter_enabled()
    test_camel_case_aliases()
    test_presets()
    print("All config tests passed!")
