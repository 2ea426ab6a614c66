"""Command-line interface for the stablemask post-processor."""

import click
import json
import sys
from pathlib import Path
from typing import Optional
import numpy as np

from stablemask import __version__
from stablemask.config import PRESETS, MaskProcessingConfig, get_preset, load_config
from stablemask.sequence import ErrorPolicy, SequenceProcessor


def _resolve_config(config_path: Optional[str], preset: str) -> MaskProcessingConfig:
    base = get_preset(preset)
    if config_path:
        return load_config(config_path, base=base)
    return base


def _load_stack(path: Path) -> np.ndarray:
    """Load an (N, H, W) mask stack from .npy or .npz (key 'masks')."""
    if path.suffix == '.npz':
        with np.load(path) as archive:
            if 'masks' not in archive:
                raise ValueError(f"{path} has no 'masks' array (found: {', '.join(archive.files)})")
            stack = archive['masks']
    else:
        stack = np.load(path)

    if stack.ndim == 2:
        stack = stack[np.newaxis]
    if stack.ndim != 3:
        raise ValueError(f"Expected an (N, H, W) mask stack, got shape {stack.shape}")
    return stack


@click.group()
@click.version_option(version=__version__)
def cli():
    """Stablemask - temporal post-processing for segmentation masks."""
    pass


@cli.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--output', '-o',
    required=True,
    type=click.Path(dir_okay=False),
    help='Output .npy file for the processed (N, H, W) stack',
)
@click.option(
    '--config', 'config_path',
    type=click.Path(exists=True, dir_okay=False),
    help='JSON file with processing options (snake_case or camelCase)',
)
@click.option(
    '--preset',
    type=click.Choice(sorted(PRESETS), case_sensitive=False),
    default='default',
    help='Base configuration preset (default: default)',
)
@click.option('--width', type=int, help='Resize processed masks to this width')
@click.option('--height', type=int, help='Resize processed masks to this height')
@click.option(
    '--on-error',
    type=click.Choice([p.value for p in ErrorPolicy], case_sensitive=False),
    default=ErrorPolicy.SKIP.value,
    help='What to do with frames that fail (default: skip)',
)
@click.option(
    '--no-progress',
    is_flag=True,
    help='Disable progress bar',
)
def process(
    input_path: str,
    output: str,
    config_path: Optional[str],
    preset: str,
    width: Optional[int],
    height: Optional[int],
    on_error: str,
    no_progress: bool,
):
    """
    Post-process a stack of raw segmentation masks.

    INPUT_PATH is a .npy array of shape (N, H, W) or a .npz archive with a
    'masks' array, holding per-pixel foreground probabilities in frame order.

    Example:
        stablemask process raw.npy -o clean.npy

        # Heavier cleanup, resized to 1920x1080
        stablemask process raw.npz -o clean.npy --preset aggressive --width 1920 --height 1080
    """
    if (width is None) != (height is None):
        click.echo("Error: --width and --height must be given together", err=True)
        sys.exit(2)

    try:
        config = _resolve_config(config_path, preset.lower())
        stack = _load_stack(Path(input_path))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    target_size = (width, height) if width is not None else None

    click.echo(f"Input: {input_path} ({stack.shape[0]} frames, {stack.shape[2]}x{stack.shape[1]})")
    if target_size:
        click.echo(f"Output size: {width}x{height}")
    click.echo()

    try:
        sequence = SequenceProcessor(config, on_error=on_error.lower(), target_size=target_size)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    result = sequence.process(stack, show_progress=not no_progress)
    summary = result.summary

    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    np.save(output_path, result.to_stack())

    click.echo(f"Saved: {output_path}")
    click.echo(f"Frames: {summary.succeeded} succeeded, {summary.failed} failed, {summary.reused} reused")

    if summary.aborted:
        click.echo("Error: processing aborted", err=True)
        sys.exit(1)


@cli.command('show-config')
@click.option(
    '--config', 'config_path',
    type=click.Path(exists=True, dir_okay=False),
    help='JSON file with processing options',
)
@click.option(
    '--preset',
    type=click.Choice(sorted(PRESETS), case_sensitive=False),
    default='default',
    help='Base configuration preset',
)
def show_config(config_path: Optional[str], preset: str):
    """Print the effective processing configuration as JSON."""
    try:
        config = _resolve_config(config_path, preset.lower())
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(config.model_dump(), indent=2))


if __name__ == '__main__':
    cli()
