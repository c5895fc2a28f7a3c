"""
Command line interface for recognizing and rendering test cards.
"""

import json
import sys
import uuid
from pathlib import Path

import click
import structlog
from PIL import Image, ImageFont

from .config import RecognizerConfig, get_settings
from .engine import SnapOCREngine
from .features import render_ascii, resize_glyph
from .logging import bind_request_id, clear_request_id, configure_logging
from .templates import TemplateLibrary, load_default_font, render_text
from .types import RecognitionError

logger = structlog.get_logger(__name__)


def _load_config(config_path):
    if config_path:
        return RecognizerConfig.from_yaml(Path(config_path))
    return get_settings().recognizer_config()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
def cli(verbose, json_logs):
    """Offline recognizer for short alphanumeric codes."""
    settings = get_settings().model_copy()
    if verbose:
        settings.log_level = "DEBUG"
    if json_logs:
        settings.log_format = "json"
    configure_logging(settings)


@cli.command()
@click.argument("image_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--candidates", "-c", default=None, help="Restrict matching to these characters")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--show-segments", is_flag=True, help="Print each matched glyph as ASCII art")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON result")
def recognize(image_path, candidates, config_path, show_segments, as_json):
    """Recognize the code in IMAGE_PATH."""
    bind_request_id(uuid.uuid4().hex[:12])
    try:
        config = _load_config(config_path)
        library = TemplateLibrary.build(config, font_dirs=get_settings().font_dirs)
        engine = SnapOCREngine(library=library, config=config)

        with Image.open(image_path) as image:
            bitmap = image.convert("RGBA")

        if candidates:
            text = engine.recognize_with_candidates(bitmap, candidates)
            raw_text = text
        else:
            try:
                output = engine.recognize_detailed(bitmap)
                text, raw_text = output.text, output.raw_text
            except RecognitionError as e:
                logger.error("Recognition failed", error=str(e), stage=e.stage)
                text, raw_text = "?", ""

        if as_json:
            click.echo(json.dumps({
                "text": text,
                "raw_text": raw_text,
                "segments": len(engine.last_segments),
            }))
        else:
            click.echo(text)

        if show_segments:
            for i, glyph in enumerate(engine.last_segments):
                click.echo(f"Glyph [{i}] {glyph.shape[1]}x{glyph.shape[0]}:")
                click.echo(render_ascii(resize_glyph(glyph, library.size)))
    finally:
        clear_request_id()


@cli.command()
@click.argument("text")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--size", default=32, show_default=True, help="Font size in pixels")
@click.option("--font", "font_path", type=click.Path(exists=True), default=None)
@click.option("--spacing", default=4, show_default=True, help="Extra pixels between glyphs")
def render(text, output, size, font_path, spacing):
    """Render TEXT as a black-on-white test card and save it to OUTPUT."""
    font = ImageFont.truetype(font_path, size) if font_path else load_default_font(size)
    if font is None:
        click.echo("No scalable font available; pass --font", err=True)
        sys.exit(1)
    render_text(text, font, spacing=spacing).save(output)
    click.echo(f"Saved {output}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def templates(config_path):
    """Build the template library and print per-character template counts."""
    config = _load_config(config_path)
    library = TemplateLibrary.build(config, font_dirs=get_settings().font_dirs)
    counts = library.counts()
    missing = [ch for ch in config.charset if ch not in counts]

    for char, count in counts.items():
        click.echo(f"{char}: {count}")
    click.echo(f"Total templates: {library.template_count}")
    if missing:
        click.echo(f"Unmatchable characters: {''.join(missing)}")


def main():
    cli()


if __name__ == "__main__":
    main()
