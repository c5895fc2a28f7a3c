"""
Tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from snapocr.cli import cli
from snapocr.config import get_settings

pytestmark = [pytest.mark.integration, pytest.mark.slow]


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setenv("SNAPOCR_LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


class TestCLI:
    def test_render_then_recognize(self, runner, tmp_path):
        card = tmp_path / "card.png"

        rendered = runner.invoke(cli, ["render", "ABCD", str(card), "--spacing", "6"])
        assert rendered.exit_code == 0, rendered.output
        assert card.exists()

        result = runner.invoke(cli, ["recognize", str(card), "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload["segments"] == 4
        assert set(payload["text"]) <= set("ABCD0123456789EFGHIJKLMNOPQRSTUVWXYZ?")

    def test_recognize_with_candidates_and_segments(self, runner, render_card, tmp_path):
        card = tmp_path / "card.png"
        render_card("ABCD").save(card)

        result = runner.invoke(cli, ["recognize", str(card), "-c", "ABCD", "--show-segments"])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert set(lines[0]) <= set("ABCD?")
        assert sum(line.startswith("Glyph [") for line in lines) == 4

    def test_templates_command(self, runner):
        result = runner.invoke(cli, ["templates"])

        assert result.exit_code == 0, result.output
        assert "Total templates:" in result.output

    def test_missing_image(self, runner, tmp_path):
        result = runner.invoke(cli, ["recognize", str(tmp_path / "missing.png")])

        assert result.exit_code != 0
