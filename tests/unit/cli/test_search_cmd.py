"""Tests for harvester search."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from harvester.cli.main import app

runner = CliRunner()


@pytest.fixture
def ingested(cli_env):
    runner.invoke(app, ["project", "create", "docs"])
    result = runner.invoke(
        app, ["ingest", "-p", "docs", "--wait", "--file", "https://ex.com/guide.md"]
    )
    assert result.exit_code == 0, result.output
    return cli_env


def test_search_prints_results(ingested) -> None:
    result = runner.invoke(app, ["search", "Install the widget.", "--project", "docs"])
    assert result.exit_code == 0, result.output
    assert "Install the widget." in result.output
    assert "https://ex.com/guide.md" in result.output


def test_search_top_k(ingested) -> None:
    result = runner.invoke(app, ["search", "widget", "-p", "docs", "--top-k", "1"])
    assert result.exit_code == 0
    assert result.output.count("https://ex.com/guide.md") == 1


def test_search_no_results(cli_env) -> None:
    runner.invoke(app, ["project", "create", "empty"])
    result = runner.invoke(app, ["search", "anything", "-p", "empty"])
    assert result.exit_code == 0
    assert "No results." in result.output


def test_search_unknown_project(cli_env) -> None:
    result = runner.invoke(app, ["search", "widget", "-p", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.output
