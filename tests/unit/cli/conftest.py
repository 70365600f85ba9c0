"""CLI fixtures: a Harvester wired to fakeredis, an in-memory fetcher and the mock embedder."""

from __future__ import annotations

import pytest

from harvester.cli.context import console
from harvester.service import Harvester

PAGES = {
    "https://ex.com/guide.md": "# Guide\n\nInstall the widget.\n\nConfigure the widget.",
    "https://ex.com/faq.md": "# FAQ\n\nQuestions and answers.",
}


@pytest.fixture
def cli_env(monkeypatch, config, redis_client, make_fetcher, embedder):
    """Patch config loading and service construction for CliRunner invocations.

    Returns a dict holding the shared collaborators and the log levels
    requested through the root callback.
    """
    fetcher = make_fetcher(PAGES)
    env = {"config": config, "redis": redis_client, "fetcher": fetcher, "log_levels": []}

    monkeypatch.setattr("harvester.cli.main.load_config", lambda: config)
    monkeypatch.setattr(
        "harvester.cli.main.setup_logging",
        lambda level, json=False: env["log_levels"].append(level),
    )
    monkeypatch.setattr(
        "harvester.cli.context.Harvester",
        lambda cfg: Harvester(cfg, redis_client=redis_client, fetcher=fetcher, embedder=embedder),
    )
    return env


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch):
    """Keep rich from wrapping or truncating output at 80 columns."""
    monkeypatch.setattr(console, "width", 200)
