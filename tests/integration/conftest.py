"""Pytest fixtures for integration tests."""

from unittest.mock import patch

import pytest
import yaml

from slaplist.config import API_KEY_ENV_VAR, Config

SEED = "daft punk one more time"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep the developer's config and API key out of the tests."""
    monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
    Config.reset()
    yield
    Config.reset()


@pytest.fixture
def make_config_file(tmp_path):
    """Factory fixture writing a config file, optionally without an API key."""

    def _create(api_key="test-key", **recommendations):
        config_path = tmp_path / "config.yaml"
        config_data = {
            "youtube": {"api_key": api_key, "application_name": "slaplist-test"},
            "database": str(tmp_path / "catalog.sqlite3"),
            "recommendations": recommendations,
        }
        with open(config_path, "w") as f:
            yaml.dump(config_data, f)
        return config_path

    return _create


@pytest.fixture
def test_config(make_config_file):
    """Create a Config instance for testing."""
    return Config(config_path=make_config_file())


@pytest.fixture
def stocked_provider(provider):
    """Fake provider with two playlists sharing one track."""
    provider.searches[SEED] = [
        provider.add_playlist(
            "PL1",
            "French House",
            [
                ("vidSEED0001", "Daft Punk - One More Time"),
                ("vidX0000001", "Stardust - Music Sounds Better With You"),
            ],
        ),
        provider.add_playlist(
            "PL2",
            "Filter Disco",
            [
                ("vidX0000001", "Stardust - Music Sounds Better With You"),
                ("vidY0000001", "Justice - Genesis"),
            ],
        ),
    ]
    provider.videos["vidSEED0001"] = SEED
    return provider


@pytest.fixture
def patched_cli(test_config, stocked_provider):
    """Point the CLI at the test config and the fake provider."""
    with patch("slaplist.cli.Config") as mock_config_class, patch(
        "slaplist.cli.YouTubeClient"
    ) as mock_client_class:
        mock_config_class.return_value = test_config
        mock_client_class.return_value = stocked_provider
        yield mock_client_class
