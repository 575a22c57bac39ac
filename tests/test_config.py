"""
Unit tests for competition config and CLI settings loading.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from courtside.config import (
    DEFAULT_COMPETITION_CONFIG,
    DEFAULT_INSTANT_WIN_SCORE,
    DEFAULT_STATE_FILE,
    get_competition_config,
    load_competition_config,
    load_settings,
)


class TestCompetitionConfig:
    """Tests for merging partial configs with defaults."""

    def test_defaults(self):
        """Test the default scoring and terminology."""
        config = get_competition_config()
        assert config.points_for_win == 3
        assert config.points_for_loss == 0
        assert config.points_for_tie is None
        assert config.allow_ties is False
        assert config.terminology.venue == 'court'
        assert config.terminology.match_plural == 'matches'

    def test_partial_override(self):
        """Test only the given keys change."""
        config = get_competition_config({'points_for_win': 2, 'terminology': {'venue': 'table'}})
        assert config.points_for_win == 2
        assert config.points_for_loss == 0
        assert config.terminology.venue == 'table'
        assert config.terminology.venue_plural == 'courts'

    def test_unknown_terminology_keys_ignored(self):
        """Test unknown terminology keys do not break loading."""
        config = get_competition_config({'terminology': {'arena': 'x'}})
        assert config.terminology == DEFAULT_COMPETITION_CONFIG.terminology

    def test_load_from_yaml(self, tmp_path):
        """Test loading a config file."""
        path = tmp_path / "config.yaml"
        path.write_text("allow_ties: true\npoints_for_tie: 1\n")
        config = load_competition_config(str(path))
        assert config.allow_ties is True
        assert config.points_for_tie == 1

    def test_invalid_yaml_falls_back(self, tmp_path):
        """Test an unparseable file yields the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("points_for_win: [unclosed\n")
        assert load_competition_config(str(path)) == DEFAULT_COMPETITION_CONFIG

    def test_missing_file_falls_back(self, tmp_path):
        """Test a missing file yields the defaults."""
        assert load_competition_config(str(tmp_path / "nope.yaml")) == DEFAULT_COMPETITION_CONFIG


class TestSettings:
    """Tests for CLI settings precedence."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Test defaults apply without a settings file."""
        monkeypatch.delenv('COURTSIDE_STATE_FILE', raising=False)
        settings = load_settings(str(tmp_path / "missing.yaml"))
        assert settings['state_file'] == DEFAULT_STATE_FILE
        assert settings['instant_win_score'] == DEFAULT_INSTANT_WIN_SCORE

    def test_file_overrides_defaults(self, tmp_path, monkeypatch):
        """Test values from the settings file win over defaults."""
        monkeypatch.delenv('COURTSIDE_STATE_FILE', raising=False)
        path = tmp_path / "courtside.yaml"
        path.write_text("state_file: league.yaml\ninstant_win_score: 21\n")
        settings = load_settings(str(path))
        assert settings['state_file'] == 'league.yaml'
        assert settings['instant_win_score'] == 21

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        """Test COURTSIDE_STATE_FILE wins over the settings file."""
        path = tmp_path / "courtside.yaml"
        path.write_text("state_file: league.yaml\n")
        monkeypatch.setenv('COURTSIDE_STATE_FILE', 'env.yaml')
        assert load_settings(str(path))['state_file'] == 'env.yaml'

    def test_settings_path_from_env(self, tmp_path, monkeypatch):
        """Test COURTSIDE_SETTINGS selects the settings file."""
        monkeypatch.delenv('COURTSIDE_STATE_FILE', raising=False)
        path = tmp_path / "other.yaml"
        path.write_text("log_level: DEBUG\n")
        monkeypatch.setenv('COURTSIDE_SETTINGS', str(path))
        assert load_settings()['log_level'] == 'DEBUG'
