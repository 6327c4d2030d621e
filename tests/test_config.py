"""
tests/test_config.py — YAML Configuration Loader Tests
=======================================================
"""

from __future__ import annotations

import pytest

from pullquest.config import PullQuestConfig, load_config


class TestLoadConfig:
    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        cfg = load_config(path)

        assert cfg == PullQuestConfig()
        assert cfg.starting_coins == 100
        assert cfg.monthly_refill_coins == 100
        assert cfg.issue_expiration_days == 7

    def test_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "monthly_refill_coins: 250\n"
            "refill_enabled: false\n"
            "refill_check_interval_seconds: '60'\n"
            "default_per_page: 50\n"
        )

        cfg = load_config(path)

        assert cfg.monthly_refill_coins == 250
        assert cfg.refill_enabled is False
        assert cfg.refill_check_interval_seconds == 60
        assert cfg.default_per_page == 50
        assert cfg.default_min_stars == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_bad_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("starting_coins: lots\n")
        with pytest.raises(ValueError):
            load_config(path)
