"""Configuration and logging setup tests."""
from __future__ import annotations

import json
import logging

import pytest
import structlog

from solc_audit.config import DEFAULT_CONFIG, WorkbenchConfig, load_config
from solc_audit.log import configure_logging


def test_defaults():
    assert load_config(None) is DEFAULT_CONFIG
    assert DEFAULT_CONFIG.min_fallback_text_length == 2
    assert DEFAULT_CONFIG.show_annotations


def test_load_config_accepts_dashed_keys(tmp_path):
    path = tmp_path / "audit.json"
    path.write_text(json.dumps({"short-number-digits": 20, "include_infeasible_paths": True}))

    config = load_config(path)

    assert config.short_number_digits == 20
    assert config.include_infeasible_paths


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"colour": "red"}, "Unknown config key"),
        ({"show_annotations": "yes"}, "must be a boolean"),
        ({"min_fallback_text_length": 0}, "must be >= 1"),
        ({"short_number_digits": True}, "must be an integer"),
    ],
)
def test_invalid_config_values(payload, message):
    with pytest.raises(ValueError, match=message):
        WorkbenchConfig.from_mapping(payload)


def test_invalid_config_file(tmp_path):
    path = tmp_path / "audit.json"
    path.write_text("[1]")
    with pytest.raises(ValueError, match="Config root must be an object"):
        load_config(path)


def test_merged_ignores_unset_overrides():
    config = DEFAULT_CONFIG.merged(show_annotations=None, short_number_digits=8)

    assert config.show_annotations
    assert config.short_number_digits == 8
    assert DEFAULT_CONFIG.merged() is DEFAULT_CONFIG


def test_configure_logging_sets_level():
    configure_logging("debug", json_output=True)

    assert logging.getLogger().level == logging.DEBUG
    assert structlog.is_configured()

    configure_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING
