from __future__ import annotations

import logging

import pytest

from stagerelay.config import (
    HolyricsConfig,
    ProPresenterConfig,
    SourceType,
    required_keys,
    validate_config,
)


def test_holyrics_values_are_coerced(holyrics_values):
    config = validate_config(SourceType.HOLYRICS, holyrics_values)

    assert isinstance(config, HolyricsConfig)
    assert config.timeout == 5
    assert config.timeout_ms == 5000
    assert config.retry_time == 0
    assert config.max_network_failures == 3
    assert config.polling_interval == 60
    assert config.max_dom_read_failures == 3


def test_pro_presenter_base_url_and_default_delay():
    config = validate_config(SourceType.PRO_PRESENTER, {"HOST": " 10.0.0.5 ", "PORT": "8999"})

    assert isinstance(config, ProPresenterConfig)
    assert config.base_url == "http://10.0.0.5:8999"
    assert config.retry_delay == 3.0


def test_absent_config_returns_none_without_status(notifier, caplog):
    with caplog.at_level(logging.DEBUG, logger="stagerelay.config.models"):
        assert validate_config(SourceType.HOLYRICS, None, notifier) is None
        assert validate_config(SourceType.HOLYRICS, {}, notifier) is None

    assert notifier.get_status("holyrics")["logs"] == []
    assert "MAX_NETWORK_FAILURES" in caplog.records[0].getMessage()


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"PORT": "0"}, ["PORT"]),
        ({"PORT": "70000", "HOST": ""}, ["HOST", "PORT"]),
        ({"PORT": "abc"}, ["PORT"]),
    ],
)
def test_invalid_pro_presenter_config_reports_fields(notifier, overrides, expected):
    values = {"HOST": "presenter.local", "PORT": "8999", **overrides}

    assert validate_config(SourceType.PRO_PRESENTER, values, notifier) is None

    status = notifier.get_status("pro-presenter")
    assert status["items"]["active"] is False
    assert status["logs"][-1] == {
        "timestamp": status["logs"][-1]["timestamp"],
        "message": "Config has missing or invalid fields",
        "context": {"fields": expected},
    }


def test_missing_holyrics_keys_are_named(holyrics_values, notifier):
    values = dict(holyrics_values)
    del values["TEXT_SELECTOR"]
    values["MAX_NETWORK_FAILURES"] = "0"

    assert validate_config(SourceType.HOLYRICS, values, notifier) is None
    assert notifier.get_status("holyrics")["logs"][-1]["context"] == {
        "fields": ["MAX_NETWORK_FAILURES", "TEXT_SELECTOR"]
    }


def test_non_http_url_is_rejected(holyrics_values):
    values = {**holyrics_values, "URL": "ftp://display.local/view"}

    assert validate_config(SourceType.HOLYRICS, values) is None


def test_required_keys():
    assert required_keys(SourceType.PRO_PRESENTER) == ["HOST", "PORT"]
    assert "MAX_DOM_READ_FAILURES" not in required_keys(SourceType.HOLYRICS)
    assert "URL" in required_keys(SourceType.HOLYRICS)
