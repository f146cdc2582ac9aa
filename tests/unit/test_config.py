"""Unit tests for wallcal.config."""

import pytest

from wallcal.config import Config, apply_env_overrides, load_config
from wallcal.proxy_fetcher import DEFAULT_PROXY_TEMPLATES

pytestmark = pytest.mark.unit


def test_load_config_when_file_missing_then_defaults(tmp_path) -> None:
    cfg = load_config(str(tmp_path / "absent.yaml"), environ={})

    assert cfg == Config()
    assert cfg.proxy_templates == list(DEFAULT_PROXY_TEMPLATES)
    assert cfg.cache_ttl_seconds == 300


def test_load_config_when_yaml_present_then_values_loaded(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "ical_url: https://calendar.example.com/basic.ics\n"
        "timezone: Europe/Berlin\n"
        "server_port: '9090'\n"
        "log_level: debug\n"
        "proxy_templates:\n"
        "  - https://relay.example/?{url}\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path), environ={})

    assert cfg.ical_url == "https://calendar.example.com/basic.ics"
    assert cfg.timezone == "Europe/Berlin"
    assert cfg.server_port == 9090
    assert cfg.log_level == "DEBUG"
    assert cfg.proxy_templates == ["https://relay.example/?{url}"]


def test_load_config_when_top_level_not_mapping_then_value_error(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path), environ={})


def test_load_config_when_file_empty_then_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config(str(path), environ={}) == Config()


def test_load_config_when_env_set_then_overrides_file(tmp_path) -> None:
    """Test WALLCAL_* variables win over values from the YAML file."""
    path = tmp_path / "config.yaml"
    path.write_text("ical_url: https://file.example/cal.ics\nserver_port: 8000\n", encoding="utf-8")

    cfg = load_config(
        str(path),
        environ={
            "WALLCAL_ICAL_URL": "https://env.example/cal.ics",
            "WALLCAL_PORT": "3000",
            "WALLCAL_GOOGLE_TOKEN": "secret",
        },
    )

    assert cfg.ical_url == "https://env.example/cal.ics"
    assert cfg.server_port == 3000
    assert cfg.google_access_token == "secret"


def test_apply_env_overrides_when_value_empty_then_ignored() -> None:
    assert apply_env_overrides({"timezone": "UTC"}, {"WALLCAL_TIMEZONE": ""}) == {"timezone": "UTC"}


def test_from_dict_when_int_invalid_then_default_with_warning(caplog) -> None:
    with caplog.at_level("WARNING", logger="wallcal.config"):
        cfg = Config.from_dict({"request_timeout": "fast"})

    assert cfg.request_timeout == 30
    assert "request_timeout" in caplog.text


@pytest.mark.parametrize(("raw", "expected"), [(-5, 0), (7200, 3600), (60, 60)])
def test_from_dict_cache_ttl_is_clamped(raw, expected) -> None:
    assert Config.from_dict({"cache_ttl_seconds": raw}).cache_ttl_seconds == expected


def test_from_dict_when_blank_strings_then_none() -> None:
    cfg = Config.from_dict({"ical_url": "  ", "timezone": ""})

    assert cfg.ical_url is None
    assert cfg.timezone is None


def test_from_dict_when_templates_scalar_then_single_item_list() -> None:
    cfg = Config.from_dict({"proxy_templates": "https://relay.example/?{url}"})

    assert cfg.proxy_templates == ["https://relay.example/?{url}"]


def test_from_dict_when_template_lacks_placeholder_then_warns(caplog) -> None:
    with caplog.at_level("WARNING", logger="wallcal.config"):
        Config.from_dict({"proxy_templates": ["https://relay.example/"]})

    assert "placeholder" in caplog.text
