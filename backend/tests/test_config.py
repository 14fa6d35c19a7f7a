"""Tests for settings, resource loading and logging setup."""

import logging

import pytest

from vidscript.config import (
    Settings,
    load_prompt,
    load_proxies_config,
    load_script_models,
)
from vidscript.logging_config import StructuredFormatter, setup_logging, short_name


def test_comma_separated_lists():
    settings = Settings(gemini_api_keys=" k1, ,k2 ", proxy_urls="socks5://a:1080")

    assert settings.api_key_list == ["k1", "k2"]
    assert settings.proxy_url_list == ["socks5://a:1080"]


def test_builtin_prompts_have_placeholders():
    settings = Settings()

    assert "{video_url}" in load_prompt("duration", settings)
    assert "{start}" in load_prompt("scene", settings)
    assert "{message}" in load_prompt("chat", settings)


def test_external_prompt_overrides_builtin(tmp_path):
    (tmp_path / "duration.md").write_text("Custom {video_url}", encoding="utf-8")
    settings = Settings(prompts_dir=tmp_path)

    assert load_prompt("duration", settings) == "Custom {video_url}"
    assert "{start}" in load_prompt("scene", settings)


def test_missing_prompt_raises():
    with pytest.raises(FileNotFoundError):
        load_prompt("nonexistent", Settings())


def test_script_models_from_yaml():
    models = load_script_models(Settings())

    assert models[0] == "gemini-2.5-pro"
    assert len(models) >= 2


def test_proxies_merge_yaml_and_env(tmp_path):
    (tmp_path / "proxies.yaml").write_text(
        "proxies:\n  - url: http://a.example:8080\n    country: US\n",
        encoding="utf-8",
    )
    settings = Settings(config_dir=tmp_path, proxy_urls="http://a.example:8080,socks5://b.example:1080")

    proxies = load_proxies_config(settings)

    assert [p["url"] for p in proxies] == ["http://a.example:8080", "socks5://b.example:1080"]
    assert proxies[0]["country"] == "US"


def test_setup_logging_applies_module_levels():
    settings = Settings(log_level="WARNING", log_level_pools="DEBUG")

    setup_logging(settings)

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("vidscript.services.pools").level == logging.DEBUG
    assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)


def test_structured_formatter_shortens_logger_names():
    record = logging.LogRecord("vidscript.services.pools.base", logging.INFO, __file__, 1, "hello", None, None)

    line = StructuredFormatter().format(record)

    assert "| pools.base" in line
    assert line.endswith("| hello")


def test_short_name_strips_package_prefix():
    assert short_name("vidscript.services.pools.base") == "pools.base"
    assert short_name("vidscript.api.routes") == "api.routes"
    assert short_name("vidscript.main") == "main"
    assert short_name("uvicorn.error") == "uvicorn.error"
