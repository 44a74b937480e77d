from __future__ import annotations

import textwrap

import pytest

from contentpatch.config import ConfigError, deep_merge, default_config, is_offline_model, load_config


def test_load_config_fills_defaults(tmp_path) -> None:
    config_path = tmp_path / "contentpatch.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            github:
              owner: acme
              repo: site
            models:
              default: offline
            """
        ),
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config["github"]["owner"] == "acme"
    assert config["github"]["base_branch"] == "main"
    assert config["models"]["default"] == "offline"
    assert config["models"]["timeout"] == 120
    assert config["analysis"]["batch_size"] == 5


def test_load_config_errors(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(listing)

    broken = tmp_path / "broken.yaml"
    broken.write_text("github: [unterminated\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(broken)


def test_deep_merge_does_not_mutate_inputs() -> None:
    base = default_config()
    merged = deep_merge(base, {"analysis": {"max_files": 10}})

    assert merged["analysis"] == {**base["analysis"], "max_files": 10}
    assert base["analysis"]["max_files"] == 50


@pytest.mark.parametrize(
    ("name", "offline"),
    [("offline", True), ("gpt-5-offline", True), ("local-offline", True), ("gpt-5-mini", False)],
)
def test_is_offline_model(name: str, offline: bool) -> None:
    assert is_offline_model(name) is offline
