from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from nightly_sync.config import load_config, load_runtime_secrets


def test_load_config_reads_shipped_defaults() -> None:
    config = load_config()

    assert config.source.tracked_branch == "nightly-testing"
    assert config.source.tag_prefix == "nightly-testing-"
    assert config.source.pin_prefix == "leanprover/lean4:nightly-"
    assert config.upstream.tracking_branch == "nightly-with-mathlib"
    assert config.upstream.tag_prefix == "nightly-"
    assert config.zulip.stream == "mathlib reviewers"
    assert config.zulip.topic == "CI failure on the nightly-testing branch"
    assert config.github.server_url == "https://github.com"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "nightly_sync.yaml"
    path.write_text(text.strip(), encoding="utf-8")
    return path


_VALID = """
source:
  tracked_branch: nightly-testing
  remote: origin
  tag_prefix: nightly-testing-
  toolchain_file: lean-toolchain
  pin_prefix: "leanprover/lean4:nightly-"
upstream:
  clone_url: https://example.com/lean4.git
  push_remote: origin
  tracking_branch: nightly-with-mathlib
  nightly_remote: nightly
  nightly_url: https://example.com/lean4-nightly.git
  tag_prefix: nightly-
zulip:
  site: https://example.zulipchat.com
  email: bot@example.com
  stream: reviewers
  topic: nightly
"""


def test_load_config_defaults_github_section(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, _VALID))

    assert config.github.server_url == "https://github.com"
    assert config.zulip.stream == "reviewers"


def test_load_config_rejects_unknown_key(tmp_path: Path) -> None:
    path = _write(tmp_path, _VALID + "\nextra: true\n")

    with pytest.raises(ValidationError, match="extra"):
        load_config(path)


def test_load_config_rejects_duplicate_keys(tmp_path: Path) -> None:
    path = _write(tmp_path, _VALID.replace("  stream: reviewers", "  stream: a\n  stream: b"))

    with pytest.raises(yaml.constructor.ConstructorError, match="Duplicate key"):
        load_config(path)


def test_load_config_rejects_empty_tracked_branch(tmp_path: Path) -> None:
    path = _write(
        tmp_path, _VALID.replace("tracked_branch: nightly-testing", 'tracked_branch: " "')
    )

    with pytest.raises(ValidationError, match="tracked_branch"):
        load_config(path)


def test_load_runtime_secrets_reads_api_key() -> None:
    secrets = load_runtime_secrets({"ZULIP_API_KEY": " abc123 "})

    assert secrets.zulip_api_key == "abc123"


def test_load_runtime_secrets_fails_fast_when_missing() -> None:
    with pytest.raises(ValueError, match="ZULIP_API_KEY"):
        load_runtime_secrets({})
