from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)


class SourceRepoConfig(_StrictModel):
    tracked_branch: str
    remote: str
    tag_prefix: str
    toolchain_file: str
    pin_prefix: str

    @field_validator("tracked_branch", "remote", "tag_prefix", "pin_prefix")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value


class UpstreamRepoConfig(_StrictModel):
    clone_url: str
    push_remote: str
    tracking_branch: str
    nightly_remote: str
    nightly_url: str
    tag_prefix: str


class ZulipConfig(_StrictModel):
    site: str
    email: str
    stream: str
    topic: str


class GithubConfig(_StrictModel):
    server_url: str = "https://github.com"


class NightlySyncConfig(_StrictModel):
    source: SourceRepoConfig
    upstream: UpstreamRepoConfig
    zulip: ZulipConfig
    github: GithubConfig = GithubConfig()


class RuntimeSecrets(_StrictModel):
    zulip_api_key: str


class _UniqueKeyLoader(yaml.SafeLoader):
    pass


def _construct_mapping(
    loader: _UniqueKeyLoader, node: yaml.Node, deep: bool = False
) -> dict[Any, Any]:
    mapping: dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping",
                node.start_mark,
                f"Duplicate key: {key}",
                key_node.start_mark,
            )
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


_UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def default_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "config" / "nightly_sync.yaml"


def load_config(config_path: str | Path | None = None) -> NightlySyncConfig:
    path = Path(config_path) if config_path is not None else default_config_path()
    with path.open("r", encoding="utf-8") as handle:
        raw_config = yaml.load(handle, Loader=_UniqueKeyLoader)
    return NightlySyncConfig.model_validate(raw_config)


def load_runtime_secrets(environ: Mapping[str, str] | None = None) -> RuntimeSecrets:
    env = environ if environ is not None else os.environ
    missing = [key for key in ("ZULIP_API_KEY",) if not env.get(key, "").strip()]
    if missing:
        missing_keys = ", ".join(missing)
        raise ValueError(f"Missing required runtime secrets: {missing_keys}")
    try:
        return RuntimeSecrets.model_validate(
            {"zulip_api_key": env["ZULIP_API_KEY"].strip()}
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid runtime secrets: {exc}") from exc
