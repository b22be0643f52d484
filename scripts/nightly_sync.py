from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
import sys
from typing import Mapping

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from nightly_sync.config import (  # noqa: E402
    NightlySyncConfig,
    default_config_path,
    load_config,
    load_runtime_secrets,
)
from nightly_sync.git_cli import GitCli  # noqa: E402
from nightly_sync.models import PipelineOutcome, RunVerdict  # noqa: E402
from nightly_sync.notification import Messenger, NotificationGate  # noqa: E402
from nightly_sync.pipeline import NightlySyncPipeline, dispatch_from_event  # noqa: E402
from nightly_sync.run_event import build_operator_verdict  # noqa: E402
from nightly_sync.tag_sync import TagSynchronizer  # noqa: E402
from nightly_sync.upstream_merge import UpstreamMerger  # noqa: E402
from nightly_sync.version import read_toolchain_pin  # noqa: E402
from nightly_sync.zulip_messenger import ZulipMessenger  # noqa: E402

_LOGGER = logging.getLogger("nightly_sync.cli")


def build_pipeline(
    config: NightlySyncConfig,
    *,
    source_dir: Path,
    toolchain_file: Path,
    upstream_dir: Path | None,
    messenger: Messenger,
    git_bin: str = "git",
) -> NightlySyncPipeline:
    source_git = GitCli(repo_dir=source_dir, git_bin=git_bin)
    merger: UpstreamMerger | None = None
    if upstream_dir is not None:
        merger = UpstreamMerger(
            git=GitCli(repo_dir=upstream_dir, git_bin=git_bin),
            upstream_remote=config.upstream.nightly_remote,
            upstream_url=config.upstream.nightly_url,
            push_remote=config.upstream.push_remote,
            tracking_branch=config.upstream.tracking_branch,
            tag_prefix=config.upstream.tag_prefix,
        )
    return NightlySyncPipeline(
        tracked_branch=config.source.tracked_branch,
        read_pin=lambda: read_toolchain_pin(toolchain_file),
        tag_sync=TagSynchronizer(
            git=source_git,
            remote=config.source.remote,
            tag_prefix=config.source.tag_prefix,
        ),
        merger=merger,
        gate=NotificationGate(
            messenger=messenger,
            channel=config.zulip.stream,
            topic=config.zulip.topic,
            branch=config.source.tracked_branch,
        ),
        pin_prefix=config.source.pin_prefix,
        server_url=config.github.server_url,
        upstream_clone_url=config.upstream.clone_url,
    )


def _load_event_file(path: Path) -> Mapping[str, object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"event file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"event file is not valid JSON: {path}") from exc
    if not isinstance(payload, Mapping):
        raise ValueError("event file must contain a JSON object")
    return payload


def _serialize_outcome(outcome: PipelineOutcome) -> dict[str, object]:
    serialized = asdict(outcome)
    serialized["ok"] = outcome.ok
    serialized["error_kind"] = outcome.error_kind
    return serialized


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python scripts/nightly_sync.py",
        description=(
            "Tag, merge and notify after a CI run on the nightly-testing branch"
        ),
    )
    parser.add_argument(
        "--event-file",
        type=Path,
        help="Path to GitHub workflow_run event payload JSON",
    )
    parser.add_argument(
        "--outcome",
        choices=("success", "failure"),
        help="Run conclusion for operator mode",
    )
    parser.add_argument("--branch", help="Branch the run executed on (operator mode)")
    parser.add_argument("--run-id", help="CI run identifier (operator mode)")
    parser.add_argument(
        "--repository", help="Repository owner/name of the run (operator mode)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=default_config_path(),
        help="Pipeline config YAML (default: config/nightly_sync.yaml)",
    )
    parser.add_argument(
        "--source-dir",
        type=Path,
        default=Path.cwd(),
        help="Checkout of the tracked branch (default: current directory)",
    )
    parser.add_argument(
        "--toolchain-file",
        type=Path,
        default=None,
        help="Toolchain pin file (default: <source-dir>/<source.toolchain_file>)",
    )
    parser.add_argument(
        "--upstream-dir",
        type=Path,
        default=None,
        help="Working directory for the second repository's tracking branch",
    )
    parser.add_argument(
        "--skip-merge",
        action="store_true",
        help="Do not merge the nightly into the second repository",
    )
    parser.add_argument(
        "--git-bin",
        default="git",
        help="git binary name/path (default: git)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate inputs and print the plan without touching any remote",
    )
    return parser


def _resolve_verdict(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> RunVerdict | None:
    operator_values = [args.outcome, args.branch, args.run_id, args.repository]
    has_any_operator = any(value is not None for value in operator_values)
    has_all_operator = all(
        isinstance(value, str) and value.strip() for value in operator_values
    )
    if args.event_file is not None:
        if has_any_operator:
            parser.error("--event-file cannot be combined with operator mode fields")
        return None
    if not has_all_operator:
        parser.error(
            "provide --event-file or all operator fields: "
            "--outcome --branch --run-id --repository"
        )
    return build_operator_verdict(
        outcome=args.outcome,
        branch=args.branch,
        run_id=args.run_id,
        repository=args.repository,
    )


def main(argv: list[str] | None = None, *, messenger: Messenger | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    verdict = _resolve_verdict(args, parser)

    if not args.skip_merge and args.upstream_dir is None and not args.dry_run:
        parser.error("--upstream-dir is required unless --skip-merge is given")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        parser.error(f"invalid config {args.config}: {exc}")

    if messenger is None and not args.dry_run:
        try:
            secrets = load_runtime_secrets()
        except ValueError as exc:
            parser.error(str(exc))
        messenger = ZulipMessenger(
            email=config.zulip.email,
            api_key=secrets.zulip_api_key,
            site=config.zulip.site,
        )

    source_dir = args.source_dir.resolve()
    toolchain_file = args.toolchain_file or source_dir / config.source.toolchain_file
    pipeline = build_pipeline(
        config,
        source_dir=source_dir,
        toolchain_file=toolchain_file,
        upstream_dir=(
            None
            if args.skip_merge or args.upstream_dir is None
            else args.upstream_dir.resolve()
        ),
        messenger=messenger if messenger is not None else _UnusedMessenger(),
        git_bin=args.git_bin,
    )

    if verdict is None:
        try:
            event = _load_event_file(args.event_file)
        except ValueError as exc:
            parser.error(str(exc))
        outcome = dispatch_from_event(
            event=event, pipeline=pipeline, dry_run=args.dry_run
        )
    elif args.dry_run:
        outcome = pipeline.preview(verdict)
    else:
        outcome = pipeline.dispatch(verdict)

    print(json.dumps(_serialize_outcome(outcome), sort_keys=True, ensure_ascii=False))
    if not outcome.ok:
        _LOGGER.error("nightly sync failed: error_kind=%s", outcome.error_kind)
        return 1
    return 0


class _UnusedMessenger:
    def fetch_last_message(self, channel: str, topic: str) -> str | None:
        raise RuntimeError("messenger is not available in dry-run mode")

    def post_message(self, channel: str, topic: str, content: str) -> None:
        raise RuntimeError("messenger is not available in dry-run mode")


if __name__ == "__main__":
    raise SystemExit(main())
