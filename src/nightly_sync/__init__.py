from .config import NightlySyncConfig, load_config, load_runtime_secrets
from .errors import (
    MalformedPin,
    MergeError,
    NotificationDeliveryError,
    PipelineError,
    TagPublishError,
)
from .git_cli import GitCli, GitCommandError
from .models import (
    MergeResult,
    NotificationResult,
    PipelineOutcome,
    RunVerdict,
    StepError,
    TagSyncResult,
)
from .notification import Messenger, NotificationGate, failure_message, success_message
from .pipeline import NightlySyncPipeline, dispatch_from_event
from .run_event import build_operator_verdict, build_verdict_from_event
from .tag_sync import TagSynchronizer
from .upstream_merge import UpstreamMerger
from .version import extract_release_id, read_toolchain_pin
from .zulip_messenger import ZulipMessenger

__all__ = [
    "GitCli",
    "GitCommandError",
    "MalformedPin",
    "MergeError",
    "MergeResult",
    "Messenger",
    "NightlySyncConfig",
    "NightlySyncPipeline",
    "NotificationDeliveryError",
    "NotificationGate",
    "NotificationResult",
    "PipelineError",
    "PipelineOutcome",
    "RunVerdict",
    "StepError",
    "TagPublishError",
    "TagSyncResult",
    "TagSynchronizer",
    "UpstreamMerger",
    "ZulipMessenger",
    "build_operator_verdict",
    "build_verdict_from_event",
    "dispatch_from_event",
    "extract_release_id",
    "failure_message",
    "load_config",
    "load_runtime_secrets",
    "read_toolchain_pin",
    "success_message",
]
