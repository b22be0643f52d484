from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

RunConclusion = Literal["success", "failure"]


@dataclass(frozen=True)
class RunVerdict:
    outcome: RunConclusion
    branch: str
    run_id: str
    repository: str

    def run_url(self, server_url: str = "https://github.com") -> str:
        return f"{server_url.rstrip('/')}/{self.repository}/actions/runs/{self.run_id}"


@dataclass(frozen=True)
class TagSyncResult:
    tag: str
    created: bool
    reason: str
    commit: str | None = None


@dataclass(frozen=True)
class MergeResult:
    tag: str
    merged: bool
    pushed: bool
    reason: str


@dataclass(frozen=True)
class NotificationResult:
    posted: bool
    content: str | None
    reason: str


@dataclass(frozen=True)
class StepError:
    kind: str
    message: str
    fatal: bool


@dataclass(frozen=True)
class PipelineOutcome:
    invoked: bool
    reason: str
    verdict: RunVerdict | None = None
    release_id: str | None = None
    tag_sync: TagSyncResult | None = None
    merge: MergeResult | None = None
    notification: NotificationResult | None = None
    errors: list[StepError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(error.fatal for error in self.errors)

    @property
    def error_kind(self) -> str | None:
        for error in self.errors:
            if error.fatal:
                return error.kind
        return None
