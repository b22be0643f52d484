from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Mapping

from .errors import (
    MalformedPin,
    MergeError,
    NotificationDeliveryError,
    TagPublishError,
)
from .models import (
    MergeResult,
    NotificationResult,
    PipelineOutcome,
    RunVerdict,
    StepError,
    TagSyncResult,
)
from .notification import NotificationGate
from .run_event import build_verdict_from_event
from .tag_sync import TagSynchronizer
from .upstream_merge import UpstreamMerger
from .version import DEFAULT_PIN_PREFIX, extract_release_id

_LOGGER = logging.getLogger(__name__)

PinReader = Callable[[], str]


class NightlySyncPipeline:
    """Handles one completed CI run on the tracked branch.

    A failure only posts the failure message. A success tags the source
    repository, merges the matching nightly into the second repository and
    then posts the success message unless it is already the newest one.
    Each remote step is idempotent, so nothing is undone when a later step
    fails.
    """

    def __init__(
        self,
        *,
        tracked_branch: str,
        read_pin: PinReader,
        tag_sync: TagSynchronizer,
        merger: UpstreamMerger | None,
        gate: NotificationGate,
        pin_prefix: str = DEFAULT_PIN_PREFIX,
        server_url: str = "https://github.com",
        upstream_clone_url: str | None = None,
    ) -> None:
        self._tracked_branch = tracked_branch
        self._read_pin = read_pin
        self._tag_sync = tag_sync
        self._merger = merger
        self._gate = gate
        self._pin_prefix = pin_prefix
        self._server_url = server_url
        self._upstream_clone_url = upstream_clone_url

    def dispatch(self, verdict: RunVerdict) -> PipelineOutcome:
        if verdict.branch != self._tracked_branch:
            _LOGGER.info(
                "dispatch: ignoring run=%s on branch=%s (tracked branch is %s)",
                verdict.run_id,
                verdict.branch,
                self._tracked_branch,
            )
            return PipelineOutcome(
                invoked=False,
                reason=f"branch {verdict.branch} is not the tracked branch",
                verdict=verdict,
            )
        if verdict.outcome == "failure":
            return self._handle_failure(verdict)
        return self._handle_success(verdict)

    def preview(self, verdict: RunVerdict) -> PipelineOutcome:
        if verdict.branch != self._tracked_branch:
            return PipelineOutcome(
                invoked=False,
                reason=f"branch {verdict.branch} is not the tracked branch",
                verdict=verdict,
            )
        release_id: str | None = None
        if verdict.outcome == "success":
            try:
                release_id = extract_release_id(
                    self._read_pin(), prefix=self._pin_prefix
                )
            except MalformedPin as exc:
                return PipelineOutcome(
                    invoked=False,
                    reason="dry-run: toolchain pin rejected",
                    verdict=verdict,
                    errors=[StepError(kind=exc.kind, message=str(exc), fatal=True)],
                )
        return PipelineOutcome(
            invoked=False,
            reason="dry-run: no remote state changed",
            verdict=verdict,
            release_id=release_id,
        )

    def _handle_failure(self, verdict: RunVerdict) -> PipelineOutcome:
        outcome = PipelineOutcome(
            invoked=True, reason="failure notified", verdict=verdict
        )
        notification, error = self._notify(
            lambda: self._gate.notify_failure(verdict.run_url(self._server_url))
        )
        if error is not None:
            return replace(
                outcome, reason="failure notification not delivered", errors=[error]
            )
        return replace(outcome, notification=notification)

    def _handle_success(self, verdict: RunVerdict) -> PipelineOutcome:
        try:
            release_id = extract_release_id(self._read_pin(), prefix=self._pin_prefix)
        except MalformedPin as exc:
            _LOGGER.error("dispatch: aborting before any side effect: %s", exc)
            return PipelineOutcome(
                invoked=True,
                reason="toolchain pin rejected",
                verdict=verdict,
                errors=[StepError(kind=exc.kind, message=str(exc), fatal=True)],
            )

        errors: list[StepError] = []
        tag_result: TagSyncResult | None = None
        merge_result: MergeResult | None = None

        try:
            tag_result = self._tag_sync.ensure_tag(release_id)
        except TagPublishError as exc:
            _LOGGER.error("dispatch: tag sync failed: %s", exc)
            errors.append(StepError(kind=exc.kind, message=str(exc), fatal=True))

        if tag_result is not None and self._merger is not None:
            try:
                if self._upstream_clone_url:
                    self._merger.prepare_checkout(self._upstream_clone_url)
                merge_result = self._merger.merge_release(release_id)
            except MergeError as exc:
                _LOGGER.warning("dispatch: upstream merge failed, continuing: %s", exc)
                errors.append(StepError(kind=exc.kind, message=str(exc), fatal=False))

        notification, error = self._notify(self._gate.notify_success)
        if error is not None:
            errors.append(error)

        return PipelineOutcome(
            invoked=True,
            reason="success handled",
            verdict=verdict,
            release_id=release_id,
            tag_sync=tag_result,
            merge=merge_result,
            notification=notification,
            errors=errors,
        )

    def _notify(
        self, send: Callable[[], NotificationResult]
    ) -> tuple[NotificationResult | None, StepError | None]:
        try:
            return send(), None
        except NotificationDeliveryError as exc:
            _LOGGER.error("dispatch: notification not delivered: %s", exc)
            return None, StepError(kind=exc.kind, message=str(exc), fatal=True)


def dispatch_from_event(
    *, event: Mapping[str, object], pipeline: NightlySyncPipeline, dry_run: bool = False
) -> PipelineOutcome:
    try:
        verdict = build_verdict_from_event(event)
    except ValueError as exc:
        _LOGGER.info("dispatch: event ignored: %s", exc)
        return PipelineOutcome(invoked=False, reason=str(exc))
    if dry_run:
        return pipeline.preview(verdict)
    return pipeline.dispatch(verdict)
