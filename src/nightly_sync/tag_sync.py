from __future__ import annotations

import logging

from .errors import TagPublishError
from .git_cli import GitCli, GitCommandError, describe_output
from .models import TagSyncResult

_LOGGER = logging.getLogger(__name__)

DEFAULT_TAG_PREFIX = "nightly-testing-"
_REJECTED_EXISTING_MARKERS = (
    "already exists",
    "stale info",
    "cannot lock ref",
)


class TagSynchronizer:
    """Publishes the per-release tag on the source remote at most once.

    The tag is only ever created. An existing remote tag is left where it is,
    including one that a concurrent invocation pushed between our lookup and
    our push.
    """

    def __init__(
        self,
        *,
        git: GitCli,
        remote: str = "origin",
        tag_prefix: str = DEFAULT_TAG_PREFIX,
    ) -> None:
        self._git = git
        self._remote = remote
        self._tag_prefix = tag_prefix

    def tag_name(self, release_id: str) -> str:
        return f"{self._tag_prefix}{release_id}"

    def ensure_tag(self, release_id: str, *, tip: str = "HEAD") -> TagSyncResult:
        tag = self.tag_name(release_id)
        if self._remote_has_tag(tag):
            _LOGGER.info(
                "tag sync: tag=%s already exists on remote=%s", tag, self._remote
            )
            return TagSyncResult(tag=tag, created=False, reason="already exists")

        try:
            commit = self._git.rev_parse(tip)
            local_commit = self._git.local_tag_commit(tag)
            if local_commit != commit:
                # An unpublished local tag from an earlier attempt is safe to move.
                self._git.create_tag(tag, commit, replace=local_commit is not None)
        except GitCommandError as exc:
            raise TagPublishError(target=tag, reason=str(exc)) from exc

        _LOGGER.info(
            "tag sync: creating tag=%s at commit=%s on remote=%s",
            tag,
            commit,
            self._remote,
        )
        completed = self._git.push_new_ref(self._remote, f"refs/tags/{tag}")
        if completed.returncode == 0:
            _LOGGER.info("tag sync: created tag=%s remote=%s", tag, self._remote)
            return TagSyncResult(tag=tag, created=True, reason="created", commit=commit)

        details = describe_output(completed)
        if _is_rejected_as_existing(completed.stdout, completed.stderr):
            if self._remote_has_tag(tag):
                _LOGGER.info(
                    "tag sync: tag=%s was created concurrently on remote=%s",
                    tag,
                    self._remote,
                )
                return TagSyncResult(tag=tag, created=False, reason="lost race")
        raise TagPublishError(target=tag, reason=f"push rejected: {details}")

    def _remote_has_tag(self, tag: str) -> bool:
        try:
            return self._git.remote_tag_exists(self._remote, tag)
        except GitCommandError as exc:
            raise TagPublishError(
                target=tag, reason=f"tag lookup failed: {exc}"
            ) from exc


def _is_rejected_as_existing(stdout: str | None, stderr: str | None) -> bool:
    text = f"{stdout or ''}\n{stderr or ''}".lower()
    return any(marker in text for marker in _REJECTED_EXISTING_MARKERS)
