from __future__ import annotations

import logging

from .errors import MergeError
from .git_cli import GitCli, GitCommandError, describe_output
from .models import MergeResult

_LOGGER = logging.getLogger(__name__)

DEFAULT_UPSTREAM_TAG_PREFIX = "nightly-"
_UP_TO_DATE_MARKERS = ("already up to date", "already up-to-date", "nothing to merge")


class UpstreamMerger:
    """Advances the tracking branch of the second repository to a nightly tag.

    Older runs can finish after newer ones, so a tag that the branch already
    contains is reported as success without touching the branch.
    """

    def __init__(
        self,
        *,
        git: GitCli,
        upstream_remote: str = "nightly",
        upstream_url: str | None = None,
        push_remote: str = "origin",
        tracking_branch: str = "nightly-with-mathlib",
        tag_prefix: str = DEFAULT_UPSTREAM_TAG_PREFIX,
    ) -> None:
        self._git = git
        self._upstream_remote = upstream_remote
        self._upstream_url = upstream_url
        self._push_remote = push_remote
        self._tracking_branch = tracking_branch
        self._tag_prefix = tag_prefix

    def tag_name(self, release_id: str) -> str:
        return f"{self._tag_prefix}{release_id}"

    def prepare_checkout(self, clone_url: str) -> None:
        branch = self._tracking_branch
        try:
            if not self._git.is_repository():
                _LOGGER.info(
                    "upstream merge: cloning %s branch=%s into %s",
                    clone_url,
                    branch,
                    self._git.repo_dir,
                )
                self._git.clone(clone_url, branch=branch)
                return
            self._git.fetch(self._push_remote)
            self._git.checkout(branch, start_point=f"{self._push_remote}/{branch}")
        except GitCommandError as exc:
            raise MergeError(target=branch, reason=f"checkout failed: {exc}") from exc

    def merge_release(self, release_id: str) -> MergeResult:
        tag = self.tag_name(release_id)
        branch = self._tracking_branch
        try:
            if self._upstream_url:
                self._git.ensure_remote(self._upstream_remote, self._upstream_url)
            self._git.fetch(self._upstream_remote, tags=True)
            if self._git.is_ancestor(f"refs/tags/{tag}", branch):
                _LOGGER.info(
                    "upstream merge: tag=%s already merged into branch=%s", tag, branch
                )
                return MergeResult(
                    tag=tag, merged=False, pushed=False, reason="already merged"
                )
        except GitCommandError as exc:
            raise MergeError(target=tag, reason=str(exc)) from exc

        completed = self._git.merge(
            f"refs/tags/{tag}",
            strategy_option="ours",
            allow_unrelated_histories=True,
        )
        output = f"{completed.stdout or ''}\n{completed.stderr or ''}".lower()
        if any(marker in output for marker in _UP_TO_DATE_MARKERS):
            _LOGGER.info("upstream merge: branch=%s already up to date", branch)
            return MergeResult(
                tag=tag, merged=False, pushed=False, reason="already up to date"
            )
        if completed.returncode != 0:
            details = describe_output(completed)
            if not self._git.merge_abort():
                _LOGGER.warning("upstream merge: merge --abort failed on %s", branch)
            raise MergeError(target=tag, reason=f"merge failed: {details}")

        try:
            self._git.push(self._push_remote, f"HEAD:refs/heads/{branch}")
        except GitCommandError as exc:
            raise MergeError(target=branch, reason=f"push failed: {exc}") from exc
        _LOGGER.info(
            "upstream merge: merged tag=%s into branch=%s and pushed to remote=%s",
            tag,
            branch,
            self._push_remote,
        )
        return MergeResult(tag=tag, merged=True, pushed=True, reason="merged")
