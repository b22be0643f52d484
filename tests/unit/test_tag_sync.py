from __future__ import annotations

from dataclasses import dataclass, field
import logging
import subprocess

import pytest

from nightly_sync.errors import TagPublishError
from nightly_sync.git_cli import GitCommandError
from nightly_sync.tag_sync import TagSynchronizer


@dataclass
class FakeGit:
    head: str = "c0ffee"
    remote_tags: dict[str, str] = field(default_factory=dict)
    local_tags: dict[str, str] = field(default_factory=dict)
    push_returncode: int = 0
    push_stderr: str = ""
    concurrent_tag_commit: str | None = None
    lookup_error: str | None = None
    pushes: list[tuple[str, str]] = field(default_factory=list)
    tag_calls: list[tuple[str, str, bool]] = field(default_factory=list)

    def remote_tag_exists(self, remote: str, tag: str) -> bool:
        if self.lookup_error is not None:
            raise GitCommandError(self.lookup_error, returncode=128)
        return tag in self.remote_tags

    def rev_parse(self, ref: str) -> str:
        assert ref == "HEAD"
        return self.head

    def local_tag_commit(self, tag: str) -> str | None:
        return self.local_tags.get(tag)

    def create_tag(self, tag: str, commit: str, *, replace: bool = False) -> None:
        self.tag_calls.append((tag, commit, replace))
        self.local_tags[tag] = commit

    def push_new_ref(self, remote: str, ref: str) -> subprocess.CompletedProcess[str]:
        self.pushes.append((remote, ref))
        tag = ref.removeprefix("refs/tags/")
        if self.concurrent_tag_commit is not None:
            self.remote_tags[tag] = self.concurrent_tag_commit
            return subprocess.CompletedProcess(
                ["git", "push"],
                1,
                f"!\t{ref}:{ref}\t[rejected] (stale info)\nDone\n",
                "error: failed to push some refs",
            )
        if self.push_returncode == 0:
            self.remote_tags[tag] = self.local_tags[tag]
        return subprocess.CompletedProcess(
            ["git", "push"], self.push_returncode, "", self.push_stderr
        )


def test_ensure_tag_creates_and_pushes_missing_tag(caplog) -> None:
    git = FakeGit()
    sync = TagSynchronizer(git=git)

    with caplog.at_level(logging.INFO):
        result = sync.ensure_tag("2024-01-15")

    assert result.tag == "nightly-testing-2024-01-15"
    assert result.created is True
    assert result.commit == "c0ffee"
    assert git.remote_tags == {"nightly-testing-2024-01-15": "c0ffee"}
    assert git.pushes == [("origin", "refs/tags/nightly-testing-2024-01-15")]
    assert "tag sync: created tag=nightly-testing-2024-01-15" in caplog.text


def test_ensure_tag_leaves_existing_remote_tag_untouched() -> None:
    git = FakeGit(head="new-tip", remote_tags={"nightly-testing-2024-01-15": "old-tip"})
    sync = TagSynchronizer(git=git)

    result = sync.ensure_tag("2024-01-15")

    assert result.created is False
    assert result.reason == "already exists"
    assert git.remote_tags == {"nightly-testing-2024-01-15": "old-tip"}
    assert git.pushes == []
    assert git.tag_calls == []


def test_ensure_tag_twice_is_idempotent() -> None:
    git = FakeGit()
    sync = TagSynchronizer(git=git)

    first = sync.ensure_tag("2024-01-15")
    git.head = "later-tip"
    second = sync.ensure_tag("2024-01-15")

    assert first.created is True
    assert second.created is False
    assert git.remote_tags == {"nightly-testing-2024-01-15": "c0ffee"}
    assert len(git.pushes) == 1


def test_ensure_tag_treats_lost_race_as_success() -> None:
    git = FakeGit(concurrent_tag_commit="other-runner-tip")
    sync = TagSynchronizer(git=git)

    result = sync.ensure_tag("2024-01-15")

    assert result.created is False
    assert result.reason == "lost race"
    assert git.remote_tags == {"nightly-testing-2024-01-15": "other-runner-tip"}


def test_ensure_tag_raises_tag_publish_error_on_auth_failure() -> None:
    git = FakeGit(
        push_returncode=128,
        push_stderr="remote: Permission to acme/repo.git denied to bot.",
    )
    sync = TagSynchronizer(git=git)

    with pytest.raises(TagPublishError, match="Permission") as exc_info:
        sync.ensure_tag("2024-01-15")

    assert exc_info.value.target == "nightly-testing-2024-01-15"
    assert len(git.pushes) == 1


def test_ensure_tag_rejection_without_remote_tag_is_an_error() -> None:
    git = FakeGit(
        push_returncode=1,
        push_stderr="! [rejected] nightly-testing-2024-01-15 (already exists)",
    )
    sync = TagSynchronizer(git=git)

    with pytest.raises(TagPublishError, match="push rejected"):
        sync.ensure_tag("2024-01-15")


def test_ensure_tag_lookup_failure_is_tag_publish_error() -> None:
    git = FakeGit(lookup_error="fatal: unable to access remote")
    sync = TagSynchronizer(git=git)

    with pytest.raises(TagPublishError, match="tag lookup failed"):
        sync.ensure_tag("2024-01-15")

    assert git.pushes == []


def test_ensure_tag_replaces_stale_unpublished_local_tag() -> None:
    git = FakeGit(head="tip", local_tags={"nightly-testing-2024-01-15": "stale"})
    sync = TagSynchronizer(git=git)

    result = sync.ensure_tag("2024-01-15")

    assert result.created is True
    assert git.tag_calls == [("nightly-testing-2024-01-15", "tip", True)]


def test_ensure_tag_reuses_local_tag_at_same_commit() -> None:
    git = FakeGit(head="tip", local_tags={"nightly-testing-2024-01-15": "tip"})
    sync = TagSynchronizer(git=git, remote="upstream", tag_prefix="nightly-testing-")

    result = sync.ensure_tag("2024-01-15")

    assert result.created is True
    assert git.tag_calls == []
    assert git.pushes == [("upstream", "refs/tags/nightly-testing-2024-01-15")]
