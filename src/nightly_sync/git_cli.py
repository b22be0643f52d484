from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Mapping

RunFn = Callable[..., subprocess.CompletedProcess[str]]


class GitCommandError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class GitCli:
    """Runs ``git`` in one working directory.

    Commands never prompt for credentials; a missing credential fails the
    command instead of blocking the invocation.
    """

    def __init__(
        self,
        *,
        repo_dir: Path,
        git_bin: str = "git",
        env: Mapping[str, str] | None = None,
        run_fn: RunFn = subprocess.run,
    ) -> None:
        self._repo_dir = repo_dir
        self._git_bin = git_bin
        self._env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", **(env or {})}
        self._run_fn = run_fn

    @property
    def repo_dir(self) -> Path:
        return self._repo_dir

    def run(
        self, *args: str, check: bool = True, cwd: Path | None = None
    ) -> subprocess.CompletedProcess[str]:
        command = [self._git_bin, *args]
        completed = self._run_fn(
            command,
            cwd=cwd or self._repo_dir,
            env=self._env,
            text=True,
            capture_output=True,
            check=False,
        )
        if check and completed.returncode != 0:
            raise GitCommandError(
                f"git {' '.join(args)} failed: {describe_output(completed)}",
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )
        return completed

    def is_repository(self) -> bool:
        if not self._repo_dir.is_dir():
            return False
        completed = self.run("rev-parse", "--is-inside-work-tree", check=False)
        return completed.returncode == 0 and completed.stdout.strip() == "true"

    def clone(self, url: str, *, branch: str) -> None:
        self._repo_dir.parent.mkdir(parents=True, exist_ok=True)
        self.run(
            "clone",
            "--branch",
            branch,
            url,
            str(self._repo_dir),
            cwd=self._repo_dir.parent,
        )

    def rev_parse(self, ref: str) -> str:
        completed = self.run("rev-parse", "--verify", f"{ref}^{{commit}}")
        return completed.stdout.strip()

    def remote_tag_exists(self, remote: str, tag: str) -> bool:
        completed = self.run(
            "ls-remote", "--tags", "--exit-code", remote, f"refs/tags/{tag}",
            check=False,
        )
        if completed.returncode == 0:
            return True
        if completed.returncode == 2:
            return False
        raise GitCommandError(
            f"git ls-remote {remote} refs/tags/{tag} failed: {describe_output(completed)}",
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def local_tag_commit(self, tag: str) -> str | None:
        completed = self.run(
            "rev-parse", "--verify", "--quiet", f"refs/tags/{tag}^{{commit}}",
            check=False,
        )
        if completed.returncode != 0:
            return None
        return completed.stdout.strip() or None

    def create_tag(self, tag: str, commit: str, *, replace: bool = False) -> None:
        args = ["tag"]
        if replace:
            args.append("--force")
        args.extend([tag, commit])
        self.run(*args)

    def push_new_ref(self, remote: str, ref: str) -> subprocess.CompletedProcess[str]:
        # An empty lease value makes the remote update conditional on the ref
        # not existing yet.
        return self.run(
            "push",
            "--porcelain",
            f"--force-with-lease={ref}:",
            remote,
            f"{ref}:{ref}",
            check=False,
        )

    def remote_url(self, name: str) -> str | None:
        completed = self.run("remote", "get-url", name, check=False)
        if completed.returncode != 0:
            return None
        return completed.stdout.strip() or None

    def ensure_remote(self, name: str, url: str) -> None:
        current = self.remote_url(name)
        if current is None:
            self.run("remote", "add", name, url)
        elif current != url:
            self.run("remote", "set-url", name, url)

    def fetch(self, remote: str, *, tags: bool = False) -> None:
        args = ["fetch", remote]
        if tags:
            args.append("--tags")
        self.run(*args)

    def checkout(self, branch: str, *, start_point: str | None = None) -> None:
        if start_point is None:
            self.run("checkout", branch)
        else:
            self.run("checkout", "-B", branch, start_point)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        completed = self.run(
            "merge-base", "--is-ancestor", ancestor, descendant, check=False
        )
        if completed.returncode == 0:
            return True
        if completed.returncode == 1:
            return False
        raise GitCommandError(
            f"git merge-base --is-ancestor {ancestor} {descendant} failed: "
            f"{describe_output(completed)}",
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def merge(
        self,
        ref: str,
        *,
        strategy_option: str | None = None,
        allow_unrelated_histories: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        args = ["merge", "--no-edit"]
        if strategy_option:
            args.extend(["--strategy-option", strategy_option])
        if allow_unrelated_histories:
            args.append("--allow-unrelated-histories")
        args.append(ref)
        return self.run(*args, check=False)

    def merge_abort(self) -> bool:
        return self.run("merge", "--abort", check=False).returncode == 0

    def push(self, remote: str, refspec: str) -> None:
        self.run("push", remote, refspec)


def describe_output(completed: subprocess.CompletedProcess[str]) -> str:
    stderr = (completed.stderr or "").strip()
    stdout = (completed.stdout or "").strip()
    return stderr or stdout or "no output"
