from __future__ import annotations

from typing import Mapping

from .models import RunConclusion, RunVerdict

ACTIONABLE_CONCLUSIONS: tuple[RunConclusion, ...] = ("success", "failure")


def build_verdict_from_event(event: Mapping[str, object]) -> RunVerdict:
    """Reads a GitHub ``workflow_run`` event payload.

    Raises ``ValueError`` for payloads that are malformed or describe a run
    whose conclusion is neither success nor failure.
    """
    workflow_run = _as_mapping(event.get("workflow_run"), "workflow_run")
    conclusion = _required_str(workflow_run, "conclusion", "workflow_run.conclusion")
    branch = _required_str(workflow_run, "head_branch", "workflow_run.head_branch")
    run_id = _required_id(workflow_run, "id", "workflow_run.id")

    repository = event.get("repository")
    if not isinstance(repository, Mapping):
        repository = workflow_run.get("repository")
    repository = _as_mapping(repository, "repository")
    full_name = _required_str(repository, "full_name", "repository.full_name")

    return build_operator_verdict(
        outcome=conclusion,
        branch=branch,
        run_id=run_id,
        repository=full_name,
    )


def build_operator_verdict(
    *, outcome: str, branch: str, run_id: str, repository: str
) -> RunVerdict:
    normalized = outcome.strip().lower()
    if normalized == "success":
        conclusion: RunConclusion = "success"
    elif normalized == "failure":
        conclusion = "failure"
    else:
        raise ValueError(f"run conclusion {outcome!r} is not actionable")
    return RunVerdict(
        outcome=conclusion,
        branch=branch.strip(),
        run_id=run_id.strip(),
        repository=repository.strip(),
    )


def _as_mapping(value: object, field_name: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{field_name} must be an object")
    return value


def _required_str(mapping: Mapping[str, object], key: str, field_name: str) -> str:
    value = mapping.get(key)
    if isinstance(value, str) and value.strip():
        return value
    raise ValueError(f"{field_name} must be a non-empty string")


def _required_id(mapping: Mapping[str, object], key: str, field_name: str) -> str:
    value = mapping.get(key)
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer or string")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError(f"{field_name} must be an integer or string")
