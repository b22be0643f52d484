from __future__ import annotations

TRANSIENT = "TRANSIENT"
PERMANENT = "PERMANENT"


class PipelineError(RuntimeError):
    kind = "PipelineError"

    def __init__(self, *, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"[{self.kind}] target={target} reason={reason}")


class MalformedPin(PipelineError):
    kind = "MalformedPin"


class TagPublishError(PipelineError):
    kind = "TagPublishError"


class MergeError(PipelineError):
    kind = "MergeError"


class NotificationDeliveryError(PipelineError):
    kind = "NotificationDeliveryError"

    def __init__(self, *, classification: str, target: str, reason: str) -> None:
        self.classification = classification
        super().__init__(target=target, reason=f"{classification}: {reason}")


def classify_delivery_failure(reason: str) -> str:
    lower_reason = reason.lower()
    transient_markers = (
        "timeout",
        "timed out",
        "temporar",
        "rate limit",
        "too many requests",
        "429",
        "502",
        "503",
        "504",
        "connection",
        "unavailable",
        "try again",
    )
    if any(marker in lower_reason for marker in transient_markers):
        return TRANSIENT
    return PERMANENT


__all__ = [
    "MalformedPin",
    "MergeError",
    "NotificationDeliveryError",
    "PERMANENT",
    "PipelineError",
    "TRANSIENT",
    "TagPublishError",
    "classify_delivery_failure",
]
