from __future__ import annotations

import logging
from typing import Protocol

from .models import NotificationResult

_LOGGER = logging.getLogger(__name__)


class Messenger(Protocol):
    def fetch_last_message(self, channel: str, topic: str) -> str | None: ...

    def post_message(self, channel: str, topic: str, content: str) -> None: ...


def success_message(branch: str) -> str:
    return f"✅ The latest CI for branch#{branch} has succeeded!"


def failure_message(branch: str, run_url: str) -> str:
    return f"❌ The latest CI for branch#{branch} has [failed]({run_url})."


class NotificationGate:
    """Posts run outcomes to a channel topic.

    Every failure is posted. A success is posted only when the newest message
    in the topic is not already the success text, so consecutive successes
    collapse into one message and any other message re-arms the gate.
    Comparison is exact: no trimming, no normalisation.
    """

    def __init__(
        self, *, messenger: Messenger, channel: str, topic: str, branch: str
    ) -> None:
        self._messenger = messenger
        self._channel = channel
        self._topic = topic
        self._branch = branch

    @property
    def success_text(self) -> str:
        return success_message(self._branch)

    def notify_failure(self, run_url: str) -> NotificationResult:
        content = failure_message(self._branch, run_url)
        self._messenger.post_message(self._channel, self._topic, content)
        _LOGGER.info(
            "notification: posted failure to %s/%s run_url=%s",
            self._channel,
            self._topic,
            run_url,
        )
        return NotificationResult(posted=True, content=content, reason="failure posted")

    def notify_success(self) -> NotificationResult:
        last = self._messenger.fetch_last_message(self._channel, self._topic)
        if last == self.success_text:
            _LOGGER.info(
                "notification: last message in %s/%s is already the success text",
                self._channel,
                self._topic,
            )
            return NotificationResult(
                posted=False, content=None, reason="success already announced"
            )
        self._messenger.post_message(self._channel, self._topic, self.success_text)
        _LOGGER.info("notification: posted success to %s/%s", self._channel, self._topic)
        return NotificationResult(
            posted=True, content=self.success_text, reason="success posted"
        )
