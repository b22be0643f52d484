from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import zulip

from .errors import (
    NotificationDeliveryError,
    PERMANENT,
    TRANSIENT,
    classify_delivery_failure,
)

_LOGGER = logging.getLogger(__name__)

_TRANSIENT_RESULTS = {"connection-error", "http-error"}


def _default_client_factory(*, email: str, api_key: str, site: str) -> Any:
    return zulip.Client(
        email=email, api_key=api_key, site=site, retry_on_errors=False
    )


class ZulipMessenger:
    """Reads and appends messages in a Zulip stream topic."""

    def __init__(
        self,
        *,
        email: str,
        api_key: str,
        site: str,
        client: Any | None = None,
        client_factory: Callable[..., Any] = _default_client_factory,
    ) -> None:
        self._email = email
        self._api_key = api_key
        self._site = site
        self._client = client
        self._client_factory = client_factory

    def fetch_last_message(self, channel: str, topic: str) -> str | None:
        request = {
            "anchor": "newest",
            "num_before": 1,
            "num_after": 0,
            "narrow": [
                {"operator": "stream", "operand": channel},
                {"operator": "topic", "operand": topic},
            ],
            "apply_markdown": False,
        }
        response = self._call("get_messages", request, target=f"{channel}/{topic}")
        messages = response.get("messages")
        if not isinstance(messages, list):
            raise NotificationDeliveryError(
                classification=PERMANENT,
                target=f"{channel}/{topic}",
                reason="get_messages response missing messages list",
            )
        if not messages:
            return None
        newest = messages[-1]
        if not isinstance(newest, Mapping) or not isinstance(
            newest.get("content"), str
        ):
            raise NotificationDeliveryError(
                classification=PERMANENT,
                target=f"{channel}/{topic}",
                reason="get_messages returned a message without content",
            )
        return newest["content"]

    def post_message(self, channel: str, topic: str, content: str) -> None:
        request = {
            "type": "stream",
            "to": channel,
            "topic": topic,
            "content": content,
        }
        response = self._call("send_message", request, target=f"{channel}/{topic}")
        _LOGGER.debug("zulip send_message response: %s", response)

    def _call(
        self, method: str, request: dict[str, object], *, target: str
    ) -> Mapping[str, object]:
        try:
            client = self._get_client()
            response = getattr(client, method)(request)
        except (zulip.ZulipError, OSError) as exc:
            reason = str(exc).strip() or exc.__class__.__name__
            raise NotificationDeliveryError(
                classification=classify_delivery_failure(reason),
                target=target,
                reason=f"{method}: {reason}",
            ) from exc
        if not isinstance(response, Mapping):
            raise NotificationDeliveryError(
                classification=PERMANENT,
                target=target,
                reason=f"{method} returned a non-object response",
            )
        result = response.get("result")
        if result != "success":
            msg = str(response.get("msg") or "no message")
            classification = (
                TRANSIENT
                if result in _TRANSIENT_RESULTS
                else classify_delivery_failure(msg)
            )
            raise NotificationDeliveryError(
                classification=classification,
                target=target,
                reason=f"{method} result={result}: {msg}",
            )
        return response

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(
                email=self._email, api_key=self._api_key, site=self._site
            )
        return self._client
