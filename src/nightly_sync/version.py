from __future__ import annotations

import re
from pathlib import Path

from .errors import MalformedPin

DEFAULT_PIN_PREFIX = "leanprover/lean4:nightly-"
RELEASE_TOKEN = r"([A-Za-z0-9_-]+)"


def extract_release_id(pin: str, *, prefix: str = DEFAULT_PIN_PREFIX) -> str:
    match = re.search(re.escape(prefix) + RELEASE_TOKEN, pin)
    if match is None:
        raise MalformedPin(
            target="toolchain-pin",
            reason=f"pin {pin.strip()!r} does not contain the expected pattern {prefix}<release>",
        )
    return match.group(1)


def read_toolchain_pin(path: str | Path) -> str:
    pin_path = Path(path)
    try:
        return pin_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError as exc:
        raise MalformedPin(
            target=str(pin_path), reason="toolchain pin file not found"
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise MalformedPin(
            target=str(pin_path), reason=f"toolchain pin file unreadable: {exc}"
        ) from exc
