"""Credential redaction for error text and log events."""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

# Vendor key shapes (sk-ant-..., sk-proj-..., sk-...) standing as their own token
# with a key-length body; words like "task-list" must survive.
_VENDOR_KEY_RE = re.compile(r"(?<![A-Za-z0-9])sk-(?:ant-|proj-)?[A-Za-z0-9_\-]{16,}")


def redact(text: str, secret: str | None = None) -> str:
    """Strip the configured credential and anything shaped like a vendor key."""
    if secret:
        text = text.replace(secret, REDACTED)
    return _VENDOR_KEY_RE.sub(REDACTED, text)
