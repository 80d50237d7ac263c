"""Playback URL normalization."""

from typing import Any


def normalize_playback_url(url: Any) -> str:
    """Upgrade a raw playback URL to an absolute https URL.

    Secure pages silently block insecure media, so ``http://`` is rewritten
    to ``https://`` and protocol-relative ``//host/...`` gets ``https:``.
    Blank input yields ``""``; anything else passes through.
    """
    value = str(url or "").strip()
    if not value:
        return ""
    if value.startswith("http://"):
        return "https://" + value[len("http://"):]
    if value.startswith("//"):
        return "https:" + value
    return value
