"""Helpers to keep credentials and auth headers out of log lines."""

from __future__ import annotations

from typing import Any, Mapping

SENSITIVE_HEADERS = {
    "meshblu_auth_token",
    "authorization",
}

SENSITIVE_KEYS = {
    "token",
    "secret",
    "password",
}


def mask_value(value: Any, *, keep_prefix: int = 2, keep_suffix: int = 2) -> str:
    text = str(value or "")
    if not text:
        return ""
    if len(text) <= keep_prefix + keep_suffix:
        return "*" * len(text)
    return f"{text[:keep_prefix]}{'*' * (len(text) - keep_prefix - keep_suffix)}{text[-keep_suffix:]}"


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy request headers with auth values masked."""
    return {
        key: mask_value(value) if str(key).strip().lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def redact_sensitive_map(data: dict[str, Any]) -> dict[str, Any]:
    output: dict[str, Any] = {}
    for key, value in data.items():
        lower_key = str(key).strip().lower()
        if lower_key in SENSITIVE_KEYS:
            output[key] = mask_value(value)
            continue
        if isinstance(value, dict):
            output[key] = redact_sensitive_map(value)
            continue
        output[key] = value
    return output
