"""Utility helpers for meshgate."""

from meshgate.utils.helpers import ensure_dir, get_data_path, truncate_string
from meshgate.utils.redaction import mask_value, redact_headers, redact_sensitive_map

__all__ = [
    "ensure_dir",
    "get_data_path",
    "mask_value",
    "redact_headers",
    "redact_sensitive_map",
    "truncate_string",
]
