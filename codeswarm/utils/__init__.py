"""Utility helpers."""

from codeswarm.utils.truncate import (
    APPROX_BYTES_PER_TOKEN,
    DEFAULT_MAX_TOKENS,
    TruncateResult,
    estimate_tokens,
    limit_lines,
    limit_output,
    truncate_output,
)

__all__ = [
    "APPROX_BYTES_PER_TOKEN",
    "DEFAULT_MAX_TOKENS",
    "TruncateResult",
    "estimate_tokens",
    "limit_lines",
    "limit_output",
    "truncate_output",
]
