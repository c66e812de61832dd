"""
Output truncation for tool results.

Tool output enters the conversation verbatim, so anything large is cut
middle-out: the head usually carries headers and the tail carries results.
Sizes are approximated at four UTF-8 bytes per token.
"""

from __future__ import annotations

from dataclasses import dataclass

APPROX_BYTES_PER_TOKEN = 4

# ~10KB of output
DEFAULT_MAX_TOKENS = 2500


@dataclass
class TruncateResult:
    """Outcome of :func:`truncate_output`."""

    text: str
    truncated: bool
    original_tokens: int
    tokens_truncated: int
    total_lines: int


def estimate_tokens(text: str) -> int:
    """Approximate token count of ``text``."""
    return len(text.encode("utf-8")) // APPROX_BYTES_PER_TOKEN


def _count_lines(text: str) -> int:
    return text.count("\n") + (1 if text and not text.endswith("\n") else 0)


def _split_head_tail(data: bytes, max_bytes: int) -> tuple[str, str]:
    head_bytes = max_bytes // 2
    tail_bytes = max_bytes - head_bytes
    # errors="ignore" drops a code point split at either cut
    head = data[:head_bytes].decode("utf-8", errors="ignore")
    tail = data[-tail_bytes:].decode("utf-8", errors="ignore") if tail_bytes else ""
    return head, tail


def truncate_output(output: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> TruncateResult:
    """
    Truncate output to ``max_tokens``, keeping equal head and tail.

    When truncation happens the text is prefixed with
    ``Total output lines: N`` and the removed middle is replaced by
    ``...K tokens truncated...``.
    """
    if not output:
        return TruncateResult(output, False, 0, 0, 0)

    data = output.encode("utf-8")
    original_tokens = len(data) // APPROX_BYTES_PER_TOKEN
    total_lines = _count_lines(output)

    if original_tokens <= max_tokens:
        return TruncateResult(output, False, original_tokens, 0, total_lines)

    head, tail = _split_head_tail(data, max_tokens * APPROX_BYTES_PER_TOKEN)
    kept = len(head.encode("utf-8")) + len(tail.encode("utf-8"))
    removed = (len(data) - kept) // APPROX_BYTES_PER_TOKEN

    text = f"Total output lines: {total_lines}\n{head}\n...{removed} tokens truncated...\n{tail}"
    return TruncateResult(text, True, original_tokens, removed, total_lines)


def limit_output(output: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Truncate and return just the text."""
    return truncate_output(output, max_tokens).text


def limit_lines(output: str, max_lines: int = 500, head_lines: int = 250) -> str:
    """Keep the first ``head_lines`` and the last ``max_lines - head_lines`` lines."""
    if not output:
        return output

    lines = output.splitlines(keepends=True)
    if len(lines) <= max_lines:
        return output

    tail_count = max_lines - head_lines
    omitted = len(lines) - max_lines
    head = "".join(lines[:head_lines])
    tail = "".join(lines[-tail_count:]) if tail_count > 0 else ""
    return f"Total output lines: {len(lines)}\n{head}\n...{omitted} lines omitted...\n{tail}"
