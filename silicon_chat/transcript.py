"""Plain-text rendering and export of conversation messages."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

from .models import Message, Role, utc_now

EXPORT_FORMATS = ("txt", "jsonl")


def format_time(message: Message) -> str:
    return message.timestamp.astimezone().strftime("%H:%M")


def format_metadata(message: Message) -> str:
    """Render response metrics, e.g. ``Response time: 2.00 sec • 1 tokens • 0.5 tokens/sec``."""
    if message.role is not Role.ASSISTANT or message.response_time is None:
        return ""
    parts = [f"Response time: {message.response_time:.2f} sec"]
    if message.output_tokens is not None:
        parts.append(f"{message.output_tokens} tokens")
    if message.tokens_per_second is not None:
        parts.append(f"{message.tokens_per_second:.1f} tokens/sec")
    return " • ".join(parts)


def message_lines(message: Message) -> list[str]:
    """Render one message into transcript lines."""
    role = "You" if message.role is Role.USER else "Assistant"
    lines = [f"{role} | {format_time(message)}", message.text]
    metadata = format_metadata(message)
    if metadata:
        lines.append(metadata)
    lines.append("")
    return lines


def render_transcript(messages: Iterable[Message]) -> str:
    lines: list[str] = []
    for message in messages:
        lines.extend(message_lines(message))
    return "\n".join(lines).strip()


def export_text(messages: Iterable[Message], target: Path) -> None:
    """Write the rendered transcript to *target*."""
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_transcript(messages) + "\n", encoding="utf-8")


def export_jsonl(messages: Iterable[Message], target: Path) -> None:
    """Write a metadata header line, then one JSON record per message."""
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        header = {"type": "chat_metadata", "exported_at": utc_now().isoformat()}
        handle.write(json.dumps(header, ensure_ascii=False) + "\n")
        for message in messages:
            record = {"type": "message", **message.to_dict()}
            handle.write(json.dumps(record, ensure_ascii=False) + "\n")


def export_transcript(messages: Iterable[Message], target: Path, fmt: str | None = None) -> Path:
    """Export *messages* to *target* and return the path written.

    The format comes from *fmt* or, failing that, the file suffix; the suffix
    is adjusted to match the format.
    """
    if fmt is None:
        fmt = "jsonl" if target.suffix.lower() == ".jsonl" else "txt"
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"unsupported export format: {fmt!r}")
    suffix = f".{fmt}"
    if target.suffix.lower() != suffix:
        target = target.with_suffix(suffix)
    if fmt == "jsonl":
        export_jsonl(messages, target)
    else:
        export_text(messages, target)
    return target
