"""Identity and merge protocol for synced notes.

Each synced note carries the remote record id in its YAML frontmatter
(``infoflow_id``) and keeps machine-generated content between two HTML
comment markers.  Everything outside the markers belongs to the user and is
never rewritten once the note exists.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import yaml

from infoflow_sync.sync.models import Record

logger = logging.getLogger(__name__)

ID_KEY = "infoflow_id"
MANAGED_START = "<!-- INFOFLOW:START -->"
MANAGED_END = "<!-- INFOFLOW:END -->"

_FRONTMATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(?P<body>.*?)(?:\r?\n)?^---[ \t]*\r?$",
    re.DOTALL | re.MULTILINE,
)


def _quote(value: str | None) -> str:
    # JSON strings are valid YAML double-quoted scalars
    return json.dumps(value or "", ensure_ascii=False)


def build_frontmatter(record: Record) -> str:
    """Build the frontmatter block written into a new note.

    Keys are emitted in a fixed order and every value is quoted, so titles
    containing colons or quotes stay valid YAML.
    """
    tags = (
        "[" + ", ".join(_quote(tag) for tag in record.tags) + "]"
        if record.tags
        else "[]"
    )
    lines = [
        "---",
        f"{ID_KEY}: {_quote(record.id)}",
        f"title: {_quote(record.title)}",
        f"url: {_quote(record.url)}",
        f"item_type: {_quote(record.item_type)}",
        f"author: {_quote(record.author)}",
        f"tags: {tags}",
        f"created: {_quote(record.created_at)}",
        f"updated: {_quote(record.updated_at)}",
        "---",
    ]
    return "\n".join(lines)


def read_frontmatter(text: str) -> dict[str, Any] | None:
    """Parse the leading YAML frontmatter of *text*.

    Returns:
        The frontmatter mapping, or ``None`` when the note has no
        frontmatter or it is not a valid YAML mapping.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return None
    try:
        data = yaml.safe_load(match.group("body"))
    except yaml.YAMLError as exc:
        logger.debug("Ignoring malformed frontmatter: %s", exc)
        return None
    return data if isinstance(data, dict) else None


def get_record_id(frontmatter: dict[str, Any] | None) -> str | None:
    """Return the record id stored in *frontmatter*, if any."""
    if not frontmatter:
        return None
    value = frontmatter.get(ID_KEY)
    return value if isinstance(value, str) and value else None


def has_managed_block(text: str) -> bool:
    start = text.find(MANAGED_START)
    end = text.find(MANAGED_END)
    return start != -1 and end > start


def upsert_managed_block(existing: str, managed_body: str) -> str:
    """Replace the managed region of *existing* with *managed_body*.

    Text before the start marker and from the end marker on is kept byte
    for byte.  A note without a well-formed region gets one appended.
    """
    start = existing.find(MANAGED_START)
    end = existing.find(MANAGED_END)
    if start != -1 and end != -1 and end > start:
        before = existing[: start + len(MANAGED_START)]
        after = existing[end:]
        return f"{before}\n\n{managed_body}\n\n{after}"

    return (
        f"{existing.rstrip()}\n\n{MANAGED_START}\n\n"
        f"{managed_body}\n\n{MANAGED_END}\n"
    )


def build_new_document(record: Record, rendered_body: str) -> str:
    """Full text of a newly created note for *record*."""
    return (
        f"{build_frontmatter(record)}\n\n{MANAGED_START}\n\n"
        f"{rendered_body.strip()}\n\n{MANAGED_END}\n"
    )
