"""Mustache templates for note bodies and file names.

Rendering is delegated to chevron, whose context-stack lookup matches
mustache.js: a dotted name that cannot be resolved in the innermost
scope is retried against the enclosing ones.  Templates are tokenized
once up front so syntax errors surface as ``TemplateError`` before any
output is produced.

Partials (``{{> name}}``) are rejected at validation time; chevron would
otherwise try to load them from disk.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import chevron
from chevron.tokenizer import ChevronError, tokenize

from infoflow_sync.sync.errors import TemplateError
from infoflow_sync.sync.models import Record

logger = logging.getLogger(__name__)

FALLBACK_FILE_NAME = "InfoFlow Item"

_INVALID_FILE_CHARS_RE = re.compile(r'[\\/:*?"<>|]')


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check(template: str) -> None:
    """Tokenize *template* fully.

    Raises:
        TemplateError: On malformed tags, unbalanced sections or partials.
    """
    try:
        for tag_type, key in tokenize(template):
            if tag_type == "partial":
                raise TemplateError(
                    f"Unsupported tag '{{{{> {key}}}}}': partials are not supported"
                )
    # chevron raises IndexError on an empty tag such as {{}}
    except (ChevronError, IndexError) as exc:
        detail = " ".join(str(exc).split()) or "empty tag"
        raise TemplateError(f"Invalid template: {detail}") from exc


def validate_template(template: str) -> tuple[bool, str]:
    """Check whether *template* parses.

    Returns:
        ``(True, "")`` if it parses, else ``(False, message)``.
    """
    try:
        _check(template)
    except TemplateError as exc:
        return (False, str(exc))
    return (True, "")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render *template* against *context*.

    Raises:
        TemplateError: If the template does not parse.
    """
    _check(template)
    return chevron.render(template, dict(context))


def sanitize_file_name(raw: str) -> str:
    """Make a rendered file name safe for the vault.

    Collapses whitespace, replaces ``\\ / : * ? " < > |`` with ``-``,
    collapses hyphen runs and strips leading dots.  Falls back to
    ``InfoFlow Item`` if nothing is left.
    """
    text = re.sub(r"\s+", " ", raw.strip())
    text = _INVALID_FILE_CHARS_RE.sub("-", text)
    text = re.sub(r"-+", "-", text)
    text = text.lstrip(".").strip()
    return text or FALLBACK_FILE_NAME


def render_file_name(template: str, context: Mapping[str, Any]) -> str:
    """Render the file name template (without extension) and sanitize it."""
    return sanitize_file_name(render_template(template, context))


def build_render_context(record: Record, markdown_content: str) -> dict[str, Any]:
    """Flatten *record* into the view model consumed by templates.

    Every scalar is a string so chevron output matches mustache.js.

    Args:
        record: Remote record.
        markdown_content: Record content already converted to Markdown.
    """
    metadata = record.metadata
    return {
        "title": record.title,
        "id": record.id,
        "itemType": record.item_type,
        "url": record.url or "",
        "author": record.author or "",
        "tags": ", ".join(record.tags),
        "tagsArray": list(record.tags),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "content": markdown_content,
        "itemNote": record.item_note or "",
        "folderName": record.folder_name or "",
        "source": (metadata.source if metadata else None) or "",
        "previewImageUrl": record.preview_image_url or "",
        "notes": [
            {"content": note.content, "quotedText": note.quoted_text}
            for note in record.notes
        ],
    }
