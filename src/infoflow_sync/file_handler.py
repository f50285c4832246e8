"""Note file I/O for the vault.

Notes are usually UTF-8, but vaults imported from other tools contain
legacy encodings and BOM-prefixed files.  ``read_note`` detects the
encoding with charset-normalizer so a later ``write_note`` can keep it.
Writes go through a temporary sibling file and ``os.replace`` so a crash
never leaves a half-written note behind.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import NamedTuple

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

UTF8 = "utf-8"
_BOM = b"\xef\xbb\xbf"


class NoteText(NamedTuple):
    content: str
    encoding: str


def resolve_vault_path(root: Path, relative: str) -> Path:
    """Resolve a vault-relative path and make sure it stays inside the vault.

    Raises:
        ValueError: If the path is absolute or escapes the vault.
    """
    if Path(relative).is_absolute():
        raise ValueError(f"Path must be vault-relative: {relative}")
    resolved = (root / relative).resolve()
    if resolved != root and not resolved.is_relative_to(root):
        raise ValueError(
            f"Path is outside the vault: {resolved} not under {root}"
        )
    return resolved


def read_note(path: Path) -> NoteText:
    """Read a note, detecting its encoding.

    UTF-8 (with or without BOM) is tried first since nearly every note is
    UTF-8 and detection on short texts is unreliable.
    """
    raw = path.read_bytes()
    if raw.startswith(_BOM):
        return NoteText(raw[len(_BOM):].decode(UTF8, errors="replace"), "utf-8-sig")
    try:
        return NoteText(raw.decode(UTF8), UTF8)
    except UnicodeDecodeError:
        pass

    match = from_bytes(raw).best()
    if match is None:
        logger.warning("Could not detect the encoding of %s, reading as UTF-8", path)
        return NoteText(raw.decode(UTF8, errors="replace"), UTF8)
    return NoteText(str(match), match.encoding)


def write_note(path: Path, content: str, encoding: str = UTF8) -> str:
    """Atomically write *content* to *path*.

    Falls back to UTF-8 when *content* cannot be represented in
    *encoding* (remote text often carries characters a legacy code page
    lacks).

    Returns:
        The encoding actually used.
    """
    try:
        data = content.encode(encoding)
    except UnicodeEncodeError:
        logger.info("%s cannot hold the new text as %s, writing UTF-8", path, encoding)
        encoding = UTF8
        data = content.encode(UTF8)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return encoding
