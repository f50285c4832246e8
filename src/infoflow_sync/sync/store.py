"""Document store abstraction over the local Markdown vault.

The engine talks to the vault only through the ``DocumentStore`` protocol,
using vault-relative POSIX paths.  ``FileSystemDocumentStore`` is the
on-disk implementation; tests may substitute any object with the same
methods.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
import unicodedata
from pathlib import Path
from typing import Any, Protocol

from infoflow_sync.file_handler import read_note, resolve_vault_path, write_note
from infoflow_sync.sync.frontmatter import read_frontmatter

logger = logging.getLogger(__name__)

TRASH_DIR = ".trash"

_SLASHES_RE = re.compile(r"[\\/]+")


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path.

    Converts non-breaking spaces to spaces, collapses slash runs (either
    direction) to ``/``, strips leading and trailing slashes and applies
    NFC normalization.  The vault root is ``"/"``.
    """
    text = path.replace("\u00a0", " ").replace("\u202f", " ")
    text = _SLASHES_RE.sub("/", text).strip("/")
    text = unicodedata.normalize("NFC", text)
    return text or "/"


class DocumentStore(Protocol):
    """Operations the sync engine needs from a document store."""

    def exists(self, path: str) -> bool: ...

    def create_folder(self, path: str) -> None: ...

    def create(self, path: str, content: str) -> None: ...

    def read(self, path: str) -> str: ...

    def modify(self, path: str, content: str) -> None: ...

    def rename(self, old_path: str, new_path: str) -> None: ...

    def trash(self, path: str) -> None: ...

    def list_documents(self) -> list[str]: ...

    def get_frontmatter(self, path: str) -> dict[str, Any] | None: ...


class FileSystemDocumentStore:
    """``DocumentStore`` backed by a vault directory on disk.

    Hidden directories (``.trash``, ``.obsidian``, ``.infoflow_sync``...)
    are not listed.  Parsed frontmatter is cached per file and invalidated
    when the file's mtime or size changes.

    Args:
        root: Vault root directory; created if missing.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._encodings: dict[str, str] = {}
        self._frontmatter_cache: dict[
            str, tuple[int, int, dict[str, Any] | None]
        ] = {}

    def _abs(self, path: str) -> Path:
        normalized = normalize_path(path)
        if normalized == "/":
            return self.root
        return resolve_vault_path(self.root, normalized)

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def create_folder(self, path: str) -> None:
        self._abs(path).mkdir(parents=True, exist_ok=True)

    def create(self, path: str, content: str) -> None:
        """Create a new document.

        Raises:
            FileExistsError: If anything already exists at *path*.
        """
        target = self._abs(path)
        if target.exists():
            raise FileExistsError(f"Document already exists: {path}")
        write_note(target, content)
        logger.debug("Created %s", path)

    def read(self, path: str) -> str:
        note = read_note(self._abs(path))
        self._encodings[normalize_path(path)] = note.encoding
        return note.content

    def modify(self, path: str, content: str) -> None:
        """Overwrite an existing document, keeping its detected encoding."""
        target = self._abs(path)
        if not target.is_file():
            raise FileNotFoundError(f"Document not found: {path}")
        key = normalize_path(path)
        self._encodings[key] = write_note(
            target, content, self._encodings.get(key, "utf-8")
        )
        self._frontmatter_cache.pop(key, None)
        logger.debug("Modified %s", path)

    def rename(self, old_path: str, new_path: str) -> None:
        """Move a document.

        Raises:
            FileNotFoundError: If *old_path* does not exist.
            FileExistsError: If *new_path* is taken.
        """
        source = self._abs(old_path)
        target = self._abs(new_path)
        if not source.exists():
            raise FileNotFoundError(f"Document not found: {old_path}")
        if target.exists():
            raise FileExistsError(f"Document already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        old_key, new_key = normalize_path(old_path), normalize_path(new_path)
        self._frontmatter_cache.pop(old_key, None)
        if old_key in self._encodings:
            self._encodings[new_key] = self._encodings.pop(old_key)
        logger.debug("Renamed %s -> %s", old_path, new_path)

    def trash(self, path: str) -> None:
        """Move a document into the vault's ``.trash`` folder."""
        source = self._abs(path)
        if not source.exists():
            raise FileNotFoundError(f"Document not found: {path}")
        trash_dir = self.root / TRASH_DIR
        trash_dir.mkdir(parents=True, exist_ok=True)
        target = trash_dir / source.name
        if target.exists():
            target = trash_dir / f"{source.stem} {int(time.time() * 1000)}{source.suffix}"
        shutil.move(str(source), str(target))
        self._frontmatter_cache.pop(normalize_path(path), None)
        logger.debug("Trashed %s", path)

    def list_documents(self) -> list[str]:
        """Return every Markdown document in the vault, sorted by path."""
        paths: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.lower().endswith(".md"):
                    full = Path(dirpath) / name
                    paths.append(full.relative_to(self.root).as_posix())
        return sorted(paths)

    def get_frontmatter(self, path: str) -> dict[str, Any] | None:
        """Return the parsed frontmatter of *path* (``None`` if absent or unreadable)."""
        key = normalize_path(path)
        target = self._abs(key)
        try:
            stat = target.stat()
        except OSError:
            return None
        if not target.is_file():
            return None

        cached = self._frontmatter_cache.get(key)
        if cached and cached[0] == stat.st_mtime_ns and cached[1] == stat.st_size:
            return cached[2]

        try:
            content = read_note(target).content
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return None
        frontmatter = read_frontmatter(content)
        self._frontmatter_cache[key] = (
            stat.st_mtime_ns,
            stat.st_size,
            frontmatter,
        )
        return frontmatter
