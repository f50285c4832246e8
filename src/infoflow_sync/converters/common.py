"""Common types and utilities for content conversion."""

from dataclasses import dataclass, field

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Highlighters mark code blocks with classes such as ``language-sh`` or
# ``lang-js``.  Markdown fences use a single canonical identifier, so
# aliases are folded here.  Unknown languages pass through unchanged.
# =============================================================================

_LANGUAGE_ALIASES: dict[str, str] = {
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "console": "bash",
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "c++": "cpp",
    "yml": "yaml",
    "plaintext": "text",
    "plain": "text",
    "txt": "text",
}

_CLASS_PREFIXES = ("language-", "lang-", "highlight-source-", "highlight-")


@dataclass
class ConversionResult:
    """Result of content conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('html' or 'text')
        target_format: Format of output text ('markdown')
        converted: True if conversion performed, False if pass-through
        warnings: List of warnings about lossy conversions
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)


def looks_like_html(text: str) -> bool:
    """Cheap check for HTML content: a closing or self-closing tag."""
    return "</" in text or "/>" in text


def normalize_code_language(lang: str) -> str:
    """Map a highlighter language name to its canonical fence identifier.

    Examples:
        >>> normalize_code_language("sh")
        'bash'
        >>> normalize_code_language("python")
        'python'
    """
    return _LANGUAGE_ALIASES.get(lang.lower(), lang)


def language_from_class(class_attr: str | None) -> str:
    """Extract a fence language from an HTML ``class`` attribute.

    Returns an empty string when no language class is present.
    """
    if not class_attr:
        return ""
    for cls in class_attr.split():
        for prefix in _CLASS_PREFIXES:
            if cls.startswith(prefix) and len(cls) > len(prefix):
                return normalize_code_language(cls[len(prefix) :])
    return ""
