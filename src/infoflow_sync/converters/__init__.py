"""Content conversion from InfoFlow HTML to Markdown."""

from .common import (
    ConversionResult,
    language_from_class,
    looks_like_html,
    normalize_code_language,
)
from .html_to_markdown import (
    HtmlToMarkdownConverter,
    convert_content,
    html_to_markdown,
)

__all__ = [
    "ConversionResult",
    "HtmlToMarkdownConverter",
    "convert_content",
    "html_to_markdown",
    "language_from_class",
    "looks_like_html",
    "normalize_code_language",
]
