"""HTML to Markdown conversion built on lxml.

InfoFlow stores saved web pages as HTML.  Notes are Markdown, so record
content is converted before it reaches the note template.  The converter is
best-effort: unknown elements contribute their text, and scripts and styles
are dropped.
"""

import logging
import re

from lxml import etree
from lxml import html as lxml_html

from .common import ConversionResult, language_from_class, looks_like_html

logger = logging.getLogger(__name__)

_BLOCK_TAGS = frozenset(
    {
        "address",
        "article",
        "aside",
        "blockquote",
        "dd",
        "details",
        "div",
        "dl",
        "dt",
        "figcaption",
        "figure",
        "footer",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "li",
        "main",
        "nav",
        "ol",
        "p",
        "pre",
        "section",
        "summary",
        "table",
        "ul",
    }
)
_SKIP_TAGS = frozenset(
    {"script", "style", "head", "noscript", "template", "title", "meta", "link"}
)
_LIST_TAGS = frozenset({"ul", "ol"})

_WS_RE = re.compile(r"[ \t\r\n\f]+")
_ESCAPE_RE = re.compile(r"([\\*_`\[\]])")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_HARD_BREAK = "  \n"


def _escape(text: str) -> str:
    return _ESCAPE_RE.sub(r"\\\1", text)


def _wrap(content: str, marker: str) -> str:
    """Wrap inline *content* in *marker*, keeping edge spaces outside."""
    core = content.strip()
    if not core:
        return content
    lead = " " if content[:1].isspace() else ""
    trail = " " if content[-1:].isspace() else ""
    return f"{lead}{marker}{core}{marker}{trail}"


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


class HtmlToMarkdownConverter:
    """Converter from an HTML fragment or document to Markdown."""

    def __init__(self):
        self.warnings: list[str] = []

    def convert(self, html_text: str) -> ConversionResult:
        """
        Convert HTML text to Markdown.

        Args:
            html_text: HTML fragment or full document

        Returns:
            ConversionResult with Markdown text and warnings about lossy conversions

        Raises:
            lxml.etree.ParserError: If the input cannot be parsed at all.
        """
        self.warnings = []
        root = self._parse(html_text)
        blocks = [text for _, text in self._blocks(root)]
        markdown = _BLANK_LINES_RE.sub("\n\n", "\n\n".join(blocks)).strip()
        return ConversionResult(
            text=markdown,
            source_format="html",
            target_format="markdown",
            converted=True,
            warnings=self.warnings,
        )

    def _parse(self, html_text: str):
        if re.search(r"<(html|body)[\s>]", html_text, re.IGNORECASE):
            document = lxml_html.document_fromstring(html_text)
            body = document.find("body")
            return body if body is not None else document
        return lxml_html.fragment_fromstring(html_text, create_parent="div")

    # ------------------------------------------------------------------
    # Block level
    # ------------------------------------------------------------------

    def _blocks(self, element) -> list[tuple[str, str]]:
        """Render the children of *element* as (tag, markdown) blocks."""
        blocks: list[tuple[str, str]] = []
        inline: list[str] = [self._text(element.text)]

        def flush() -> None:
            paragraph = self._finish_inline("".join(inline))
            if paragraph:
                blocks.append(("p", paragraph))
            inline.clear()

        for child in element:
            if not isinstance(child.tag, str):
                # comments and processing instructions
                inline.append(self._text(child.tail))
                continue
            tag = child.tag.lower()
            if tag in _SKIP_TAGS:
                pass
            elif tag in _BLOCK_TAGS:
                flush()
                rendered = self._block(child, tag)
                if rendered:
                    blocks.append((tag, rendered))
            else:
                inline.append(self._inline(child, tag))
            inline.append(self._text(child.tail))
        flush()
        return blocks

    def _block(self, element, tag: str) -> str:
        match tag:
            case "h1" | "h2" | "h3" | "h4" | "h5" | "h6":
                content = self._finish_inline(self._inline_children(element))
                if not content:
                    return ""
                heading = content.replace(_HARD_BREAK, " ")
                return f"{'#' * int(tag[1])} {heading}"
            case "hr":
                return "---"
            case "pre":
                return self._code_block(element)
            case "blockquote":
                inner = "\n\n".join(text for _, text in self._blocks(element))
                if not inner:
                    return ""
                return "\n".join(
                    f"> {line}" if line else ">" for line in inner.split("\n")
                )
            case "ul" | "ol":
                return self._list(element, ordered=tag == "ol")
            case "li":
                return self._list_item(element, "-")
            case "table":
                return self._table(element)
            case "dt":
                content = self._finish_inline(self._inline_children(element))
                return _wrap(content, "**") if content else ""
            case _:
                return "\n\n".join(text for _, text in self._blocks(element))

    def _code_block(self, element) -> str:
        code = element.text_content()
        lang = language_from_class(element.get("class"))
        code_el = element.find("code")
        if code_el is not None and not lang:
            lang = language_from_class(code_el.get("class"))
        code = code.strip("\n")
        fence = "```"
        while fence in code:
            fence += "`"
        return f"{fence}{lang}\n{code}\n{fence}"

    def _list(self, element, ordered: bool) -> str:
        items: list[str] = []
        index = 1
        if ordered:
            try:
                index = int(element.get("start", "1"))
            except ValueError:
                index = 1
        for child in element:
            if not isinstance(child.tag, str):
                continue
            if child.tag.lower() != "li":
                rendered = self._block(child, child.tag.lower())
                if rendered:
                    items.append(rendered)
                continue
            marker = f"{index}." if ordered else "-"
            item = self._list_item(child, marker)
            if item:
                items.append(item)
            index += 1
        return "\n".join(items)

    def _list_item(self, element, marker: str) -> str:
        parts: list[str] = []
        for tag, text in self._blocks(element):
            if parts:
                parts.append("\n" if tag in _LIST_TAGS else "\n\n")
            parts.append(text)
        body = "".join(parts)
        if not body:
            return ""
        pad = " " * (len(marker) + 1)
        first, _, rest = body.partition("\n")
        if not rest:
            return f"{marker} {first}"
        return f"{marker} {first}\n{_indent(rest, pad)}"

    def _table(self, element) -> str:
        rows: list[list[str]] = []
        for row in element.iter("tr"):
            cells = []
            for cell in row:
                if not isinstance(cell.tag, str) or cell.tag.lower() not in (
                    "td",
                    "th",
                ):
                    continue
                if cell.get("colspan") or cell.get("rowspan"):
                    warning = "Merged table cells flattened"
                    if warning not in self.warnings:
                        self.warnings.append(warning)
                text = self._finish_inline(self._inline_children(cell))
                cells.append(text.replace(_HARD_BREAK, " ").replace("|", "\\|"))
            if cells:
                rows.append(cells)
        if not rows:
            return ""

        width = max(len(r) for r in rows)
        rows = [r + [""] * (width - len(r)) for r in rows]
        lines = [
            "| " + " | ".join(rows[0]) + " |",
            "| " + " | ".join(["---"] * width) + " |",
        ]
        lines.extend("| " + " | ".join(r) + " |" for r in rows[1:])
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Inline level
    # ------------------------------------------------------------------

    def _text(self, text: str | None) -> str:
        if not text:
            return ""
        return _escape(_WS_RE.sub(" ", text))

    def _inline_children(self, element) -> str:
        parts = [self._text(element.text)]
        for child in element:
            if isinstance(child.tag, str) and child.tag.lower() not in _SKIP_TAGS:
                parts.append(self._inline(child, child.tag.lower()))
            parts.append(self._text(child.tail))
        return "".join(parts)

    def _inline(self, element, tag: str) -> str:
        match tag:
            case "br":
                return "\n"
            case "strong" | "b":
                return _wrap(self._inline_children(element), "**")
            case "em" | "i" | "cite":
                return _wrap(self._inline_children(element), "_")
            case "del" | "s" | "strike":
                return _wrap(self._inline_children(element), "~~")
            case "code" | "kbd" | "samp":
                code = _WS_RE.sub(" ", element.text_content())
                if not code:
                    return ""
                ticks = "``" if "`" in code else "`"
                pad = " " if code.startswith("`") or code.endswith("`") else ""
                return f"{ticks}{pad}{code}{pad}{ticks}"
            case "a":
                label = self._inline_children(element).strip()
                href = (element.get("href") or "").strip()
                if not href:
                    return label
                title = element.get("title")
                suffix = f' "{title}"' if title else ""
                return f"[{label or href}]({href.replace(' ', '%20')}{suffix})"
            case "img":
                src = (element.get("src") or "").strip()
                if not src:
                    return ""
                alt = _escape(element.get("alt") or "")
                return f"![{alt}]({src.replace(' ', '%20')})"
            case _:
                return self._inline_children(element)

    def _finish_inline(self, text: str) -> str:
        text = re.sub(r" {2,}", " ", text)
        lines = [line.strip() for line in text.split("\n")]
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()
        return _HARD_BREAK.join(lines)


def html_to_markdown(html_text: str) -> str:
    """Convert an HTML string to Markdown."""
    return HtmlToMarkdownConverter().convert(html_text).text


def convert_content(content: str) -> str:
    """Return *content* as Markdown.

    Content that does not look like HTML passes through unchanged.  If the
    HTML cannot be converted the raw content is returned.
    """
    if not looks_like_html(content):
        return content
    try:
        result = HtmlToMarkdownConverter().convert(content)
    except (etree.LxmlError, ValueError) as exc:
        logger.warning("Error converting HTML to Markdown: %s", exc)
        return content
    for warning in result.warnings:
        logger.debug("HTML conversion: %s", warning)
    return result.text
