"""
Tests for the HTML to Markdown converter used for InfoFlow record content.
"""

import unittest
from unittest.mock import patch

from lxml import etree

from infoflow_sync.converters import (
    ConversionResult,
    HtmlToMarkdownConverter,
    convert_content,
    html_to_markdown,
    language_from_class,
    looks_like_html,
    normalize_code_language,
)


class TestHtmlToMarkdown(unittest.TestCase):
    """Test HTML to Markdown conversion."""

    def test_paragraph_with_bold(self):
        result = html_to_markdown("<p>Hello <strong>world</strong></p>")
        self.assertEqual(result, "Hello **world**")

    def test_emphasis_and_strike(self):
        result = html_to_markdown("<p><em>a</em> <del>b</del></p>")
        self.assertEqual(result, "_a_ ~~b~~")

    def test_headings(self):
        result = html_to_markdown("<h2>Title</h2><p>text</p>")
        self.assertEqual(result, "## Title\n\ntext")

    def test_unordered_list(self):
        result = html_to_markdown("<ul><li>one</li><li>two</li></ul>")
        self.assertEqual(result, "- one\n- two")

    def test_ordered_list_start(self):
        result = html_to_markdown('<ol start="3"><li>a</li><li>b</li></ol>')
        self.assertEqual(result, "3. a\n4. b")

    def test_code_block_language(self):
        result = html_to_markdown(
            '<pre><code class="language-sh">echo hi\n</code></pre>'
        )
        self.assertEqual(result, "```bash\necho hi\n```")

    def test_code_block_containing_fence(self):
        result = html_to_markdown("<pre>```x```</pre>")
        self.assertEqual(result, "````\n```x```\n````")

    def test_inline_code(self):
        result = html_to_markdown("<p>run <code>ls -la</code></p>")
        self.assertEqual(result, "run `ls -la`")

    def test_link(self):
        result = html_to_markdown('<p><a href="https://x.com/a b">site</a></p>')
        self.assertEqual(result, "[site](https://x.com/a%20b)")

    def test_image(self):
        result = html_to_markdown('<p><img src="/i.png" alt="pic"></p>')
        self.assertEqual(result, "![pic](/i.png)")

    def test_markdown_characters_escaped(self):
        result = html_to_markdown("<p>a*b_c</p>")
        self.assertEqual(result, "a\\*b\\_c")

    def test_blockquote(self):
        result = html_to_markdown(
            "<blockquote><p>q1</p><p>q2</p></blockquote>"
        )
        self.assertEqual(result, "> q1\n>\n> q2")

    def test_table(self):
        result = html_to_markdown(
            "<table><tr><th>A</th><th>B</th></tr>"
            "<tr><td>1</td><td>2</td></tr></table>"
        )
        self.assertEqual(result, "| A | B |\n| --- | --- |\n| 1 | 2 |")

    def test_line_break(self):
        result = html_to_markdown("<p>a<br>b</p>")
        self.assertEqual(result, "a  \nb")

    def test_scripts_dropped(self):
        result = html_to_markdown("<p>x</p><script>alert(1)</script>")
        self.assertEqual(result, "x")

    def test_full_document(self):
        result = html_to_markdown(
            "<html><head><title>T</title></head>"
            "<body><h1>Doc</h1></body></html>"
        )
        self.assertEqual(result, "# Doc")

    def test_merged_cells_warn(self):
        result = HtmlToMarkdownConverter().convert(
            '<table><tr><td colspan="2">x</td></tr></table>'
        )
        self.assertIsInstance(result, ConversionResult)
        self.assertTrue(result.converted)
        self.assertIn("Merged table cells flattened", result.warnings)


class TestConvertContent(unittest.TestCase):
    def test_plain_text_passes_through(self):
        self.assertEqual(convert_content("a < b and *c*"), "a < b and *c*")

    def test_html_converted(self):
        self.assertEqual(convert_content("<p>Hi</p>"), "Hi")

    def test_parse_failure_returns_raw(self):
        with patch(
            "infoflow_sync.converters.html_to_markdown.HtmlToMarkdownConverter.convert",
            side_effect=etree.ParserError("bad"),
        ):
            self.assertEqual(convert_content("<p>x</p>"), "<p>x</p>")


class TestCommon(unittest.TestCase):
    def test_looks_like_html(self):
        self.assertTrue(looks_like_html("<p>x</p>"))
        self.assertTrue(looks_like_html("<br/>"))
        self.assertFalse(looks_like_html("1 < 2"))

    def test_normalize_code_language(self):
        self.assertEqual(normalize_code_language("SH"), "bash")
        self.assertEqual(normalize_code_language("rust"), "rust")

    def test_language_from_class(self):
        self.assertEqual(language_from_class("hl lang-js"), "javascript")
        self.assertEqual(language_from_class("language-"), "")
        self.assertEqual(language_from_class(None), "")


if __name__ == "__main__":
    unittest.main()
