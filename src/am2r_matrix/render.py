"""Markdown to Matrix HTML rendering."""

from __future__ import annotations

from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml

MATRIX_HTML_FORMAT = "org.matrix.custom.html"

_md = MarkdownIt("commonmark", {"html": False, "breaks": True}).enable(
    ["strikethrough", "table"]
)


def render_html(text: str) -> str:
    return _md.render(text).strip()


def _is_plain(text: str, rendered: str) -> bool:
    plain = escapeHtml(text.strip()).replace("\n", "<br />\n")
    return rendered == f"<p>{plain}</p>"


def prepare_markdown(text: str) -> tuple[str, str | None]:
    """Return (body, formatted_body) for an m.text markdown message.

    The body keeps the markdown source as the plain-text fallback. No
    formatted body is produced when the text carries no formatting.
    """
    rendered = render_html(text)
    if not rendered or _is_plain(text, rendered):
        return text, None
    return text, rendered
