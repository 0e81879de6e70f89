"""Long description cleanup."""

from __future__ import annotations

from html import escape
from html.parser import HTMLParser


class _StyleStripper(HTMLParser):
    """Re-emits markup without inline styles and without any <font> attributes."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.parts: list[str] = []

    def _render_tag(self, tag: str, attrs: list[tuple[str, str | None]], closed: bool) -> str:
        if tag == "font":
            attrs = []
        kept = [(name, value) for name, value in attrs if name != "style"]
        rendered = "".join(
            f" {name}" if value is None else f' {name}="{escape(value, quote=True)}"'
            for name, value in kept
        )
        return f"<{tag}{rendered}{' /' if closed else ''}>"

    def handle_starttag(self, tag, attrs):
        self.parts.append(self._render_tag(tag, attrs, closed=False))

    def handle_startendtag(self, tag, attrs):
        self.parts.append(self._render_tag(tag, attrs, closed=True))

    def handle_endtag(self, tag):
        self.parts.append(f"</{tag}>")

    def handle_data(self, data):
        self.parts.append(data)

    def handle_entityref(self, name):
        self.parts.append(f"&{name};")

    def handle_charref(self, name):
        self.parts.append(f"&#{name};")

    def handle_comment(self, data):
        self.parts.append(f"<!--{data}-->")


def remove_styling(html: str | None) -> str:
    """Drop inline ``style`` attributes and neutralise ``<font>`` tags.

    Descriptions copied from other sites carry their styling along, which then
    clashes with the storefront theme.
    """
    if not html:
        return ""
    parser = _StyleStripper()
    parser.feed(html)
    parser.close()
    return "".join(parser.parts)
