"""CSS-selector-based attribute extraction.

Thin BeautifulSoup helpers used by attribute rules.  Selectors are tried
with fallbacks: the first selector that yields at least one usable value
wins, which keeps rules resilient against renamed ids or extra wrappers.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML string into a BeautifulSoup tree (``lxml`` parser)."""
    return BeautifulSoup(html, "lxml")


def extract_all_attrs(
    root: BeautifulSoup | Tag,
    selector: str,
    attr: str,
    *fallback_selectors: str,
) -> list[str]:
    """Extract *attr* from **all** elements matching the first fruitful selector.

    Attribute quoting (single, double, unquoted) is normalized by the parser.
    """
    for sel in (selector, *fallback_selectors):
        values = [
            str(tag.get(attr)).strip()
            for tag in root.select(sel)
            if tag.get(attr)
        ]
        if values:
            return values
    return []
