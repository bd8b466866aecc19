"""Pattern matcher: locate a hop's successor URL in page content.

Pure functions, no I/O.  ``find_candidate`` evaluates content rules in
declared order and returns the first match that survives normalization;
construct rules are only consulted after every content rule missed.
``match_network`` evaluates network-capture rules against response URLs
observed by a rendered page.

Every URL that leaves this module has an ``http``/``https`` scheme.
"""

from __future__ import annotations

import html as html_lib
import re
from collections.abc import Iterable, Sequence
from urllib.parse import unquote, urljoin, urlsplit

from bs4 import BeautifulSoup

from streamhop.domain.entities.rules import (
    AttributeRule,
    Candidate,
    ConstructRule,
    ManifestBodyRule,
    MatchOutcome,
    NetworkCaptureRule,
    NotFound,
    RegexRule,
    Rule,
)
from streamhop.infrastructure.common.html_selectors import (
    extract_all_attrs,
    parse_html,
)

# Characters (raw or percent-encoded) that can never continue a URL we care
# about.  Anything from the first one onwards is markup residue.
_TERMINATOR = re.compile(
    r"""%3[CE]|%2[27]|%20|%0[AD]|&quot;|&#0?39;|&lt;|&gt;|[\s<>"'`\\]""",
    re.IGNORECASE,
)
_SCHEME_HOST = re.compile(
    r"(?P<scheme>https?)://(?P<host>[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?)"
    r"(?P<port>:\d{1,5})?",
    re.IGNORECASE,
)
_BARE_HOST = re.compile(r"^[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+(?:[:/?#]|$)")
_ENCODED_SCHEME = re.compile(r"^https?%3A%2F%2F", re.IGNORECASE)
# Only ``;``-terminated references: ``&copy=1`` in a query string is a parameter.
_ENTITY = re.compile(r"&(?:amp|quot|apos|lt|gt|#\d+|#x[0-9a-f]+);", re.IGNORECASE)


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------


def _origin(url: str | None) -> str | None:
    if not url:
        return None
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def normalize_url(
    raw: str,
    *,
    source_url: str | None = None,
    base_url: str | None = None,
    lowercase_host: bool = False,
) -> str | None:
    """Turn a raw match into an absolute http(s) URL, or ``None``.

    - protocol-relative (``//host/x``) becomes ``https://host/x``
    - site-relative (``/x``) is joined to *base_url* or the source origin
    - bare hosts (``host.tld/x``) get ``https://``
    - ``;``-terminated entities (``&amp;``) are decoded, ``\\/`` unescaped
    - the URL is cut at the first terminator after the host
      (longest valid prefix)
    """
    candidate = raw.strip().strip("'\"`")
    if not candidate:
        return None

    candidate = candidate.replace("\\/", "/")
    if _ENCODED_SCHEME.match(candidate):
        candidate = unquote(candidate)
    if "&" in candidate:
        candidate = _ENTITY.sub(lambda m: html_lib.unescape(m.group(0)), candidate)

    if candidate.startswith("//"):
        candidate = "https:" + candidate
    elif candidate.startswith("/"):
        base = base_url or _origin(source_url)
        if base is None:
            return None
        candidate = urljoin(base, candidate)
    elif not re.match(r"https?://", candidate, re.IGNORECASE):
        if _BARE_HOST.match(candidate):
            candidate = "https://" + candidate
        elif source_url and _origin(source_url) and not re.match(
            r"^[a-z][a-z0-9+.-]*:", candidate, re.IGNORECASE
        ):
            candidate = urljoin(source_url, candidate)
        else:
            return None

    m = _SCHEME_HOST.match(candidate)
    if m is None:
        return None

    host = m.group("host")
    if "." not in host and host.lower() != "localhost":
        return None
    if lowercase_host:
        host = host.lower()

    rest = candidate[m.end():]
    cut = _TERMINATOR.search(rest)
    if cut is not None:
        rest = rest[: cut.start()]
    if rest and rest[0] not in "/?#":
        # Host was followed by junk (``host.com%3Ejunk`` already cut above).
        return None

    return f"{m.group('scheme').lower()}://{host}{m.group('port') or ''}{rest}"


def stream_type_for(url: str) -> str:
    """Guess the stream type of a terminal URL (``mp4`` or ``hls``)."""
    path = urlsplit(url).path.lower()
    return "mp4" if path.endswith(".mp4") else "hls"


# ------------------------------------------------------------------
# Rule dispatch
# ------------------------------------------------------------------


def _rule_label(rule: Rule) -> str:
    return rule.label or type(rule).__name__


def _apply_regex(rule: RegexRule, content: str, source_url: str | None) -> str | None:
    for match in re.finditer(rule.pattern, content, rule.flags):
        raw = match.group(rule.group)
        if not raw:
            continue
        url = normalize_url(
            raw,
            source_url=source_url,
            base_url=rule.base_url,
            lowercase_host=rule.lowercase_host,
        )
        if url:
            return url
    return None


def _apply_attribute(
    rule: AttributeRule, soup: BeautifulSoup, source_url: str | None
) -> str | None:
    for raw in extract_all_attrs(soup, rule.selector, rule.attribute):
        if rule.contains and rule.contains not in raw:
            continue
        url = normalize_url(
            raw,
            source_url=source_url,
            base_url=rule.base_url,
            lowercase_host=rule.lowercase_host,
        )
        if url:
            return url
    return None


def _apply_manifest(rule: ManifestBodyRule, content: str, source_url: str | None) -> str | None:
    if not source_url:
        return None
    head = content.lstrip("\ufeff \t\r\n")[:64]
    if any(head.startswith(marker) for marker in rule.markers):
        return normalize_url(source_url)
    return None


def _apply_construct(rule: ConstructRule, source_url: str | None) -> str | None:
    if not source_url or not re.search(rule.source_pattern, source_url):
        return None
    constructed = re.sub(rule.source_pattern, rule.replacement, source_url, count=1)
    if constructed == source_url:
        return None
    return normalize_url(constructed)


class _LazySoup:
    """Parse the document at most once, and only if an attribute rule asks."""

    def __init__(self, content: str) -> None:
        self._content = content
        self._soup: BeautifulSoup | None = None

    def get(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = parse_html(self._content)
        return self._soup


def apply_rule(
    rule: Rule,
    content: str,
    *,
    source_url: str | None = None,
    soup: _LazySoup | None = None,
) -> Candidate | None:
    """Evaluate one content rule.  Network-capture rules never match content."""
    if isinstance(rule, RegexRule):
        url = _apply_regex(rule, content, source_url)
        method = "html"
    elif isinstance(rule, AttributeRule):
        url = _apply_attribute(rule, (soup or _LazySoup(content)).get(), source_url)
        method = "html"
    elif isinstance(rule, ManifestBodyRule):
        url = _apply_manifest(rule, content, source_url)
        method = "manifest"
    elif isinstance(rule, ConstructRule):
        url = _apply_construct(rule, source_url)
        method = "constructed"
    elif isinstance(rule, NetworkCaptureRule):
        return None
    else:  # pragma: no cover
        raise TypeError(f"unknown rule type: {type(rule)!r}")

    if url is None:
        return None
    return Candidate(url=url, method=method, rule=_rule_label(rule))  # type: ignore[arg-type]


def find_candidate(
    content: str,
    rules: Sequence[Rule],
    *,
    source_url: str | None = None,
) -> MatchOutcome:
    """Return the first normalized candidate URL, or ``NotFound``."""
    soup = _LazySoup(content)
    content_rules = [r for r in rules if not isinstance(r, (ConstructRule, NetworkCaptureRule))]
    fallback_rules = [r for r in rules if isinstance(r, ConstructRule)]

    for rule in (*content_rules, *fallback_rules):
        candidate = apply_rule(rule, content, source_url=source_url, soup=soup)
        if candidate is not None:
            return candidate

    return NotFound(rules_tried=len(content_rules) + len(fallback_rules))


def match_network(urls: Iterable[str], rules: Sequence[Rule]) -> MatchOutcome:
    """Match captured response URLs against the hop's network-capture rules."""
    observed = list(urls)
    network_rules = [r for r in rules if isinstance(r, NetworkCaptureRule)]

    for rule in network_rules:
        hits = [u for u in observed if re.search(rule.url_pattern, u, re.IGNORECASE)]
        if rule.prefer:
            hits.sort(key=lambda u: rule.prefer not in u)  # type: ignore[operator]
        for hit in hits:
            url = normalize_url(hit)
            if url:
                return Candidate(url=url, method="network", rule=_rule_label(rule))

    return NotFound(
        rules_tried=len(network_rules),
        reason="no captured response matched" if network_rules else "no network rules",
    )
