"""Pattern rules describing how a hop's successor URL is located.

Rules are pure value objects.  Evaluation lives in
``streamhop.infrastructure.chain.matcher`` so that the domain stays free of
HTML parsers and regex tuning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Union

MatchMethod = Literal["html", "network", "constructed", "manifest"]


@dataclass(frozen=True)
class RegexRule:
    """Literal regex over the raw page text.

    ``group`` selects the capture holding the URL.  Relative matches are
    joined against ``base_url`` (or the page's own origin when unset).
    """

    pattern: str
    group: int | str = 1
    base_url: str | None = None
    lowercase_host: bool = False
    flags: int = re.IGNORECASE
    label: str = ""


@dataclass(frozen=True)
class AttributeRule:
    """CSS selector + attribute extraction (``iframe#player src`` etc.)."""

    selector: str
    attribute: str = "src"
    contains: str | None = None
    base_url: str | None = None
    lowercase_host: bool = False
    label: str = ""


@dataclass(frozen=True)
class NetworkCaptureRule:
    """Matches URLs of responses observed while a rendered hop was open.

    A captured URL matches when ``url_pattern`` is found in it.  URLs
    containing ``prefer`` win over other matches.
    """

    url_pattern: str
    prefer: str | None = None
    label: str = ""


@dataclass(frozen=True)
class ManifestBodyRule:
    """The fetched body *is* the terminal manifest; the source URL is the result."""

    markers: tuple[str, ...] = ("#EXTM3U",)
    label: str = "manifest-body"


@dataclass(frozen=True)
class ConstructRule:
    """Best-effort "probable next URL" built by substituting the source URL.

    Only evaluated after every content rule of the hop missed.  A hit is
    recorded with ``match_method="constructed"``.
    """

    source_pattern: str
    replacement: str
    label: str = "constructed"


Rule = Union[RegexRule, AttributeRule, NetworkCaptureRule, ManifestBodyRule, ConstructRule]


@dataclass(frozen=True)
class Candidate:
    """A normalized next-hop URL plus how it was found."""

    url: str
    method: MatchMethod
    rule: str = ""


@dataclass(frozen=True)
class NotFound:
    """Typed "no rule matched" outcome (not an exception)."""

    rules_tried: int
    reason: str = "no rule matched"


MatchOutcome = Union[Candidate, NotFound]
