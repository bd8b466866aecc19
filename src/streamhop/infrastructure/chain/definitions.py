"""Known embed servers and the hop chains behind them.

vidsrc.xyz::

    embed (vidsrc.xyz)  ->  relay (cloudnestra /rcp/)
                        ->  secondary relay (cloudnestra /prorcp/)
                        ->  cdn (HLS master manifest)

embed.su needs script execution on its first page; its manifest only shows
up in network traffic.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlsplit

from streamhop.domain.entities.resolution import ChainDefinition, HopSpec, ServerSpec
from streamhop.domain.entities.rules import (
    AttributeRule,
    ConstructRule,
    ManifestBodyRule,
    NetworkCaptureRule,
    RegexRule,
)
from streamhop.domain.exceptions import UnknownServerError

RELAY_ORIGIN = "https://cloudnestra.com"

# Affordances that trigger the next hop on player pages, most specific first.
PLAY_SELECTORS: tuple[str, ...] = (
    "#pl_but",
    "button#pl_but",
    ".fas.fa-play",
    "i.fas.fa-play",
    "button[class*='play']",
    ".play-button",
    "button[aria-label*='play' i]",
    ".btn-play",
    "#play-btn",
    ".vjs-big-play-button",
    ".jw-display-icon-container",
)

_CDN_HOP = HopSpec(
    name="cdn",
    rules=(ManifestBodyRule(),),
    referer_rule="origin",
    terminal=True,
)

VIDSRC_XYZ_CHAIN = ChainDefinition(
    name="vidsrc.xyz",
    version=3,
    hops=(
        HopSpec(
            name="embed",
            rules=(
                AttributeRule(
                    selector="iframe#player_iframe",
                    contains="/rcp/",
                    lowercase_host=True,
                    label="player-iframe",
                ),
                AttributeRule(
                    selector="iframe[src*='/rcp/']",
                    lowercase_host=True,
                    label="any-rcp-iframe",
                ),
                RegexRule(
                    pattern=r"""(?:data-)?src\s*=\s*["']?((?:https?:)?//[^"'\s>]+/rcp/[^"'\s>]+)""",
                    lowercase_host=True,
                    label="rcp-src-attribute",
                ),
                RegexRule(
                    pattern=r"""((?:https?:)?//(?:www\.)?cloudnestra\.com/rcp/[A-Za-z0-9+/=_%-]+)""",
                    lowercase_host=True,
                    label="rcp-bare",
                ),
            ),
            referer_rule="none",
            wait_selector="iframe#player_iframe",
        ),
        HopSpec(
            name="relay",
            rules=(
                RegexRule(
                    pattern=r"""src\s*:\s*['"](/prorcp/[^'"]+)['"]""",
                    base_url=RELAY_ORIGIN,
                    label="prorcp-script-src",
                ),
                RegexRule(
                    pattern=r"""['"]((?:https?:)?//[^'"\s]*?/prorcp/[^'"\s]+)['"]""",
                    label="prorcp-absolute",
                ),
                AttributeRule(
                    selector="iframe[src*='prorcp']",
                    base_url=RELAY_ORIGIN,
                    label="prorcp-iframe",
                ),
                ConstructRule(
                    source_pattern=r"/rcp/",
                    replacement="/prorcp/",
                    label="rcp-to-prorcp",
                ),
            ),
            wait_selector="#pl_but, iframe[src*='prorcp']",
            play_selectors=PLAY_SELECTORS,
        ),
        HopSpec(
            name="secondary_relay",
            rules=(
                RegexRule(
                    pattern=r"""(https?://[^\s"'<>]*shadowlandschronicles\.[a-z]+/[^\s"'<>]*master\.m3u8[^\s"'<>]*)""",
                    label="shadowlands-master",
                ),
                RegexRule(
                    pattern=r"""file\s*:\s*["']([^"']+\.m3u8[^"']*)["']""",
                    label="player-file",
                ),
                RegexRule(
                    pattern=r"""((?:https?:)?//[^\s"'<>]+\.m3u8[^\s"'<>]*)""",
                    label="any-m3u8",
                ),
                NetworkCaptureRule(
                    url_pattern=r"\.m3u8|/master",
                    prefer="shadowlands",
                    label="captured-manifest",
                ),
            ),
            wait_selector="video, #player",
            play_selectors=PLAY_SELECTORS,
        ),
        _CDN_HOP,
    ),
)

EMBED_SU_CHAIN = ChainDefinition(
    name="embed.su",
    version=1,
    hops=(
        HopSpec(
            name="embed",
            rules=(
                RegexRule(
                    pattern=r"""((?:https?:)?//[^\s"'<>]+\.m3u8[^\s"'<>]*)""",
                    label="any-m3u8",
                ),
                NetworkCaptureRule(
                    url_pattern=r"\.m3u8",
                    prefer="master",
                    label="captured-manifest",
                ),
            ),
            requires_render=True,
            referer_rule="none",
            wait_selector="iframe, video",
            play_selectors=PLAY_SELECTORS,
        ),
        _CDN_HOP,
    ),
)

DEFAULT_SERVERS: tuple[ServerSpec, ...] = (
    ServerSpec(
        name="vidsrc.xyz",
        movie_template="https://vidsrc.xyz/embed/movie?tmdb={id}",
        episode_template="https://vidsrc.xyz/embed/tv?tmdb={id}&season={season}&episode={episode}",
        chain=VIDSRC_XYZ_CHAIN,
    ),
    ServerSpec(
        name="embed.su",
        movie_template="https://embed.su/embed/movie/{id}",
        episode_template="https://embed.su/embed/tv/{id}/{season}/{episode}",
        chain=EMBED_SU_CHAIN,
    ),
)


class ServerRegistry:
    """Lookup of supported servers by name (case-insensitive)."""

    def __init__(self, servers: tuple[ServerSpec, ...] = DEFAULT_SERVERS) -> None:
        self._servers = {s.name.lower(): s for s in servers}

    @classmethod
    def with_overrides(
        cls,
        overrides: Mapping[str, Mapping[str, str]],
        servers: tuple[ServerSpec, ...] = DEFAULT_SERVERS,
    ) -> ServerRegistry:
        """Apply URL template overrides (e.g. a mirror domain) by server name."""
        patched: list[ServerSpec] = []
        for spec in servers:
            override = overrides.get(spec.name, {})
            patched.append(
                ServerSpec(
                    name=spec.name,
                    movie_template=override.get("movie_template", spec.movie_template),
                    episode_template=override.get("episode_template", spec.episode_template),
                    chain=spec.chain,
                )
            )
        return cls(tuple(patched))

    @property
    def names(self) -> list[str]:
        return sorted(self._servers)

    def get(self, name: str) -> ServerSpec:
        spec = self._servers.get(name.strip().lower())
        if spec is None:
            raise UnknownServerError(
                f"unsupported server {name!r} (supported: {', '.join(self.names)})"
            )
        return spec

    def chain_for_url(self, url: str) -> tuple[ServerSpec, ChainDefinition]:
        """Pick the chain for a direct initial URL by its hostname.

        The URL host must equal a template host or be a subdomain of one;
        a server name appearing elsewhere in the URL does not count.
        """
        hostname = (urlsplit(url.strip()).hostname or "").rstrip(".")
        if hostname:
            for spec in self._servers.values():
                for template in (spec.movie_template, spec.episode_template):
                    host = urlsplit(template or "").hostname
                    if host and (hostname == host or hostname.endswith("." + host)):
                        return spec, spec.chain
        raise UnknownServerError(f"no chain definition matches {url!r}")
