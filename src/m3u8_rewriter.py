"""
HLS playlist rewriting.

Only URI-bearing parts of a playlist are touched: URI="..." attributes and
bare segment / sub-playlist lines. Everything else, including line
terminators, is copied through byte for byte.
"""

import re
from urllib.parse import quote, urljoin

PROXY_PATH = "/proxy"
PROXY_PARAM = "m3u8"

SEGMENT_EXTENSIONS = ("ts", "m3u8", "m4s", "aac", "mp4", "vtt")

URI_ATTRIBUTE_RE = re.compile(r'URI="([^"]+)"')
SEGMENT_LINE_RE = re.compile(
    r"^[^#].*\.(?:" + "|".join(SEGMENT_EXTENSIONS) + r")(?:\?.*)?$",
    re.IGNORECASE,
)
ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
# Only CR, LF and CRLF end a playlist line; other Unicode breaks are content
LINE_BREAK_RE = re.compile(r"(\r\n|\n|\r)")


def proxy_prefix(proxy_origin: str) -> str:
    return f"{proxy_origin.rstrip('/')}{PROXY_PATH}?{PROXY_PARAM}="


def build_proxy_url(url: str, proxy_origin: str) -> str:
    """Wrap an absolute upstream URL in a proxy URL."""
    return f"{proxy_prefix(proxy_origin)}{quote(url, safe='')}"


def resolve_uri(uri: str, base_url: str) -> str:
    """Resolve uri against the directory of base_url unless already absolute."""
    if ABSOLUTE_URL_RE.match(uri):
        return uri
    return urljoin(base_url, uri)


def rewrite_playlist(content: str, base_url: str, proxy_origin: str) -> str:
    """Point every segment, key and variant URI in content at the proxy.

    Relative references resolve against base_url's directory. URIs that are
    already proxy URLs are left alone, so rewriting twice is a no-op.
    """
    prefix = proxy_prefix(proxy_origin)

    def rewrite(uri: str) -> str:
        if uri.startswith(prefix):
            return uri
        return build_proxy_url(resolve_uri(uri, base_url), proxy_origin)

    def rewrite_attribute(match: re.Match) -> str:
        return f'URI="{rewrite(match.group(1))}"'

    out = []
    parts = LINE_BREAK_RE.split(content)
    # parts alternates line, terminator, line, ... and always ends with a line
    for body, ending in zip(parts[0::2], parts[1::2] + [""]):
        if SEGMENT_LINE_RE.match(body):
            body = rewrite(body.strip())
        else:
            body = URI_ATTRIBUTE_RE.sub(rewrite_attribute, body)
        out.append(body + ending)
    return "".join(out)
