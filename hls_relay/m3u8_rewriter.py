"""HLS M3U8 manifest rewriter that routes sub-resources back through the relay."""

import logging
import re
from enum import Enum
from urllib.parse import quote, urljoin, urlsplit

from hls_relay.exceptions import UnresolvableLineError

logger = logging.getLogger(__name__)

KEY_TAG_PREFIX = "#EXT-X-KEY:"
# "%" that does not start a valid %XX escape
STRAY_PERCENT_PATTERN = re.compile(r"%(?![0-9A-Fa-f]{2})")
BYTE_ORDER_MARK = "\ufeff"


class LineKind(str, Enum):
    """Classification of a single manifest line."""

    COMMENT = "comment"
    KEY_TAG = "key_tag"
    BLANK = "blank"
    URI = "uri"


def classify_line(line: str) -> LineKind:
    """
    Classify a manifest line.

    Args:
        line: Raw line, possibly with a trailing carriage return

    Returns:
        The line's kind
    """
    # A UTF-8 BOM may precede #EXTM3U on the first line
    line = line.lstrip(BYTE_ORDER_MARK)
    if not line.strip():
        return LineKind.BLANK
    if line.startswith(KEY_TAG_PREFIX):
        return LineKind.KEY_TAG
    if line.startswith("#"):
        return LineKind.COMMENT
    return LineKind.URI


def encode_component(value: str) -> str:
    """
    Percent-encode a value for use inside a query parameter.

    Existing %XX escapes are kept as they are; a "%" that starts no escape
    is encoded as %25.
    """
    return STRAY_PERCENT_PATTERN.sub("%25", quote(value, safe="%"))


def decode_manifest(body: bytes) -> str:
    """Decode a manifest body; undecodable bytes survive a round trip through encode_manifest."""
    return body.decode("utf-8", errors="surrogateescape")


def encode_manifest(text: str) -> bytes:
    """Encode a (rewritten) manifest back to bytes."""
    return text.encode("utf-8", errors="surrogateescape")


class M3U8Rewriter:
    """Rewrites M3U8 playlists so every referenced URI is fetched through the relay."""

    # Absolute URIs embedded in #EXT-X-KEY attributes
    ABSOLUTE_URI_PATTERN = re.compile(r'https?://[^\s"]+')

    def __init__(self, manifest_url: str, referer: str = "", origin: str = "", proxy_all: bool = False):
        """
        Initialize the rewriter.

        Args:
            manifest_url: URL the manifest was fetched from (base for relative references)
            referer: Referer override carried into every proxied reference
            origin: Origin override, carried only when non-empty
            proxy_all: Prefix already-absolute lines with manifest_url instead of rewriting them
        """
        self.manifest_url = manifest_url
        self.referer = referer
        self.origin = origin
        self.proxy_all = proxy_all

    def rewrite_manifest(self, content: str) -> str:
        """
        Rewrite all references in an M3U8 manifest to proxy through the relay.

        Lines are split on "\\n" only, so a CRLF manifest keeps its carriage
        returns and the output always has as many lines as the input.

        Args:
            content: Original M3U8 manifest content

        Returns:
            Rewritten manifest
        """
        return "\n".join(self._rewrite_line(line) for line in content.split("\n"))

    def _rewrite_line(self, line: str) -> str:
        """
        Rewrite a single line, passing it through unchanged if it cannot be resolved.

        Args:
            line: Original line from manifest

        Returns:
            Rewritten line
        """
        kind = classify_line(line)

        if kind in (LineKind.BLANK, LineKind.COMMENT):
            return line

        try:
            if kind is LineKind.KEY_TAG:
                return self._rewrite_key_line(line)
            return self._rewrite_uri_line(line)
        except ValueError as e:
            # UnresolvableLineError, or UnicodeEncodeError from undecodable bytes
            logger.debug(f"Passing manifest line through unchanged: {e}")
            return line

    def _rewrite_key_line(self, line: str) -> str:
        """
        Replace absolute URIs inside an #EXT-X-KEY tag, leaving other attributes alone.

        Args:
            line: Original #EXT-X-KEY line

        Returns:
            Rewritten line (unchanged if it embeds no absolute URI)
        """

        def replace_uri(match: re.Match) -> str:
            return f"?url={encode_component(match.group(0))}&referer={encode_component(self.referer)}"

        return self.ABSOLUTE_URI_PATTERN.sub(replace_uri, line)

    def _rewrite_uri_line(self, line: str) -> str:
        """
        Rewrite a segment or variant playlist reference.

        Args:
            line: Original URI line

        Returns:
            Proxied reference
        """
        if self.proxy_all and line.startswith("http"):
            return f"{self.manifest_url}?url={line}"

        reference = line.rstrip("\r")
        line_ending = line[len(reference):]

        resolved = self.resolve(reference.strip())
        return self.proxied_reference(resolved) + line_ending

    def resolve(self, reference: str) -> str:
        """
        Resolve a possibly relative reference against the manifest URL.

        Relative references replace exactly the last path segment of the
        manifest URL (standard URL join semantics).

        Args:
            reference: URI as written in the manifest

        Returns:
            Absolute URI

        Raises:
            UnresolvableLineError: If no absolute URI can be produced
        """
        try:
            parsed = urlsplit(reference)
            if parsed.scheme and parsed.netloc:
                absolute = reference
            else:
                absolute = urljoin(self.manifest_url, reference)

            resolved = urlsplit(absolute)
            resolved.port  # raises ValueError on a malformed port
        except ValueError as e:
            raise UnresolvableLineError(reference, str(e)) from e

        if not (resolved.scheme and resolved.netloc):
            raise UnresolvableLineError(reference)
        return absolute

    def proxied_reference(self, uri: str) -> str:
        """
        Build the relay-relative reference for an absolute URI.

        Args:
            uri: Absolute URI to fetch through the relay

        Returns:
            Query string of the form ?url=...&referer=...[&origin=...]
        """
        proxied = f"?url={encode_component(uri)}&referer={encode_component(self.referer)}"
        if self.origin:
            proxied += f"&origin={encode_component(self.origin)}"
        return proxied


def rewrite(body: str, manifest_url: str, referer: str = "", origin: str = "", proxy_all: bool = False) -> str:
    """Rewrite a manifest body; see M3U8Rewriter.rewrite_manifest."""
    rewriter = M3U8Rewriter(manifest_url, referer=referer, origin=origin, proxy_all=proxy_all)
    return rewriter.rewrite_manifest(body)
