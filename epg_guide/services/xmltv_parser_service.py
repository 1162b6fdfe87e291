"""
XMLTV parsing

Two interchangeable strategies produce the same RawChannel/RawProgramme
records: a structural lxml parser for well-formed input and a resilient
block scanner for huge or degraded input.
"""
from datetime import tzinfo
from html import unescape
from typing import Iterator, Optional, Protocol
import logging
import re

from lxml import etree # type: ignore

from epg_guide.errors import InvalidDocument, MalformedTimestamp
from epg_guide.services.fetch_types import ParsedDocument, ParserStrategy, RawChannel, RawProgramme
from epg_guide.utils.text import LocalizedText, extract_text, first_text
from epg_guide.utils.timezone import parse_xmltv_time

logger = logging.getLogger(__name__)

DEFAULT_RESILIENT_THRESHOLD_BYTES = 50 * 1024 * 1024


class DocumentParser(Protocol):
    """Parses one raw XMLTV document"""

    def parse(self, payload: bytes | str) -> ParsedDocument:
        ...


def _build_programme(
    channel_id: Optional[str],
    start_str: Optional[str],
    stop_str: Optional[str],
    titles: list[LocalizedText],
    descriptions: list[LocalizedText],
    categories: list[LocalizedText],
    actors: list[LocalizedText],
    naive_tz: tzinfo | None,
) -> Optional[RawProgramme]:
    """Validate extracted fields and build a programme, None when unusable"""
    title = first_text(titles).strip()

    # Skip if missing required fields
    if not channel_id or not start_str or not stop_str or not title:
        return None

    # Parse times (skip invalid formats)
    try:
        start_time = parse_xmltv_time(start_str, naive_tz)
        stop_time = parse_xmltv_time(stop_str, naive_tz)
    except MalformedTimestamp as exc:
        logger.debug("Skipping programme '%s' on %s: %s", title, channel_id, exc)
        return None

    if stop_time < start_time:
        logger.debug("Skipping programme '%s' on %s: stop before start", title, channel_id)
        return None

    category_texts = [extract_text(node).strip() for node in categories]

    return RawProgramme(
        channel_id=channel_id.strip(),
        start=start_time,
        stop=stop_time,
        title=title,
        description=first_text(descriptions).strip(),
        raw_category_text=", ".join(text for text in category_texts if text),
        actors=tuple(name for name in (extract_text(node).strip() for node in actors) if name),
    )


class StructuralXmltvParser:
    """Tree-based parser for trusted, well-formed XMLTV documents"""

    def __init__(self, naive_tz: tzinfo | None = None):
        self.naive_tz = naive_tz

    def parse(self, payload: bytes | str) -> ParsedDocument:
        """
        Parse an XMLTV document

        Args:
            payload: Raw XML bytes (str is encoded as UTF-8)

        Returns:
            ParsedDocument with channels and programmes in document order

        Raises:
            InvalidDocument: If XML is malformed, the root is not <tv>, or it has
                neither <channel> nor <programme> children
        """
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        logger.debug("Loading XML document (%s bytes)...", len(data))

        parser = etree.XMLParser(huge_tree=True, resolve_entities=False, no_network=True, remove_comments=True)
        try:
            root = etree.fromstring(data, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.error("XML parsing error: %s", e)
            raise InvalidDocument(f"Malformed XMLTV document: {e}") from e

        if root is None or root.tag != "tv":
            raise InvalidDocument(f"Root element must be <tv>, got <{getattr(root, 'tag', None)}>")

        channel_elements = root.findall("channel")
        programme_elements = root.findall("programme")
        if not channel_elements and not programme_elements:
            raise InvalidDocument("XMLTV document has neither <channel> nor <programme> elements")

        channels = self._parse_channels(channel_elements)
        programmes = self._parse_programmes(programme_elements)

        logger.info(
            "XMLTV parsing complete: %s channels, %s programmes (%s programme elements)",
            len(channels),
            len(programmes),
            len(programme_elements),
        )
        return ParsedDocument(channels=tuple(channels), programmes=tuple(programmes))

    def _parse_channels(self, elements: list) -> list[RawChannel]:
        """Extract channels from <channel> elements"""
        channels = []

        for channel in elements:
            xmltv_id = (channel.get("id") or "").strip()
            if not xmltv_id:
                logger.debug("Skipping channel with missing ID attribute")
                continue

            # Get display name (first one or fallback to ID)
            display_name = first_text([_localized(elem) for elem in channel.findall("display-name")]).strip()

            icon_url = None
            icon_elem = channel.find("icon")
            if icon_elem is not None:
                icon_url = icon_elem.get("src") or None

            channels.append(RawChannel(id=xmltv_id, display_name=display_name or xmltv_id, logo_url=icon_url))

        return channels

    def _parse_programmes(self, elements: list) -> list[RawProgramme]:
        """Extract programmes from <programme> elements"""
        programmes = []

        for programme in elements:
            parsed = _build_programme(
                programme.get("channel"),
                programme.get("start"),
                programme.get("stop"),
                [_localized(elem) for elem in programme.findall("title")],
                [_localized(elem) for elem in programme.findall("desc")],
                [_localized(elem) for elem in programme.findall("category")],
                [_localized(elem) for elem in programme.findall("credits/actor")],
                self.naive_tz,
            )
            if parsed is not None:
                programmes.append(parsed)

        return programmes


def _localized(element: etree._Element) -> LocalizedText:
    """Wrap element text and its lang attribute"""
    return LocalizedText(text="".join(element.itertext()), lang=element.get("lang"))


_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
# CDATA sections are matched first so comment markers inside them survive
_COMMENT_OR_CDATA_RE = re.compile(r"(<!\[CDATA\[.*?\]\]>)|<!--.*?(?:-->|\Z)", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_BOUNDARY_CHARS = " \t\r\n>/"


def _attribute_pattern(name: str) -> re.Pattern:
    return re.compile(r"(?<![\w-])" + re.escape(name) + r"\s*=\s*([\"'])(.*?)\1", re.DOTALL)


def _element_pattern(tag: str) -> re.Pattern:
    return re.compile(
        r"<" + re.escape(tag) + r"(\s[^>]*)?>(.*?)</" + re.escape(tag) + r"\s*>",
        re.DOTALL,
    )


_ID_ATTR = _attribute_pattern("id")
_CHANNEL_ATTR = _attribute_pattern("channel")
_START_ATTR = _attribute_pattern("start")
_STOP_ATTR = _attribute_pattern("stop")
_LANG_ATTR = _attribute_pattern("lang")
_SRC_ATTR = _attribute_pattern("src")
_ICON_TAG = re.compile(r"<icon\b[^>]*>", re.DOTALL)
_DISPLAY_NAME_ELEM = _element_pattern("display-name")
_TITLE_ELEM = _element_pattern("title")
_DESC_ELEM = _element_pattern("desc")
_CATEGORY_ELEM = _element_pattern("category")
_CREDITS_ELEM = _element_pattern("credits")
_ACTOR_ELEM = _element_pattern("actor")


def _iter_blocks(text: str, tag: str) -> Iterator[str]:
    """
    Yield one <tag ...>...</tag> block at a time.

    A block ends at its closing tag, or at the next opening tag when the
    closing tag is missing (truncated or self-closing elements).
    """
    open_marker = f"<{tag}"
    close_marker = f"</{tag}>"
    position = text.find(open_marker)

    while position != -1:
        after = position + len(open_marker)
        if text[after:after + 1] not in _BLOCK_BOUNDARY_CHARS:
            # <programmes>, <channel-group>, ...
            position = text.find(open_marker, after)
            continue

        next_open = text.find(open_marker, after)
        close = text.find(close_marker, after)
        if close != -1 and (next_open == -1 or close < next_open):
            yield text[position:close + len(close_marker)]
        else:
            yield text[position:next_open if next_open != -1 else len(text)]
        position = next_open


def strip_comments(text: str) -> str:
    """Remove XML comments (an unterminated one runs to the end of the text)."""
    return _COMMENT_OR_CDATA_RE.sub(lambda match: match.group(1) or "", text)


def _opening_tag(block: str) -> str:
    end = block.find(">")
    return block if end == -1 else block[:end + 1]


def _attribute(opening_tag: str, pattern: re.Pattern) -> Optional[str]:
    match = pattern.search(opening_tag)
    return unescape(match.group(2)) if match else None


def _clean_text(raw: str) -> str:
    text = _CDATA_RE.sub(lambda match: match.group(1), raw)
    return unescape(_TAG_RE.sub("", text))


def _element_texts(block: str, pattern: re.Pattern) -> list[LocalizedText]:
    texts = []
    for match in pattern.finditer(block):
        lang = _attribute(match.group(1) or "", _LANG_ATTR)
        texts.append(LocalizedText(text=_clean_text(match.group(2)), lang=lang))
    return texts


class ResilientXmltvParser:
    """
    Block-scanning parser for untrusted or huge XMLTV text.

    Never builds a tree: each <channel>/<programme> block is sliced out of
    the raw text and searched with patterns anchored to that block only.
    Malformed blocks are dropped without aborting the run.
    """

    def __init__(self, naive_tz: tzinfo | None = None):
        self.naive_tz = naive_tz

    def parse(self, payload: bytes | str) -> ParsedDocument:
        text = payload.decode("utf-8-sig", errors="replace") if isinstance(payload, bytes) else payload
        text = strip_comments(text)
        logger.debug("Scanning XMLTV text (%s characters)...", len(text))

        channels: list[RawChannel] = []
        channel_blocks = 0
        for block in _iter_blocks(text, "channel"):
            channel_blocks += 1
            channel = self._parse_channel_block(block)
            if channel is not None:
                channels.append(channel)

        programmes: list[RawProgramme] = []
        programme_blocks = 0
        for block in _iter_blocks(text, "programme"):
            programme_blocks += 1
            programme = self._parse_programme_block(block)
            if programme is not None:
                programmes.append(programme)

        if not channel_blocks and not programme_blocks:
            raise InvalidDocument("No <channel> or <programme> blocks found in XMLTV text")

        dropped = programme_blocks - len(programmes)
        logger.info(
            "XMLTV scan complete: %s channels, %s programmes (%s malformed blocks dropped)",
            len(channels),
            len(programmes),
            dropped,
        )
        return ParsedDocument(channels=tuple(channels), programmes=tuple(programmes))

    def _parse_channel_block(self, block: str) -> Optional[RawChannel]:
        xmltv_id = (_attribute(_opening_tag(block), _ID_ATTR) or "").strip()
        if not xmltv_id:
            logger.debug("Skipping channel block with missing ID attribute")
            return None

        display_name = first_text(_element_texts(block, _DISPLAY_NAME_ELEM)).strip()

        icon_url = None
        icon_match = _ICON_TAG.search(block)
        if icon_match:
            icon_url = _attribute(icon_match.group(0), _SRC_ATTR) or None

        return RawChannel(id=xmltv_id, display_name=display_name or xmltv_id, logo_url=icon_url)

    def _parse_programme_block(self, block: str) -> Optional[RawProgramme]:
        opening_tag = _opening_tag(block)

        actors: list[LocalizedText] = []
        for credits in _CREDITS_ELEM.finditer(block):
            actors.extend(_element_texts(credits.group(2), _ACTOR_ELEM))

        return _build_programme(
            _attribute(opening_tag, _CHANNEL_ATTR),
            _attribute(opening_tag, _START_ATTR),
            _attribute(opening_tag, _STOP_ATTR),
            _element_texts(block, _TITLE_ELEM),
            _element_texts(block, _DESC_ELEM),
            _element_texts(block, _CATEGORY_ELEM),
            actors,
            self.naive_tz,
        )


class AutoXmltvParser:
    """Resilient for large payloads, structural otherwise, resilient again when XML is malformed"""

    def __init__(self, naive_tz: tzinfo | None = None, threshold_bytes: int = DEFAULT_RESILIENT_THRESHOLD_BYTES):
        self.threshold_bytes = threshold_bytes
        self._structural = StructuralXmltvParser(naive_tz)
        self._resilient = ResilientXmltvParser(naive_tz)

    def parse(self, payload: bytes | str) -> ParsedDocument:
        if len(payload) > self.threshold_bytes:
            logger.info("Payload above %s bytes, using block-scanning parser", self.threshold_bytes)
            return self._resilient.parse(payload)

        try:
            return self._structural.parse(payload)
        except InvalidDocument as exc:
            if not isinstance(exc.__cause__, etree.XMLSyntaxError):
                raise
            logger.warning("Malformed XMLTV document, falling back to block-scanning parser")
            try:
                return self._resilient.parse(payload)
            except InvalidDocument:
                raise exc


def create_parser(
    strategy: ParserStrategy,
    naive_tz: tzinfo | None = None,
    threshold_bytes: int = DEFAULT_RESILIENT_THRESHOLD_BYTES,
) -> DocumentParser:
    """Build the parser selected by configuration"""
    if strategy is ParserStrategy.RESILIENT:
        return ResilientXmltvParser(naive_tz)
    if strategy is ParserStrategy.AUTO:
        return AutoXmltvParser(naive_tz, threshold_bytes)
    return StructuralXmltvParser(naive_tz)
