"""
Loose XML text nodes

A text field in the guide sources is either a bare string or a localized
payload carrying the text and its language. Every call site goes through
extract_text instead of inspecting the shape itself.
"""
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class LocalizedText:
    """Text payload with an optional language attribute"""
    text: str
    lang: str | None = None


XmlText = Union[str, LocalizedText, Mapping[str, Any], None]


def extract_text(node: XmlText) -> str:
    """
    Resolve a loose text node to a plain string.

    Args:
        node: str, LocalizedText, mapping with a '#text' key, or None

    Returns:
        The text payload, or an empty string for unsupported shapes
    """
    if isinstance(node, str):
        return node
    if isinstance(node, LocalizedText):
        return node.text
    if isinstance(node, Mapping):
        value = node.get("#text")
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return ""


def first_text(nodes: Sequence[XmlText], preferred_lang: str | None = None) -> str:
    """Return the first non-empty text, preferring nodes in ``preferred_lang``."""
    if preferred_lang:
        for node in nodes:
            if isinstance(node, LocalizedText) and node.lang == preferred_lang and node.text:
                return node.text
    for node in nodes:
        text = extract_text(node)
        if text:
            return text
    return ""
