"""
Channel logo resolution

Logos come from the tv-logo/tv-logos repository, addressed by a slug of the
channel display name and a country folder.
"""
import re

LOGO_BASE_URL = "https://raw.githubusercontent.com/tv-logo/tv-logos/main/countries"
DEFAULT_COUNTRY = ("france", "fr")

# display name -> (country folder, file suffix)
COUNTRY_EXCEPTIONS: dict[str, tuple[str, str]] = {
    "2M Maroc": ("morocco", "ma"),
}

_WHITESPACE_RE = re.compile(r"\s+")
_PARENS_RE = re.compile(r"[()]")
_NON_WORD_RE = re.compile(r"[^\w\-]+", re.ASCII)
_MULTI_HYPHEN_RE = re.compile(r"--+")


def slugify(name: str | None) -> str:
    """Derive the canonical slug of a channel display name."""
    if not name:
        return ""
    slug = str(name).lower()
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _PARENS_RE.sub("", slug)
    slug = slug.replace("&", "and")
    slug = _NON_WORD_RE.sub("", slug)
    return _MULTI_HYPHEN_RE.sub("-", slug)


def resolve_logo(name: str | None) -> str | None:
    """Build the deterministic logo URL for a channel, None for an empty name."""
    if not name:
        return None
    country, suffix = COUNTRY_EXCEPTIONS.get(name, DEFAULT_COUNTRY)
    return f"{LOGO_BASE_URL}/{country}/{slugify(name)}-{suffix}.png"
