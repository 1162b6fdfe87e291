"""
Programme category taxonomy

Maps free-text XMLTV category/description strings onto the closed set of
categories shown in the guide.
"""
from enum import Enum


class ProgramCategory(str, Enum):
    """Closed set of guide categories (values are the display labels)"""
    SPORT = "Sport"
    CINEMA = "Cinéma"
    SERIES = "Séries"
    NEWS = "Actualités"
    ENTERTAINMENT = "Divertissement"
    DOCUMENTARY = "Documentaires"
    KIDS = "Enfants"


DEFAULT_CATEGORY = ProgramCategory.ENTERTAINMENT

# Order matters: first match wins
_CATEGORY_KEYWORDS: tuple[tuple[ProgramCategory, tuple[str, ...]], ...] = (
    (ProgramCategory.SPORT, ("sport",)),
    (ProgramCategory.CINEMA, ("film", "movie", "cinéma")),
    (ProgramCategory.SERIES, ("série", "series")),
    (ProgramCategory.NEWS, ("news", "info", "actualité")),
    (ProgramCategory.KIDS, ("enfant", "jeunesse", "kids")),
    (ProgramCategory.DOCUMENTARY, ("documentaire", "documentary")),
)


def map_category(free_text: str | None) -> ProgramCategory:
    """
    Map free text to a guide category.

    Args:
        free_text: Raw category or description text (may be empty)

    Returns:
        Matching ProgramCategory, DEFAULT_CATEGORY when nothing matches
    """
    if not free_text or not isinstance(free_text, str):
        return DEFAULT_CATEGORY

    lowered = free_text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category

    return DEFAULT_CATEGORY


def categorize(*texts: str | None) -> ProgramCategory:
    """Map the first text that yields a specific category, in argument order."""
    for text in texts:
        category = map_category(text)
        if category is not DEFAULT_CATEGORY:
            return category
    return DEFAULT_CATEGORY
