"""
Budget band extraction from model-generated prose.

Budget strategy artifacts describe three price bands in free text, e.g.

    Conservative band: $450,000 - $520,000
    **Target**: $500K - $560K
    ### Stretch Band
    $560,000 to $580,000

The model output follows no grammar, so each band is located by an
ordered list of independent matchers. Every matcher is pure and total:
it returns a (min, max) pair or None, and the first matcher that yields
a range with two valid endpoints wins. Anything ambiguous resolves to
"not found".
"""

import re
from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from buyer_insights.entities import BAND_NAMES, BudgetBands

Range = tuple[float, float]
BandMatcher = Callable[[str, str], Range | None]

_EMPHASIS = r"(?:\*\*|__|\*|_)?"
_LIST_MARKER = r"(?:[-*•+]|\d+[.)])"
_BAND_SUFFIX = r"(?:[ \t]+band)?"
_SEPARATOR = r"[ \t]*(?::|[ \t])[ \t]*"

# Thousands separators must come in groups of three
_DIGITS = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?"
_NUMBER = rf"(?<![\d,.])[$€£]?[ \t]?{_DIGITS}[KkMm]?(?![A-Za-z\d]|,\d)"
_PRICE = re.compile(rf"[$€£]?\s*{_DIGITS}[KkMm]?")
_RANGE = re.compile(
    rf"(?P<low>{_NUMBER})\s*(?:-|–|\bto\b)\s*(?P<high>{_NUMBER})",
    re.IGNORECASE,
)

_SCALE = {"k": Decimal(1_000), "m": Decimal(1_000_000)}

BUDGET_KEYWORDS = (
    "budget band",
    "budget bands",
    "conservative band",
    "target band",
    "stretch band",
    "realistic budget",
    "price range",
    "purchasing power",
)


def parse_price(value: str) -> float | None:
    """Parse a price such as "$450,000", "$450K" or "1.2m".

    Returns:
        The numeric value, or None if it is not a well-formed number
    """
    value = (value or "").strip()
    if not _PRICE.fullmatch(value):
        return None
    cleaned = re.sub(r"[$€£,\s]", "", value)
    if not cleaned:
        return None

    multiplier = _SCALE.get(cleaned[-1].lower(), Decimal(1))
    if multiplier != 1:
        cleaned = cleaned[:-1]

    try:
        number = Decimal(cleaned) * multiplier
    except InvalidOperation:
        return None

    if not number.is_finite():
        return None
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def parse_range(text: str) -> Range | None:
    """Find the first "<number> - <number>" range in a line of text."""
    match = _RANGE.search(text)
    if match is None:
        return None

    low = parse_price(match.group("low"))
    high = parse_price(match.group("high"))
    if low is None or high is None:
        return None
    return low, high


def _name(band: str) -> str:
    return rf"(?<![A-Za-z]){re.escape(band)}{_BAND_SUFFIX}(?![A-Za-z])"


def match_same_line(text: str, band: str) -> Range | None:
    """Band name then separator then range, all on one line."""
    pattern = re.compile(
        rf"{_EMPHASIS}{_name(band)}{_EMPHASIS}{_SEPARATOR}{_EMPHASIS}([^\n]+)",
        re.IGNORECASE,
    )
    match = pattern.search(text)
    return parse_range(match.group(1)) if match else None


def match_next_line(text: str, band: str) -> Range | None:
    """Band name alone on its line (heading or emphasis), range on the next non-blank line."""
    pattern = re.compile(
        rf"^[ \t]*(?:#+[ \t]*)?{_EMPHASIS}{_name(band)}{_EMPHASIS}[ \t]*:?[ \t]*{_EMPHASIS}[ \t]*\r?\n"
        rf"(?:[ \t]*\r?\n)*([^\n]+)",
        re.IGNORECASE | re.MULTILINE,
    )
    match = pattern.search(text)
    return parse_range(match.group(1)) if match else None


def match_list_item(text: str, band: str) -> Range | None:
    """Bulleted or numbered list item naming the band."""
    pattern = re.compile(
        rf"^[ \t]*{_LIST_MARKER}[ \t]+{_EMPHASIS}{_name(band)}{_EMPHASIS}{_SEPARATOR}{_EMPHASIS}([^\n]+)",
        re.IGNORECASE | re.MULTILINE,
    )
    match = pattern.search(text)
    return parse_range(match.group(1)) if match else None


# Priority order; the first matcher that returns a range wins.
MATCHERS: tuple[BandMatcher, ...] = (
    match_same_line,
    match_next_line,
    match_list_item,
)


def find_band_range(text: str, band: str) -> Range | None:
    """Try every matcher for one band name in priority order."""
    for matcher in MATCHERS:
        found = matcher(text, band)
        if found is not None:
            return found
    return None


def extract_budget_bands(text: str | None) -> BudgetBands | None:
    """Extract conservative/target/stretch bands from an artifact.

    Args:
        text: Completed artifact text

    Returns:
        BudgetBands when at least one band has both ends, otherwise None
    """
    if not text:
        return None

    values: dict[str, float] = {}
    for band in BAND_NAMES:
        found = find_band_range(text, band)
        if found is not None:
            values[f"{band}_min"], values[f"{band}_max"] = found

    bands = BudgetBands(**values)
    return bands if bands.has_complete_band else None


def is_budget_bands_artifact(text: str | None) -> bool:
    """Check whether an artifact reads like a budget strategy.

    Requires at least two budget keywords to avoid false positives on
    general market write-ups that mention a price range once.
    """
    if not text:
        return False

    lowered = text.lower()
    return sum(1 for keyword in BUDGET_KEYWORDS if keyword in lowered) >= 2
