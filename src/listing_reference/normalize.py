import re

from listing_reference.errors import InvalidReference
from listing_reference.models import ReferenceQuery

MAX_REFERENCE_LENGTH = 20

_ALNUM_RE = re.compile(r"^[A-Za-z0-9]+$")
_ALL_ZEROS_RE = re.compile(r"^0+$")


def strip_reference(raw):
    """Drop surrounding whitespace and every separator character."""
    if raw is None:
        return ""
    return "".join(ch for ch in str(raw).strip() if ch.isalnum())


def normalize_reference(raw) -> ReferenceQuery:
    text = "" if raw is None else str(raw)
    if not text.strip():
        raise InvalidReference("Please enter a reference number")
    cleaned = strip_reference(text)
    if not cleaned:
        raise InvalidReference("Reference must contain letters or numbers")
    if not _ALNUM_RE.match(cleaned):
        # Non-ASCII letters and digits survive separator stripping.
        raise InvalidReference(
            "Invalid reference format. Use only letters and numbers.",
            reference=cleaned,
        )
    if len(cleaned) > MAX_REFERENCE_LENGTH:
        raise InvalidReference("Reference number is too long", reference=cleaned)
    if _ALL_ZEROS_RE.match(cleaned):
        raise InvalidReference("Reference cannot be all zeros", reference=cleaned)
    return ReferenceQuery(raw=text, normalized=cleaned, key=cleaned.upper())


def format_reference_for_display(raw):
    return strip_reference(raw).upper()


def default_fallback_url(normalized):
    return f"/listings/property-ref-{normalized}"
