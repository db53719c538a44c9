"""Deterministic address, phone and slug normalisation.

The address hash is the deduplication key: two stores whose addresses
normalise to the same string share a key.  The hash is a SHA-256 digest of
the normalised text, so it is stable across processes and languages.
"""

from __future__ import annotations

import hashlib
import re

from unidecode import unidecode

# ---------------------------------------------------------------------------
# Address rewrite rules (applied in order, after punctuation removal)
# ---------------------------------------------------------------------------

_ADDRESS_RULES: list[tuple[re.Pattern[str], str]] = [
    # Street suffixes
    (re.compile(r"\b(street|str)\b"), "st"),
    (re.compile(r"\b(avenue|ave)\b"), "av"),
    (re.compile(r"\b(boulevard|blvd)\b"), "bl"),
    (re.compile(r"\b(highway|hwy)\b"), "hw"),
    (re.compile(r"\bfreeway\b"), "fwy"),
    (re.compile(r"\bdrive\b"), "dr"),
    (re.compile(r"\broad\b"), "rd"),
    (re.compile(r"\blane\b"), "ln"),
    (re.compile(r"\bcourt\b"), "ct"),
    (re.compile(r"\bcircle\b"), "cir"),
    (re.compile(r"\bplace\b"), "pl"),
    (re.compile(r"\bterrace\b"), "ter"),
    (re.compile(r"\bparkway\b"), "pkwy"),
    (re.compile(r"\bway\b"), "wy"),
    # Directionals
    (re.compile(r"\bnortheast\b"), "ne"),
    (re.compile(r"\bnorthwest\b"), "nw"),
    (re.compile(r"\bsoutheast\b"), "se"),
    (re.compile(r"\bsouthwest\b"), "sw"),
    (re.compile(r"\bnorth\b"), "n"),
    (re.compile(r"\bsouth\b"), "s"),
    (re.compile(r"\beast\b"), "e"),
    (re.compile(r"\bwest\b"), "w"),
    # Unit designators vary between sources and cause false negatives
    (re.compile(r"\b(suite|ste|unit|apt|apartment|bldg|building|floor|fl)\b\s*\w*"), ""),
]

_HASH_LENGTH = 16


def normalize_address(address: str | None) -> str:
    """Normalise a free-text street address for comparison.

    Steps:
      1. Transliterate to ASCII and lowercase.
      2. Replace punctuation with spaces.
      3. Canonicalise street suffixes and directionals.
      4. Drop unit/suite designators.
      5. Collapse whitespace.
    """
    if not address:
        return ""

    text = unidecode(address).lower()
    text = re.sub(r"[^\w\s]", " ", text)
    for pattern, replacement in _ADDRESS_RULES:
        text = pattern.sub(replacement, text)
    return re.sub(r"\s+", " ", text).strip()


def hash_address(address: str | None) -> str | None:
    """Return the dedup key for *address*, or ``None`` if nothing usable remains.

    ``None`` means "no dedup key available"; it never collides with another
    ``None``.
    """
    normalized = normalize_address(address)
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:_HASH_LENGTH]


def normalize_phone(phone: str | None) -> str | None:
    """Reduce a phone number to digits; ``None`` when fewer than 10 remain."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    return digits if len(digits) >= 10 else None


def normalize_website(url: str | None) -> str | None:
    """Return an absolute website URL, or ``None`` for blanks and Google redirect links."""
    if not url:
        return None
    trimmed = url.strip()
    if not trimmed or trimmed.startswith("/url?"):
        return None
    if not trimmed.startswith(("http://", "https://")):
        return f"https://{trimmed}"
    return trimmed


def normalize_city_name(name: str) -> str:
    """Case- and whitespace-insensitive key used for city uniqueness."""
    return re.sub(r"\s+", " ", name).strip().casefold()


def slugify(text: str, max_length: int | None = None) -> str:
    """ASCII-fold, lowercase and hyphenate *text* into a URL-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", unidecode(text).lower()).strip("-")
    if max_length is not None:
        slug = slug[:max_length].rstrip("-")
    return slug


def store_slug(name: str, city: str) -> str:
    """Deterministic store slug: ``<name>-<city>``, at most 100 characters."""
    return slugify(f"{name}-{city}", max_length=100)


def build_address(street: str | None, city: str | None, state: str | None) -> str | None:
    """Full address ``street, city, state``; ``None`` without a street."""
    if not street or not street.strip():
        return None
    parts = [p.strip() for p in (street, city, state) if p and p.strip()]
    return ", ".join(parts)
