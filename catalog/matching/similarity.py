"""String, geographic and hashing primitives used for entity matching."""

import hashlib
import math
import re
import unicodedata

# Generic venue nouns and legal-form suffixes that carry no identity
VENUE_STOPWORDS = frozenset(
    {
        "the",
        "club",
        "bar",
        "pub",
        "venue",
        "theater",
        "theatre",
        "hall",
        "arena",
        "center",
        "centre",
        "stadium",
        "cinema",
        "kino",
        "restaurant",
        "cafe",
        "hotel",
        "gmbh",
        "ug",
        "ag",
        "ev",
        "inc",
        "llc",
        "ltd",
        "corp",
        "co",
    }
)

EARTH_RADIUS_METERS = 6371000.0

HASH_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def strip_diacritics(text: str) -> str:
    """Remove combining marks after NFD decomposition."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _fold(text: str) -> str:
    text = strip_diacritics((text or "").lower())
    # Keep dotted abbreviations ("e.v.") together before punctuation becomes a separator
    text = text.replace(".", "")
    text = re.sub(r"[^\w\s]|_", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_name(name: str) -> str:
    """Normalize a venue or artist name for comparison.

    Lowercases, strips diacritics, drops generic venue nouns and legal-form
    suffixes, removes punctuation and collapses whitespace. Idempotent.

    Args:
        name: Raw name

    Returns:
        Normalized name
    """
    words = [w for w in _fold(name).split(" ") if w and w not in VENUE_STOPWORDS]
    return " ".join(words)


def normalize_title(title: str) -> str:
    """Normalize an event title, keeping every word."""
    return _fold(title)


def venue_name_key(name: str) -> str:
    """Comparable venue name, keeping generic nouns when nothing else is left.

    "The Club" and "Bar" both lose every word to the stopword list; their
    folded full names still tell them apart.
    """
    return normalize_name(name) or normalize_title(name)


def _jaro(s1: str, s2: str) -> float:
    len1, len2 = len(s1), len(s2)
    match_window = max(len1, len2) // 2 - 1
    if match_window < 0:
        match_window = 0

    s1_matches = [False] * len1
    s2_matches = [False] * len2
    matches = 0

    for i, ch in enumerate(s1):
        start = max(0, i - match_window)
        end = min(i + match_window + 1, len2)
        for j in range(start, end):
            if s2_matches[j] or s2[j] != ch:
                continue
            s1_matches[i] = True
            s2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if s1[i] != s2[k]:
            transpositions += 1
        k += 1

    return (matches / len1 + matches / len2 + (matches - transpositions / 2) / matches) / 3


def similarity(a: str, b: str) -> float:
    """Jaro-Winkler similarity between two strings.

    Args:
        a: First string
        b: Second string

    Returns:
        Similarity score between 0 and 1
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    # Fixed argument order keeps the score symmetric
    if (len(a), a) > (len(b), b):
        a, b = b, a

    jaro = _jaro(a, b)

    prefix = 0
    for ch1, ch2 in zip(a[:4], b[:4]):
        if ch1 != ch2:
            break
        prefix += 1

    score = jaro + 0.1 * prefix * (1 - jaro)
    return round(min(score, 1.0), 10)


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def deterministic_hash(seed: str, length: int = 13) -> str:
    """Stable compact identifier derived only from ``seed``.

    Args:
        seed: Input string
        length: Number of base-36 characters to keep

    Returns:
        Base-36 encoded prefix of the SHA-256 digest
    """
    value = int.from_bytes(hashlib.sha256(seed.encode("utf-8")).digest()[:8], "big")

    chars = []
    while value:
        value, rem = divmod(value, 36)
        chars.append(HASH_ALPHABET[rem])
    encoded = "".join(reversed(chars)) or "0"

    return encoded.rjust(length, "0")[:length]
