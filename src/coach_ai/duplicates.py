"""Near-duplicate check for regenerated answers."""
import re
import unicodedata


_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_for_compare(text: str) -> str:
    """Strip diacritics and punctuation, lowercase, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    no_punct = _PUNCTUATION_RE.sub(" ", stripped.lower()).replace("_", " ")
    return _WHITESPACE_RE.sub(" ", no_punct).strip()


def is_near_duplicate(new_text: str, previous_text: str) -> bool:
    """
    True when the new answer adds nothing over the previous one.

    Containment in either direction counts, and so does an empty side, so a
    short answer repeated inside a longer one is rejected too.
    """
    new = normalize_for_compare(new_text)
    previous = normalize_for_compare(previous_text)
    if not new or not previous:
        return True
    return new == previous or new in previous or previous in new
