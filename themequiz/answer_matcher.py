"""
Answer matching for theme guesses.

Both the guess and every accepted answer are normalized before comparison:
case-folded, punctuation removed and whitespace collapsed. A guess matches
when, after normalization, it

* equals an accepted answer,
* contains an accepted answer of at least ``MIN_CONTAINED_LENGTH`` characters
  (``"is it shingeki no kyojin"``), or
* has a ``difflib.SequenceMatcher`` ratio of at least ``SIMILARITY_THRESHOLD``
  with an accepted answer (small typos).

Everything here is pure so the result for two fixed strings never changes.
"""
import re
import unicodedata
from difflib import SequenceMatcher
from typing import Iterable

SIMILARITY_THRESHOLD = 0.85
MIN_CONTAINED_LENGTH = 4

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Case-fold, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).casefold()
    text = text.replace("&", " and ")
    text = _PUNCTUATION.sub(" ", text).replace("_", " ")
    return _WHITESPACE.sub(" ", text).strip()


def similarity(guess: str, answer: str) -> float:
    """Ratio between two already normalized strings."""
    return SequenceMatcher(None, guess, answer).ratio()


def matches_answer(guess: str, answer: str) -> bool:
    """Check a single guess against a single accepted answer."""
    guess_norm = normalize(guess)
    answer_norm = normalize(answer)

    if not guess_norm or not answer_norm:
        return False

    if guess_norm == answer_norm:
        return True

    if len(answer_norm) >= MIN_CONTAINED_LENGTH and answer_norm in guess_norm:
        return True

    return similarity(guess_norm, answer_norm) >= SIMILARITY_THRESHOLD


def is_answer(content: str, accepted_answers: Iterable[str]) -> bool:
    """
    Check whether a chat message matches any accepted answer.

    Args:
        content: Raw message body
        accepted_answers: Canonical name, aliases and known titles

    Returns:
        True if the message is considered a correct guess
    """
    return any(matches_answer(content, answer) for answer in accepted_answers)
