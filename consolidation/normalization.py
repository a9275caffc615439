# consolidation/normalization.py
"""Attribute normalization and similarity heuristics.

Everything in this module is a pure function over strings. The similarity
checks are heuristics, not proofs of identity: with no ground truth for
"the same weapon" they will sometimes merge two distinct items (for example
two names sharing a two-character core word) and sometimes keep two
spellings of one item apart. The lookup tables they consult live in
:mod:`consolidation.vocabulary`.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping

from consolidation.vocabulary import (
    AGE_KEYWORDS,
    AGE_LABEL_ALIASES,
    AGE_UNITS,
    CHINESE_NUMERALS,
    CLOTHING_PHASE_SYNONYMS,
    CORE_WORD_MAX_LENGTH,
    CORE_WORD_MIN_LENGTH,
    CORE_WORD_STOPWORDS,
    ENGLISH_NUMERALS,
    PHASE_MAX_LENGTH_DIFF,
    PHASE_SUFFIXES,
    WEAPON_MAX_LENGTH_DIFF,
    WEAPON_SYNONYMS,
    AgeBracket,
)

__all__ = [
    "age_bracket_for",
    "normalize_age",
    "extract_core_words",
    "are_weapon_names_similar",
    "are_phases_similar",
]

_CJK = "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff"
_CJK_CHAR_RE = re.compile(f"[{_CJK}]")
_SEGMENT_RE = re.compile(f"([{_CJK}]+)|([^\\W{_CJK}_]+)")

# Anything past four digits is not an age; the cap also keeps int() bounded.
_ARABIC_RE = re.compile(r"\d{1,4}")


def _alternation(words: Iterable[str]) -> str:
    return "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))


_CHINESE_NUMERAL_RE = re.compile(f"({_alternation(CHINESE_NUMERALS)})")
_ENGLISH_NUMERAL_RE = re.compile(rf"\b({_alternation(ENGLISH_NUMERALS)})\b")

# Spelled-out values this small are only read as ages next to a unit.
_BARE_NUMERAL_MAX = 10


def _squash_label(label: str) -> str:
    return re.sub(r"\s+", "", label.replace("（", "(").replace("）", ")")).lower()


_AGE_ALIAS_LOOKUP: dict[str, AgeBracket] = {
    _squash_label(label): bracket for label, bracket in AGE_LABEL_ALIASES.items()
}


def _compile_keyword(term: str) -> re.Pattern[str]:
    if term.isascii():
        return re.compile(rf"\b{re.escape(term)}\b")
    return re.compile(re.escape(term))


_AGE_KEYWORD_PATTERNS: tuple[tuple[AgeBracket, tuple[re.Pattern[str], ...]], ...] = tuple(
    (bracket, tuple(_compile_keyword(term) for term in terms))
    for bracket, terms in AGE_KEYWORDS
)


def age_bracket_for(years: int) -> AgeBracket:
    """Bucket a numeric age into its canonical bracket."""
    if years <= 6:
        return AgeBracket.CHILD
    if years <= 14:
        return AgeBracket.JUVENILE
    if years <= 25:
        return AgeBracket.YOUTH
    if years <= 40:
        return AgeBracket.PRIME
    if years <= 60:
        return AgeBracket.MIDDLE
    if years < 80:
        return AgeBracket.SENIOR
    return AgeBracket.ELDER


def _followed_by_unit(text: str, end: int) -> bool:
    rest = text[end:].lstrip(" -")
    return any(rest.startswith(unit) for unit in AGE_UNITS)


def _spelled_out_age(
    text: str, pattern: re.Pattern[str], table: Mapping[str, int]
) -> int | None:
    for match in pattern.finditer(text):
        word = match.group(1)
        value = table[word]
        if value <= _BARE_NUMERAL_MAX and not (
            text == word or _followed_by_unit(text, match.end())
        ):
            continue
        return value
    return None


def _keyword_age(text: str) -> AgeBracket | None:
    for bracket, patterns in _AGE_KEYWORD_PATTERNS:
        if any(p.search(text) for p in patterns):
            return bracket
    return None


def normalize_age(raw: object) -> AgeBracket:
    """Map a free-form age description onto one of the eight brackets.

    Resolution order: canonical label (or a known display alias), Arabic
    numeral, spelled-out numeral, descriptive keyword, then
    ``AgeBracket.UNKNOWN``. Never raises.
    """
    if isinstance(raw, AgeBracket):
        return raw
    if raw is None or isinstance(raw, bool):
        return AgeBracket.UNKNOWN
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw) or raw < 0:
            return AgeBracket.UNKNOWN
        return age_bracket_for(int(raw))

    text = str(raw).strip().lower()
    if not text:
        return AgeBracket.UNKNOWN

    alias = _AGE_ALIAS_LOOKUP.get(_squash_label(text))
    if alias is not None:
        return alias

    arabic = _ARABIC_RE.search(text)
    if arabic:
        return age_bracket_for(int(arabic.group()))

    for pattern, table in (
        (_CHINESE_NUMERAL_RE, CHINESE_NUMERALS),
        (_ENGLISH_NUMERAL_RE, ENGLISH_NUMERALS),
    ):
        value = _spelled_out_age(text, pattern, table)
        if value is not None:
            return age_bracket_for(value)

    return _keyword_age(text) or AgeBracket.UNKNOWN


def _strip_suffixes(text: str, suffixes: Iterable[str]) -> str:
    cleaned = text
    for suffix in suffixes:
        if cleaned.endswith(suffix) and len(cleaned) > len(suffix):
            cleaned = cleaned[: -len(suffix)]
    return cleaned


def extract_core_words(text: str, suffixes: Iterable[str] = ()) -> set[str]:
    """Return the candidate core words of ``text``.

    ``suffixes`` are stripped from the end first (one pass, in order). Runs
    of CJK characters contribute every contiguous substring of two to four
    characters plus each single character; Latin-script words contribute
    themselves. Substrings never span whitespace.
    """
    cleaned = _strip_suffixes(text.strip().lower(), suffixes)
    words: set[str] = set()
    for match in _SEGMENT_RE.finditer(cleaned):
        cjk_run, latin_word = match.groups()
        if latin_word:
            if len(latin_word) >= CORE_WORD_MIN_LENGTH and latin_word not in CORE_WORD_STOPWORDS:
                words.add(latin_word)
            continue
        for size in range(CORE_WORD_MIN_LENGTH, min(CORE_WORD_MAX_LENGTH, len(cjk_run)) + 1):
            for start in range(len(cjk_run) - size + 1):
                words.add(cjk_run[start : start + size])
        words.update(ch for ch in cjk_run if _CJK_CHAR_RE.match(ch))
    return words


def _share_core_word(first: set[str], second: set[str]) -> bool:
    return any(len(word) >= CORE_WORD_MIN_LENGTH for word in first & second)


def _synonym_set(value: str, table: Mapping[str, Iterable[str]]) -> set[str]:
    return {value, *(s.lower() for s in table.get(value, ()))}


def _similar(
    first: str | None,
    second: str | None,
    *,
    max_length_diff: int,
    synonyms: Mapping[str, Iterable[str]],
    suffixes: Iterable[str],
) -> bool:
    a = (first or "").strip().lower()
    b = (second or "").strip().lower()
    if not a or not b:
        return a == b
    if a == b:
        return True
    if _synonym_set(a, synonyms) & _synonym_set(b, synonyms):
        return True
    if (a in b or b in a) and abs(len(a) - len(b)) <= max_length_diff:
        return True
    return _share_core_word(
        extract_core_words(a, suffixes), extract_core_words(b, suffixes)
    )


def are_weapon_names_similar(first: str | None, second: str | None) -> bool:
    """Heuristic: do two weapon names probably refer to the same weapon?"""
    return _similar(
        first,
        second,
        max_length_diff=WEAPON_MAX_LENGTH_DIFF,
        synonyms=WEAPON_SYNONYMS,
        suffixes=(),
    )


def are_phases_similar(first: str | None, second: str | None) -> bool:
    """Heuristic: do two clothing phases probably describe the same period?"""
    return _similar(
        first,
        second,
        max_length_diff=PHASE_MAX_LENGTH_DIFF,
        synonyms=CLOTHING_PHASE_SYNONYMS,
        suffixes=PHASE_SUFFIXES,
    )
