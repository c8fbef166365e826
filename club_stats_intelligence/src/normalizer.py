"""
Question tokenizer/normalizer.

Lower-cases, strips accents and punctuation variants, drops possessives,
collapses whitespace and expands the abbreviations club members actually
type ("apps", "pens", "motm").
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Tuple

# Abbreviation -> expansion, applied on whole tokens after lower-casing.
ABBREVIATIONS: Dict[str, str] = {
    "apps": "appearances",
    "app": "appearance",
    "mins": "minutes",
    "min": "minutes",
    "motm": "man of the match",
    "mom": "man of the match",
    "pens": "penalties",
    "pen": "penalty",
    "yc": "yellow cards",
    "rc": "red cards",
    "cs": "clean sheets",
    "og": "own goal",
    "ogs": "own goals",
    "ga": "goal involvements",
    "vs": "versus",
    "v": "versus",
    "prem": "premier",
    "szn": "season",
    "&": "and",
    "%": "percent",
}

_QUOTE_VARIANTS = str.maketrans({
    "‘": "'", "’": "'", "‛": "'", "′": "'", "`": "'",
    "“": '"', "”": '"',
    "–": "-", "—": "-", "−": "-",
})

_POSSESSIVE = re.compile(r"(\w)'s\b|(s)'(?=\s|$)")
# Keep hyphenated names, slashes inside seasons/dates and the ampersand/percent
# symbols that have expansions; everything else becomes a separator.
_SEPARATORS = re.compile(r"[^\w\s/&%'-]|(?<!\w)[-/']|[-/'](?!\w)")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedQuestion:
    original: str
    text: str
    tokens: Tuple[str, ...]

    def contains_phrase(self, phrase: str) -> bool:
        return phrase_pattern(phrase).search(self.text) is not None


_PATTERN_CACHE: Dict[str, "re.Pattern[str]"] = {}


def phrase_pattern(phrase: str) -> "re.Pattern[str]":
    """Whole-word regex for a normalized phrase (cached)."""
    pattern = _PATTERN_CACHE.get(phrase)
    if pattern is None:
        body = r"\s+".join(re.escape(part) for part in phrase.split())
        pattern = re.compile(rf"(?<![\w/]){body}(?![\w/])")
        _PATTERN_CACHE[phrase] = pattern
    return pattern


def strip_accents(text: str) -> str:
    """Remove combining accent marks ("Sébastien" -> "Sebastien")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Normalize free text for phrase matching (no abbreviation expansion)."""
    text = strip_accents(text or "").translate(_QUOTE_VARIANTS).lower()
    text = _POSSESSIVE.sub(lambda m: m.group(1) or m.group(2), text)
    text = text.replace("&", " & ").replace("%", " % ")
    text = _SEPARATORS.sub(" ", text)
    text = text.replace("'", "")
    return _WHITESPACE.sub(" ", text).strip()


def expand_abbreviations(tokens: List[str]) -> List[str]:
    expanded: List[str] = []
    for token in tokens:
        expanded.extend(ABBREVIATIONS.get(token, token).split())
    return expanded


def normalize_question(question: str) -> NormalizedQuestion:
    """Build the normalized form every later pipeline stage consumes."""
    tokens = expand_abbreviations(normalize_text(question).split())
    return NormalizedQuestion(original=question or "", text=" ".join(tokens), tokens=tuple(tokens))
