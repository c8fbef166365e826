"""
Modifier extraction: time range, team filter, location and competition type.

Runs independently of intent/entity/metric extraction so a qualifier can
attach to any question. When nothing is found the result is
DEFAULT_MODIFIERS (all seasons, all competitions).
"""

import logging
import re
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from ..config.club_entities import (
    CLUB_TERMINOLOGY,
    COMPETITION_TYPES,
    DEFAULT_MODIFIERS,
    DEFAULT_TEAM_ALIASES,
    Location,
    ModifierSet,
    TimeRange,
)
from .normalizer import phrase_pattern

logger = logging.getLogger(__name__)

SEASON_START_MONTH = CLUB_TERMINOLOGY["season_start_month"]

_DATE = r"(\d{1,2})/(\d{1,2})/(\d{4})"
_SEASON_PATTERN = re.compile(r"(?<![\d/])(20\d{2})\s*[/-]\s*(20\d{2}|\d{2})(?![\d/])")
_BETWEEN_PATTERN = re.compile(rf"\bbetween {_DATE} and {_DATE}\b")
_SINCE_DATE_PATTERN = re.compile(rf"\bsince {_DATE}\b")
_SINCE_YEAR_PATTERN = re.compile(r"\bsince (20\d{2})(?![\d/-])")
_IN_YEAR_PATTERN = re.compile(r"\b(?:in|during) (20\d{2})(?![\d/-])")

_THIS_SEASON = ("this season", "current season", "this year", "so far this season")
_LAST_SEASON = ("last season", "previous season", "last year")

_AWAY_PHRASES = ("away from home", "away games", "away matches", "on the road", "away")
_HOME_PHRASES = ("at home", "home games", "home matches", "home")

# Phrases that contain a competition word without filtering by competition.
_COMPETITION_EXCLUSIONS = ("league points", "league position", "league table")


def season_start_year(day: date) -> int:
    return day.year if day.month >= SEASON_START_MONTH else day.year - 1


def season_label(start_year: int) -> str:
    return f"{start_year}/{(start_year + 1) % 100:02d}"


def season_range(start_year: int, label: Optional[str] = None) -> TimeRange:
    season = season_label(start_year)
    return TimeRange(
        label=label or f"the {season} season",
        season=season,
        start=date(start_year, SEASON_START_MONTH, 1),
        end=date(start_year + 1, SEASON_START_MONTH - 1, 31),
    )


def _parse_date(day: str, month: str, year: str) -> Optional[date]:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


class ModifierExtractor:
    def __init__(
        self,
        team_aliases: Optional[Dict[str, Tuple[str, ...]]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.today = today or date.today
        aliases = team_aliases if team_aliases is not None else DEFAULT_TEAM_ALIASES
        phrases: List[Tuple[str, str]] = []
        for canonical, names in aliases.items():
            phrases.append((canonical.lower(), canonical))
            phrases.extend((name, canonical) for name in names)
        self._team_phrases = sorted(phrases, key=lambda item: (-len(item[0]), item[0]))

    def extract(self, text: str) -> ModifierSet:
        modifiers = ModifierSet(
            time_range=self._extract_time_range(text),
            teams=self._extract_teams(text),
            location=self._extract_location(text),
            competition_types=self._extract_competitions(text),
        )
        if modifiers.is_default:
            return DEFAULT_MODIFIERS
        logger.debug(f"Modifiers extracted: {modifiers.to_dict()}")
        return modifiers

    def _extract_time_range(self, text: str) -> Optional[TimeRange]:
        between = _BETWEEN_PATTERN.search(text)
        if between:
            start = _parse_date(*between.group(1, 2, 3))
            end = _parse_date(*between.group(4, 5, 6))
            if start and end:
                start, end = min(start, end), max(start, end)
                return TimeRange(
                    label=f"between {start.strftime('%d/%m/%Y')} and {end.strftime('%d/%m/%Y')}",
                    start=start,
                    end=end,
                )

        for match in _SEASON_PATTERN.finditer(text):
            first = int(match.group(1))
            second = match.group(2)
            second_year = int(second) if len(second) == 4 else (first // 100) * 100 + int(second)
            if second_year == first + 1:
                return season_range(first)

        since_date = _SINCE_DATE_PATTERN.search(text)
        if since_date:
            start = _parse_date(*since_date.group(1, 2, 3))
            if start:
                return TimeRange(label=f"since {start.strftime('%d/%m/%Y')}", start=start)

        since_year = _SINCE_YEAR_PATTERN.search(text)
        if since_year:
            year = int(since_year.group(1))
            return TimeRange(label=f"since {year}", start=date(year, 1, 1))

        current = season_start_year(self.today())
        if any(phrase_pattern(p).search(text) for p in _THIS_SEASON):
            return season_range(current, label="this season")
        if any(phrase_pattern(p).search(text) for p in _LAST_SEASON):
            return season_range(current - 1, label="last season")

        in_year = _IN_YEAR_PATTERN.search(text)
        if in_year:
            year = int(in_year.group(1))
            return TimeRange(label=f"in {year}", start=date(year, 1, 1), end=date(year, 12, 31))
        return None

    def _extract_teams(self, text: str) -> Tuple[str, ...]:
        consumed: List[Tuple[int, int]] = []
        found: List[Tuple[int, str]] = []
        for phrase, canonical in self._team_phrases:
            for match in phrase_pattern(phrase).finditer(text):
                if any(match.start() < e and match.end() > s for s, e in consumed):
                    continue
                consumed.append((match.start(), match.end()))
                found.append((match.start(), canonical))
        teams: List[str] = []
        for _, canonical in sorted(found):
            if canonical not in teams:
                teams.append(canonical)
        return tuple(teams)

    @staticmethod
    def _extract_location(text: str) -> Optional[Location]:
        # "away from home" mentions home, so away is checked first
        if any(phrase_pattern(p).search(text) for p in _AWAY_PHRASES):
            return Location.AWAY
        if any(phrase_pattern(p).search(text) for p in _HOME_PHRASES):
            return Location.HOME
        return None

    @staticmethod
    def _extract_competitions(text: str) -> Tuple[str, ...]:
        for phrase in _COMPETITION_EXCLUSIONS:
            text = phrase_pattern(phrase).sub(" ", text)
        return tuple(
            competition
            for competition, phrases in COMPETITION_TYPES.items()
            if any(phrase_pattern(p).search(text) for p in phrases)
        )
