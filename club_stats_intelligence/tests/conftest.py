"""Shared fixtures: a small roster and a fixed clock (15 March 2024, season 2023/24)."""

from datetime import date

import pytest

from club_stats_intelligence.src.database import build_roster

PLAYERS = ["Luke Bangs", "Oli Goddard", "Jonny Sourris", "Dan Smith", "Tom Smith"]


def fixed_today() -> date:
    return date(2024, 3, 15)


@pytest.fixture
def roster():
    return build_roster(PLAYERS)


@pytest.fixture
def today():
    return fixed_today
