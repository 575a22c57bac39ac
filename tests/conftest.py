"""
Shared pytest fixtures for courtside tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from courtside.models import MATCH_IN_PROGRESS, find_match
from courtside import progression


@pytest.fixture
def four_teams():
    return ['A', 'B', 'C', 'D']


@pytest.fixture
def make_competition():
    """Build a draft competition of any format."""
    def _make(format, team_ids, **kwargs):
        return progression.create_competition(f"Test {format}", format, team_ids=team_ids, **kwargs)
    return _make


@pytest.fixture
def started():
    """Start a competition and return (competition, matches)."""
    def _start(competition, **kwargs):
        result = progression.start_competition(competition, **kwargs)
        return result.competition, list(result.matches)
    return _start


@pytest.fixture
def play():
    """Start and complete one match, returning the applied (competition, matches, result)."""
    def _play(competition, matches, match_id, home_score, away_score):
        match = find_match(matches, match_id)
        if match.status != MATCH_IN_PROGRESS:
            matches = [progression.start_match(m) if m.id == match_id else m for m in matches]
        result = progression.complete_match(matches, match_id, home_score, away_score, competition)
        return result.competition, result.apply(matches), result
    return _play


@pytest.fixture
def win():
    """Complete a match so that ``winner_id`` wins 21-10."""
    def _win(competition, matches, match_id, winner_id):
        result = progression.record_instant_win(matches, match_id, winner_id, competition, winning_score=21)
        return result.competition, result.apply(matches), result
    return _win


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "state.yaml")
