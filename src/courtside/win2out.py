"""
Win two and out.

The winner of each match stays on court and the loser goes to the back of
the queue. A team that wins two in a row is crowned (its champion count goes
up), its streak resets and it also leaves the court, queued behind the loser.
Play never ends on its own; the competition is ended manually.
"""
import logging
from typing import Dict, List, Optional

from .models import Match, Win2OutState, Win2OutTeamStatus
from .rotation import (
    RotationResult,
    generate_initial_matches,
    get_teams_by_status as _get_teams_by_status,
    initialize_courts,
    locate_match,
    rotate,
    update_status,
    validate_rotation_state,
)

logger = logging.getLogger(__name__)

WINS_TO_CROWN = 2


def initialize_state(team_ids: List[str], number_of_courts: int = 1) -> Win2OutState:
    courts, queue = initialize_courts(team_ids, number_of_courts)
    return Win2OutState(
        courts=courts,
        queue=queue,
        team_statuses=tuple(Win2OutTeamStatus(team_id=t) for t in team_ids),
    )


def process_match_result(state: Win2OutState, completed_match: Match,
                         competition_id: Optional[str] = None) -> RotationResult:
    """
    Apply one completed match to the win2out state.

    Returns the new state and the next match for the court the match was
    played on, or no match when the queue cannot fill the court.
    """
    validate_rotation_state(state)
    court_index, winner_id, loser_id = locate_match(state, completed_match)
    competition_id = competition_id or completed_match.competition_id

    winner = state.status_for(winner_id)
    loser = state.status_for(loser_id)
    streak = winner.win_streak + 1
    crowned = streak >= WINS_TO_CROWN

    statuses = update_status(
        state.team_statuses, winner_id,
        win_streak=0 if crowned else streak,
        matches_played=winner.matches_played + 1,
        champion_count=winner.champion_count + (1 if crowned else 0),
    )
    statuses = update_status(statuses, loser_id, win_streak=0, matches_played=loser.matches_played + 1)

    if crowned:
        logger.info(f"{winner_id} won {WINS_TO_CROWN} in a row and leaves court {court_index}")
        staying, leaving = [], [loser_id, winner_id]
    else:
        staying, leaving = [winner_id], [loser_id]

    return rotate(state, court_index, staying, leaving, statuses, completed_match, competition_id)


def get_teams_by_status(state: Win2OutState) -> Dict[str, List]:
    """Teams on court and in the queue, plus everyone crowned at least once."""
    grouped = _get_teams_by_status(state)
    grouped['champions'] = [s for s in get_champion_counts(state) if s.champion_count > 0]
    return grouped


def get_champion_counts(state: Win2OutState) -> List[Win2OutTeamStatus]:
    """All team statuses, most crowns first."""
    return sorted(state.team_statuses, key=lambda s: -s.champion_count)
