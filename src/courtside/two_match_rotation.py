"""
Two match rotation.

Each team stays on a court for at most two consecutive matches. The loser
of every match rotates out at once; the winner stays unless that was its
second match of the stay, in which case it rotates out too (queued ahead of
the loser). Counters reset whenever a team rotates out.
"""
import logging
from typing import Dict, List, Optional

from .models import Match, TwoMatchRotationState, TwoMatchTeamStatus
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

MATCHES_PER_STAY = 2


def initialize_state(team_ids: List[str], number_of_courts: int = 1) -> TwoMatchRotationState:
    courts, queue = initialize_courts(team_ids, number_of_courts)
    return TwoMatchRotationState(
        courts=courts,
        queue=queue,
        team_statuses=tuple(TwoMatchTeamStatus(team_id=t) for t in team_ids),
    )


def process_match_result(state: TwoMatchRotationState, completed_match: Match,
                         competition_id: Optional[str] = None) -> RotationResult:
    """Apply one completed match and produce the next match for its court."""
    validate_rotation_state(state)
    court_index, winner_id, loser_id = locate_match(state, completed_match)
    competition_id = competition_id or completed_match.competition_id

    winner = state.status_for(winner_id)
    loser = state.status_for(loser_id)
    winner_session = winner.session_matches + 1
    winner_rotates = winner_session >= MATCHES_PER_STAY

    statuses = update_status(
        state.team_statuses, winner_id,
        session_matches=0 if winner_rotates else winner_session,
        total_matches=winner.total_matches + 1,
        total_wins=winner.total_wins + 1,
    )
    statuses = update_status(
        statuses, loser_id,
        session_matches=0,
        total_matches=loser.total_matches + 1,
        total_losses=loser.total_losses + 1,
    )

    if winner_rotates:
        logger.debug(f"{winner_id} played {MATCHES_PER_STAY} straight on court {court_index} and rotates out")
        staying, leaving = [], [winner_id, loser_id]
    else:
        staying, leaving = [winner_id], [loser_id]

    return rotate(state, court_index, staying, leaving, statuses, completed_match, competition_id)


def get_leaderboard(state: TwoMatchRotationState) -> List[TwoMatchTeamStatus]:
    """Teams that have played, sorted by wins then win rate."""
    played = [s for s in state.team_statuses if s.total_matches > 0]
    return sorted(played, key=lambda s: (-s.total_wins, -s.total_wins / s.total_matches))


def get_teams_by_status(state: TwoMatchRotationState) -> Dict[str, List]:
    grouped = _get_teams_by_status(state)
    grouped['leaderboard'] = get_leaderboard(state)
    return grouped


def get_session_match_count(state: TwoMatchRotationState, team_id: str) -> int:
    status = state.status_for(team_id)
    return status.session_matches if status else 0
