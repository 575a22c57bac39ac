"""
Court and queue bookkeeping shared by the rotation formats.

A rotation state holds a fixed set of courts (up to two teams each) and a
FIFO queue of waiting teams. Every team id appears at most once across all
courts and the queue; the engines check this before and after every step.
"""
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvariantViolation, ValidationError
from .models import Court, Match, MATCH_COMPLETED, RotationState, new_match, validate_team_ids

logger = logging.getLogger(__name__)

TEAMS_PER_COURT = 2


@dataclass(frozen=True)
class RotationResult:
    updated_state: RotationState
    next_match: Optional[Match] = None


def initialize_courts(team_ids: List[str], number_of_courts: int = 1) -> Tuple[Tuple[Court, ...], Tuple[str, ...]]:
    """Fill courts in order with the first teams and queue the rest."""
    if number_of_courts < 1:
        raise ValidationError(f"At least one court is required, got {number_of_courts}")
    minimum = number_of_courts * TEAMS_PER_COURT
    team_ids = validate_team_ids(team_ids, minimum=minimum)

    courts = tuple(
        Court(number=index, team_ids=tuple(team_ids[index * 2:index * 2 + 2]))
        for index in range(number_of_courts)
    )
    return courts, tuple(team_ids[minimum:])


def validate_rotation_state(state: RotationState):
    """Raise InvariantViolation unless every placed team id is unique and known."""
    placed = state.placed_team_ids()
    seen = set()
    duplicates = set()
    for team_id in placed:
        if team_id in seen:
            duplicates.add(team_id)
        seen.add(team_id)
    if duplicates:
        logger.error(f"Rotation state places teams more than once: {sorted(duplicates)}")
        raise InvariantViolation(f"Teams appear in more than one place: {sorted(duplicates)}")

    for court in state.courts:
        if len(court.team_ids) > TEAMS_PER_COURT:
            logger.error(f"Court {court.number} holds {len(court.team_ids)} teams")
            raise InvariantViolation(f"Court {court.number} holds more than {TEAMS_PER_COURT} teams")

    known = {status.team_id for status in state.team_statuses}
    unknown = seen - known
    if unknown:
        logger.error(f"Rotation state places teams without a status record: {sorted(unknown)}")
        raise InvariantViolation(f"Teams without a status record: {sorted(unknown)}")


def locate_match(state: RotationState, match: Match) -> Tuple[int, str, str]:
    """
    Find the court a completed match was played on.

    Returns (court index, winner id, loser id). The match must be completed
    with a winner, and both of its teams must share one court.
    """
    if match.status != MATCH_COMPLETED or not match.winner_id:
        raise ValidationError(f"Match {match.id} has no winner to process")
    if match.home_team_id == match.away_team_id:
        logger.error(f"Match {match.id} pairs {match.home_team_id} with itself")
        raise InvariantViolation(f"Match {match.id} pairs a team with itself")

    winner_id = match.winner_id
    loser_id = match.loser_id()
    court_index = state.court_index_for(winner_id)
    if court_index is None or loser_id not in state.courts[court_index].team_ids:
        logger.error(
            f"Match {match.id} ({match.home_team_id} vs {match.away_team_id}) "
            f"does not correspond to any court"
        )
        raise InvariantViolation(f"Teams of match {match.id} are not on the same court")
    return court_index, winner_id, loser_id


def update_status(statuses: Sequence, team_id: str, **changes) -> Tuple:
    return tuple(replace(s, **changes) if s.team_id == team_id else s for s in statuses)


def rotate(state: RotationState, court_index: int, staying: List[str], leaving: List[str],
           team_statuses: Tuple, completed_match: Match,
           competition_id: Optional[str]) -> RotationResult:
    """
    Send ``leaving`` to the back of the queue in order, then refill the court
    from the queue front. A next match is created only when the court is full.
    """
    queue = list(state.queue) + list(leaving)
    occupants = list(staying)
    while len(occupants) < TEAMS_PER_COURT and queue:
        occupants.append(queue.pop(0))

    courts = list(state.courts)
    courts[court_index] = replace(courts[court_index], team_ids=tuple(occupants))
    updated_state = replace(state, courts=tuple(courts), queue=tuple(queue), team_statuses=team_statuses)
    validate_rotation_state(updated_state)

    next_match = None
    if len(occupants) == TEAMS_PER_COURT:
        next_match = new_match(
            competition_id,
            home_team_id=occupants[0],
            away_team_id=occupants[1],
            round=completed_match.round + 1,
            position=courts[court_index].number,
        )
        logger.debug(f"Court {court_index}: next match {occupants[0]} vs {occupants[1]}")
    else:
        logger.info(f"Court {court_index} waits for more teams ({len(occupants)} on court)")

    return RotationResult(updated_state=updated_state, next_match=next_match)


def generate_initial_matches(competition_id: str, state: RotationState) -> List[Match]:
    """One pending round 1 match per full court; ``position`` is the court number."""
    validate_rotation_state(state)
    return [
        new_match(competition_id, home_team_id=court.team_ids[0], away_team_id=court.team_ids[1],
                  round=1, position=court.number)
        for court in state.courts
        if len(court.team_ids) == TEAMS_PER_COURT
    ]


def reorder_queue(state: RotationState, new_queue: List[str]) -> RotationState:
    """Replace the queue order. ``new_queue`` must hold exactly the queued teams."""
    if sorted(new_queue) != sorted(state.queue) or len(set(new_queue)) != len(new_queue):
        raise ValidationError("New queue order must contain exactly the currently queued teams")
    return replace(state, queue=tuple(new_queue))


def swap_rotation_teams(state: RotationState, team_a: str, team_b: str) -> RotationState:
    """Exchange the places (court slot or queue position) of two teams."""
    if team_a == team_b:
        raise ValidationError("Cannot swap a team with itself")
    placed = set(state.placed_team_ids())
    missing = [t for t in (team_a, team_b) if t not in placed]
    if missing:
        raise ValidationError(f"Teams are not placed in this rotation: {missing}")

    def swap(team_id):
        if team_id == team_a:
            return team_b
        if team_id == team_b:
            return team_a
        return team_id

    courts = tuple(
        replace(court, team_ids=tuple(swap(t) for t in court.team_ids))
        for court in state.courts
    )
    updated = replace(state, courts=courts, queue=tuple(swap(t) for t in state.queue))
    validate_rotation_state(updated)
    return updated


def get_teams_by_status(state: RotationState) -> Dict[str, List]:
    """Status records grouped as teams on court (court order) and in the queue (queue order)."""
    on_court = [state.status_for(t) for court in state.courts for t in court.team_ids]
    in_queue = [state.status_for(t) for t in state.queue]
    return {'on_court': on_court, 'in_queue': in_queue}
