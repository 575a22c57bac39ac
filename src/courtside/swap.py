"""
Team swap resolution for manual edits of bracket matches.

When an operator puts a team into a pending match while that team already
sits in another pending match of the same round, the two matches trade
teams so no team is ever assigned twice in one round.
"""
import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from .errors import InvariantViolation, NotFoundError, ValidationError
from .models import Match, MATCH_PENDING, find_match, replace_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapResult:
    needs_swap: bool = False
    other_match_id: Optional[str] = None
    other_match_position: Optional[int] = None
    displaced_team_id: Optional[str] = None
    swapping_team_id: Optional[str] = None


@dataclass(frozen=True)
class MatchUpdate:
    match_id: str
    home_team_id: str
    away_team_id: str


def detect_team_swap(current_match: Match, new_home_team_id: str, new_away_team_id: str,
                     all_matches: List[Match]) -> SwapResult:
    """
    Detect if changing teams in a match would require swapping with another match.

    Only an edit that replaces exactly one team with exactly one other team
    can need a swap, and only when the incoming team is already in another
    pending, non-bye match of the same round and bracket.
    """
    original_teams = [t for t in (current_match.home_team_id, current_match.away_team_id) if t]
    new_teams = [t for t in (new_home_team_id, new_away_team_id) if t]

    displaced = [t for t in original_teams if t not in new_teams]
    incoming = [t for t in new_teams if t not in original_teams]
    if len(displaced) != 1 or len(incoming) != 1:
        return SwapResult()

    displaced_team, incoming_team = displaced[0], incoming[0]

    for match in all_matches:
        if (match.id != current_match.id
                and match.competition_id == current_match.competition_id
                and match.round == current_match.round
                and match.bracket == current_match.bracket
                and match.status == MATCH_PENDING
                and not match.is_bye
                and match.has_team(incoming_team)):
            logger.debug(
                f"Moving {incoming_team} into match {current_match.id} displaces {displaced_team} "
                f"into match {match.id}"
            )
            return SwapResult(
                needs_swap=True,
                other_match_id=match.id,
                other_match_position=match.position,
                displaced_team_id=displaced_team,
                swapping_team_id=incoming_team,
            )

    return SwapResult()


def calculate_swap_updates(current_match_id: str, new_home_team_id: str, new_away_team_id: str,
                           other_match_id: str, displaced_team_id: str, swapping_team_id: str,
                           all_matches: List[Match]) -> List[MatchUpdate]:
    """
    Calculate the updates needed for both matches when performing a team swap.

    Both updates must be applied together.
    """
    other_match = find_match(all_matches, other_match_id)
    if other_match is None or not other_match.has_team(swapping_team_id):
        logger.error(f"Swap target {other_match_id} does not hold {swapping_team_id}")
        raise InvariantViolation(f"Match {other_match_id} does not contain team {swapping_team_id}")

    other_home = displaced_team_id if other_match.home_team_id == swapping_team_id else other_match.home_team_id
    other_away = displaced_team_id if other_match.away_team_id == swapping_team_id else other_match.away_team_id

    for match_id, home, away in ((current_match_id, new_home_team_id, new_away_team_id),
                                 (other_match_id, other_home, other_away)):
        if home and home == away:
            logger.error(f"Swap would pair {home} with itself in match {match_id}")
            raise InvariantViolation(f"Swap would pair team {home} with itself")

    return [
        MatchUpdate(match_id=current_match_id, home_team_id=new_home_team_id, away_team_id=new_away_team_id),
        MatchUpdate(match_id=other_match_id, home_team_id=other_home, away_team_id=other_away),
    ]


def apply_swap_updates(matches: List[Match], updates: List[MatchUpdate]) -> List[Match]:
    """Apply every update at once and return the new match list."""
    updated = []
    for update in updates:
        match = find_match(matches, update.match_id)
        if match is None:
            raise NotFoundError(f"Match {update.match_id} not found")
        updated.append(replace(match, home_team_id=update.home_team_id, away_team_id=update.away_team_id))
    return replace_matches(matches, updated)


def edit_match_teams(matches: List[Match], match_id: str, new_home_team_id: str,
                     new_away_team_id: str) -> List[Match]:
    """
    Reassign the teams of a pending match, swapping with a sibling match if needed.
    """
    current = find_match(matches, match_id)
    if current is None:
        raise NotFoundError(f"Match {match_id} not found")
    if current.status != MATCH_PENDING:
        raise ValidationError(f"Match {match_id} is {current.status}; only pending matches can be edited")
    if new_home_team_id and new_home_team_id == new_away_team_id:
        raise ValidationError("A team cannot play against itself")

    result = detect_team_swap(current, new_home_team_id, new_away_team_id, matches)
    if not result.needs_swap:
        return apply_swap_updates(matches, [MatchUpdate(match_id, new_home_team_id, new_away_team_id)])

    updates = calculate_swap_updates(match_id, new_home_team_id, new_away_team_id,
                                     result.other_match_id, result.displaced_team_id,
                                     result.swapping_team_id, matches)
    return apply_swap_updates(matches, updates)
