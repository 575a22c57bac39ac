"""
Double elimination bracket generation and management.

In double elimination:
- Teams must lose twice to be eliminated
- Winners Bracket: Teams that haven't lost yet
- Losers Bracket: Teams that have lost once
- Grand Final: Winners bracket champion vs Losers bracket champion

There is no bracket reset: the grand final winner is the champion.

The losers bracket alternates between minor rounds (odd round numbers, only
losers bracket survivors) and major rounds (even round numbers, where losers
dropping out of the winners bracket join).
"""
import math
import time
import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from .models import (
    Match,
    MATCH_COMPLETED,
    MATCH_PENDING,
    BRACKET_WINNERS,
    BRACKET_LOSERS,
    BRACKET_GRAND_FINAL,
    new_match,
    replace_matches,
)
from .elimination import (
    SEEDING_STANDARD,
    calculate_bracket_size,
    generate_bracket,
    get_next_match_position,
    get_total_rounds,
    place_team,
)

logger = logging.getLogger(__name__)

Destination = Tuple[str, int, int, str]


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (1-based)."""
    rounds_from_end = total_losers_rounds - round_num
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num}"


def get_winners_round_name(teams_in_round: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_bracket_rounds(bracket_size: int) -> int:
    """
    Calculate number of rounds in losers bracket.
    For N teams in winners bracket (power of 2):
    - Winners bracket has log2(N) rounds
    - Losers bracket has 2 * (log2(N) - 1) rounds

    Pattern: minor, major, minor, major, ... ending with a major round
    """
    if bracket_size < 2:
        return 0
    winners_rounds = int(math.log2(bracket_size))
    return 2 * (winners_rounds - 1)


def get_match_round_name(match: Match, matches: List[Match]) -> str:
    """Display name for any match of a double elimination bracket."""
    if match.bracket == BRACKET_GRAND_FINAL:
        return "Grand Final"
    total = get_total_rounds(matches, match.competition_id, match.bracket)
    if match.bracket == BRACKET_LOSERS:
        return get_losers_round_name(match.round, total)
    return get_winners_round_name(2 ** (total - match.round + 1))


def generate_double_elimination_bracket(team_ids: List[str], competition_id: str,
                                        play_in_team_ids: Optional[List[str]] = None,
                                        seeding: str = SEEDING_STANDARD,
                                        series_length: Optional[int] = None) -> List[Match]:
    """
    Generate every match of a double elimination bracket.

    Returns the winners bracket (``bracket="winners"``), the losers bracket
    (``bracket="losers"``) and a single grand final (``bracket="grand_final"``).

    Losers bracket matches that can only ever receive one team, because a
    winners bracket feeder was a bye, are flagged ``is_bye`` and complete on
    their own once that team arrives. Losers round 1 matches fed only by
    byes can never be played and are not generated.
    """
    winners = generate_bracket(team_ids, competition_id, play_in_team_ids=play_in_team_ids,
                               seeding=seeding, series_length=series_length,
                               bracket=BRACKET_WINNERS)

    bracket_size = calculate_bracket_size(len(team_ids))
    total_losers_rounds = calculate_losers_bracket_rounds(bracket_size)

    first_round_byes = {
        m.position for m in winners if m.round == 1 and m.is_bye
    }

    losers = []
    dead_first_round = set()
    matches_in_round = bracket_size // 4
    for round_number in range(1, total_losers_rounds + 1):
        if round_number > 1 and round_number % 2 == 1:
            matches_in_round //= 2

        for position in range(matches_in_round):
            is_bye = False
            if round_number == 1:
                feeders = {2 * position, 2 * position + 1}
                bye_feeders = len(feeders & first_round_byes)
                if bye_feeders == 2:
                    dead_first_round.add(position)
                    continue
                is_bye = bye_feeders == 1
            elif round_number == 2:
                is_bye = position in dead_first_round

            losers.append(new_match(competition_id, round=round_number, position=position,
                                    bracket=BRACKET_LOSERS, series_length=series_length,
                                    is_bye=is_bye))

    grand_final = new_match(competition_id, round=1, position=0,
                            bracket=BRACKET_GRAND_FINAL, series_length=series_length)

    matches = winners + losers + [grand_final]

    logger.debug(
        f"Generated double elimination bracket for competition {competition_id}: "
        f"{len(winners)} winners, {len(losers)} losers matches"
    )
    return resolve_byes(matches)


def get_loser_destination(matches: List[Match], match: Match) -> Optional[Destination]:
    """Where the loser of a winners bracket match goes as (bracket, round, position, slot)."""
    if match.bracket != BRACKET_WINNERS:
        return None

    total_losers_rounds = get_total_rounds(matches, match.competition_id, BRACKET_LOSERS)
    if total_losers_rounds == 0:
        return BRACKET_GRAND_FINAL, 1, 0, 'away'

    if match.round == 1:
        slot = 'home' if match.position % 2 == 0 else 'away'
        return BRACKET_LOSERS, 1, match.position // 2, slot

    return BRACKET_LOSERS, 2 * (match.round - 1), match.position, 'away'


def get_winner_destination(matches: List[Match], match: Match) -> Optional[Destination]:
    """Where the winner of a bracket match goes as (bracket, round, position, slot)."""
    if match.bracket == BRACKET_GRAND_FINAL:
        return None

    total = get_total_rounds(matches, match.competition_id, match.bracket)

    if match.bracket == BRACKET_WINNERS:
        if match.round >= total:
            return BRACKET_GRAND_FINAL, 1, 0, 'home'
        next_round, next_position, slot = get_next_match_position(match.round, match.position)
        return BRACKET_WINNERS, next_round, next_position, slot

    if match.round >= total:
        return BRACKET_GRAND_FINAL, 1, 0, 'away'
    if match.round % 2 == 1:
        return BRACKET_LOSERS, match.round + 1, match.position, 'home'
    next_round, next_position, slot = get_next_match_position(match.round, match.position)
    return BRACKET_LOSERS, next_round, next_position, slot


def _route(matches: List[Match], source: Match, destination: Optional[Destination],
           team_id: Optional[str]) -> List[Match]:
    if destination is None or not team_id:
        return list(matches)
    bracket, round_number, position, slot = destination
    return place_team(matches, source.competition_id, bracket, round_number, position, slot, team_id)


def resolve_byes(matches: List[Match]) -> List[Match]:
    """
    Auto-complete pending losers bracket byes that have received their team.

    Repeats until nothing changes, since one resolved bye can feed another.
    """
    matches = list(matches)
    while True:
        ready = next(
            (m for m in matches
             if m.is_bye and m.status == MATCH_PENDING and len(m.team_ids) == 1),
            None
        )
        if ready is None:
            return matches

        winner_id = ready.team_ids[0]
        completed = replace(ready, status=MATCH_COMPLETED, winner_id=winner_id, completed_at=time.time())
        logger.debug(f"Bye match {ready.id} ({ready.bracket} round {ready.round}) advances {winner_id}")
        matches = replace_matches(matches, [completed])
        matches = _route(matches, completed, get_winner_destination(matches, completed), winner_id)


def advance_double_elimination(matches: List[Match], completed_match: Match) -> List[Match]:
    """
    Route the winner and loser of ``completed_match``.

    A winners bracket loser drops into its losers bracket slot; a losers
    bracket loser is eliminated. Returns the updated list without modifying
    the input.
    """
    if completed_match.status != MATCH_COMPLETED or not completed_match.winner_id:
        return list(matches)

    matches = replace_matches(matches, [completed_match])
    matches = _route(matches, completed_match,
                     get_winner_destination(matches, completed_match),
                     completed_match.winner_id)
    matches = _route(matches, completed_match,
                     get_loser_destination(matches, completed_match),
                     completed_match.loser_id())
    return resolve_byes(matches)


def get_double_elimination_champion(matches: List[Match]) -> Optional[str]:
    for match in matches:
        if match.bracket == BRACKET_GRAND_FINAL and match.status == MATCH_COMPLETED:
            return match.winner_id
    return None
