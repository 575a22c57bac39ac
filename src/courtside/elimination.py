"""
Single elimination bracket generation and advancement.

Matches are addressed by (bracket, round, position): ``round`` is 1-based,
``position`` is 0-based, and the winner of (r, p) plays in (r + 1, p // 2),
in the home slot when p is even and the away slot when p is odd.
"""
import math
import time
import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from .errors import InvariantViolation, ValidationError
from .models import (
    Match,
    MATCH_COMPLETED,
    MATCH_PENDING,
    new_match,
    replace_matches,
    validate_team_ids,
)

logger = logging.getLogger(__name__)

SEEDING_STANDARD = 'standard'
SEEDING_SEQUENTIAL = 'sequential'
SEEDING_MODES = (SEEDING_STANDARD, SEEDING_SEQUENTIAL)


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def round_name(round_number: int, total_rounds: int) -> str:
    """Name a round by counting back from the final."""
    return get_round_name(2 ** (total_rounds - round_number + 1))


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_teams)
    return bracket_size - num_teams


def calculate_total_rounds(num_teams: int) -> int:
    """Number of rounds needed to produce a champion from ``num_teams``."""
    if num_teams < 2:
        return 0
    return int(math.log2(calculate_bracket_size(num_teams)))


def calculate_play_in_count(num_teams: int) -> int:
    """Number of teams that must play in round 1 for everyone else to get a bye."""
    return 2 * num_teams - calculate_bracket_size(num_teams)


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Pair each upper seed with its complement
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def seed_teams(team_ids: List[str], play_in_team_ids: Optional[List[str]] = None) -> List[str]:
    """
    Order teams by seed.

    Without play-in teams the given order is the seed order. With play-in
    teams, everyone not playing in takes the top seeds (and so the byes) and
    the play-in teams follow, each group keeping its relative order.
    """
    team_ids = validate_team_ids(team_ids)
    if not play_in_team_ids:
        return team_ids

    play_in = set(play_in_team_ids)
    if len(play_in) != len(play_in_team_ids):
        raise ValidationError("Play-in list contains duplicate ids")
    unknown = play_in - set(team_ids)
    if unknown:
        raise ValidationError(f"Play-in teams are not in the competition: {sorted(unknown)}")

    expected = calculate_play_in_count(len(team_ids))
    if len(play_in) != expected:
        raise ValidationError(
            f"{len(team_ids)} teams need exactly {expected} play-in teams, got {len(play_in)}"
        )

    return [t for t in team_ids if t not in play_in] + [t for t in team_ids if t in play_in]


def create_first_round_pairs(seeded_teams: List[str],
                             seeding: str = SEEDING_STANDARD) -> List[Tuple[Optional[str], Optional[str]]]:
    """
    Pair seeded teams for the first round. ``None`` marks an empty (bye) slot.

    Standard seeding plays 1 vs N, N/2 vs N/2+1 and so on; sequential seeding
    gives the byes to the first teams and pairs the rest in list order.
    """
    num_teams = len(seeded_teams)
    bracket_size = calculate_bracket_size(num_teams)

    if seeding == SEEDING_STANDARD:
        order = _generate_bracket_order(bracket_size)
        seed_to_team = {seed: team for seed, team in enumerate(seeded_teams, start=1)}
        return [
            (seed_to_team.get(order[i]), seed_to_team.get(order[i + 1]))
            for i in range(0, len(order), 2)
        ]

    if seeding == SEEDING_SEQUENTIAL:
        byes = calculate_byes(num_teams)
        pairs = [(team, None) for team in seeded_teams[:byes]]
        rest = seeded_teams[byes:]
        pairs.extend((rest[i], rest[i + 1]) for i in range(0, len(rest), 2))
        return pairs

    raise ValidationError(f"Unknown seeding mode: {seeding}")


def generate_bracket(team_ids: List[str], competition_id: str,
                     play_in_team_ids: Optional[List[str]] = None,
                     seeding: str = SEEDING_STANDARD,
                     series_length: Optional[int] = None,
                     bracket: Optional[str] = None) -> List[Match]:
    """
    Generate every match of a single elimination bracket.

    First round matches hold the seeded teams; later rounds are placeholders
    with empty team ids. Bye matches are created already completed, with the
    single team as winner, and that winner is placed in round 2 straight away.
    """
    seeded_teams = seed_teams(team_ids, play_in_team_ids)
    bracket_size = calculate_bracket_size(len(seeded_teams))
    total_rounds = calculate_total_rounds(len(seeded_teams))

    matches = []
    byes = []
    for position, (home, away) in enumerate(create_first_round_pairs(seeded_teams, seeding)):
        if home is None and away is None:
            continue
        if home is None or away is None:
            team = home or away
            bye = replace(
                new_match(competition_id, home_team_id=team, round=1, position=position,
                          bracket=bracket, series_length=series_length, is_bye=True),
                status=MATCH_COMPLETED,
                winner_id=team,
                completed_at=time.time(),
            )
            matches.append(bye)
            byes.append(bye)
        else:
            matches.append(new_match(competition_id, home_team_id=home, away_team_id=away,
                                     round=1, position=position, bracket=bracket,
                                     series_length=series_length))

    matches_in_round = bracket_size // 2
    for round_number in range(2, total_rounds + 1):
        matches_in_round //= 2
        for position in range(matches_in_round):
            matches.append(new_match(competition_id, round=round_number, position=position,
                                     bracket=bracket, series_length=series_length))

    for bye in byes:
        matches = advance_winner(matches, bye)

    logger.debug(
        f"Generated {len(matches)} matches ({len(byes)} byes, {total_rounds} rounds) "
        f"for competition {competition_id}"
    )
    return matches


def get_next_match_position(round_number: int, position: int) -> Tuple[int, int, str]:
    """Get the (round, position, slot) that the winner of a match advances to."""
    slot = 'home' if position % 2 == 0 else 'away'
    return round_number + 1, position // 2, slot


def get_total_rounds(matches: List[Match], competition_id: Optional[str],
                     bracket: Optional[str] = None) -> int:
    rounds = [m.round for m in matches if m.competition_id == competition_id and m.bracket == bracket]
    return max(rounds) if rounds else 0


def find_bracket_match(matches: List[Match], competition_id: Optional[str], bracket: Optional[str],
                       round_number: int, position: int) -> Optional[Match]:
    for match in matches:
        if (match.competition_id == competition_id and match.bracket == bracket
                and match.round == round_number and match.position == position):
            return match
    return None


def place_team(matches: List[Match], competition_id: Optional[str], bracket: Optional[str],
               round_number: int, position: int, slot: str, team_id: str) -> List[Match]:
    """Write ``team_id`` into one slot of a bracket match. Returns a new list."""
    target = find_bracket_match(matches, competition_id, bracket, round_number, position)
    if target is None:
        logger.error(f"No {bracket or 'bracket'} match at round {round_number} position {position}")
        raise InvariantViolation(
            f"Bracket has no match at round {round_number}, position {position}"
        )

    field_name = 'home_team_id' if slot == 'home' else 'away_team_id'
    if getattr(target, field_name) == team_id:
        return list(matches)
    if target.status != MATCH_PENDING:
        logger.error(f"Refusing to place {team_id} into started match {target.id}")
        raise InvariantViolation(
            f"Match {target.id} has already started; cannot place {team_id} in its {slot} slot"
        )

    logger.debug(f"Placing {team_id} in {slot} slot of match {target.id} (round {round_number})")
    return replace_matches(matches, [replace(target, **{field_name: team_id})])


def advance_winner(matches: List[Match], completed_match: Match) -> List[Match]:
    """
    Move the winner of ``completed_match`` into its next-round slot.

    Returns the updated list; the input is not modified. The final has
    nowhere to advance to, so it returns the matches unchanged. Calling this
    twice with the same match gives the same result.
    """
    if not completed_match.winner_id:
        return list(matches)

    total_rounds = get_total_rounds(matches, completed_match.competition_id, completed_match.bracket)
    if completed_match.round >= total_rounds:
        return list(matches)

    next_round, next_position, slot = get_next_match_position(
        completed_match.round, completed_match.position
    )
    return place_team(matches, completed_match.competition_id, completed_match.bracket,
                      next_round, next_position, slot, completed_match.winner_id)


def is_final(match: Match, matches: List[Match]) -> bool:
    return match.round == get_total_rounds(matches, match.competition_id, match.bracket)


def get_champion(matches: List[Match], bracket: Optional[str] = None) -> Optional[str]:
    """Winner of the final round's match, or None while it is undecided."""
    if not matches:
        return None
    competition_id = matches[0].competition_id
    total_rounds = get_total_rounds(matches, competition_id, bracket)
    final = find_bracket_match(matches, competition_id, bracket, total_rounds, 0)
    if final is None or final.status != MATCH_COMPLETED:
        return None
    return final.winner_id


def get_bracket_structure(matches: List[Match], bracket: Optional[str] = None) -> List[List[Match]]:
    """Group a bracket's matches by round, each round sorted by position."""
    bracket_matches = [m for m in matches if m.bracket == bracket]
    total_rounds = max((m.round for m in bracket_matches), default=0)
    return [
        sorted((m for m in bracket_matches if m.round == r), key=lambda m: m.position)
        for r in range(1, total_rounds + 1)
    ]
