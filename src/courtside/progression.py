"""
Competition and match lifecycle.

Matches move ``pending -> in_progress -> completed``; only bracket byes are
created already completed. Completing a match computes everything it
causes (bracket advancement, the next rotation match, the competition
finishing) and returns it as one ``ProgressionResult``; nothing is applied
until the caller applies that result.
"""
import time
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from . import win2out, two_match_rotation
from .config import CompetitionConfig, DEFAULT_INSTANT_WIN_SCORE
from .double_elimination import advance_double_elimination, generate_double_elimination_bracket
from .elimination import SEEDING_STANDARD, advance_winner, generate_bracket, is_final
from .errors import InvariantViolation, NotFoundError, ValidationError
from .models import (
    Competition,
    Match,
    ScoreEvent,
    Team,
    COMPETITION_DRAFT,
    COMPETITION_IN_PROGRESS,
    COMPETITION_COMPLETED,
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    FORMAT_DOUBLE_ELIMINATION,
    FORMAT_WIN2OUT,
    FORMAT_TWO_MATCH_ROTATION,
    MATCH_PENDING,
    MATCH_IN_PROGRESS,
    MATCH_COMPLETED,
    BRACKET_GRAND_FINAL,
    SCORE_ADD,
    SCORE_DEDUCT,
    SIDE_HOME,
    SIDES,
    find_match,
    generate_id,
    new_match,
    replace_matches,
    validate_team_ids,
)
from .rotation import reorder_queue, swap_rotation_teams
from .round_robin import calculate_standings, generate_schedule

logger = logging.getLogger(__name__)

ROTATION_ENGINES = {
    FORMAT_WIN2OUT: win2out,
    FORMAT_TWO_MATCH_ROTATION: two_match_rotation,
}


@dataclass(frozen=True)
class StartResult:
    competition: Competition
    matches: List[Match]


@dataclass(frozen=True)
class ProgressionResult:
    """Everything one ``complete_match`` call changes.

    ``match`` is the match that was scored (completed, or still in progress
    when a best-of series continues). ``updated_matches`` are other existing
    matches that changed, e.g. bracket slots that received a team.
    """
    match: Match
    updated_matches: Tuple[Match, ...] = ()
    new_matches: Tuple[Match, ...] = ()
    competition: Optional[Competition] = None
    series_continues: bool = False

    @property
    def new_match_id(self) -> Optional[str]:
        return self.new_matches[0].id if self.new_matches else None

    def apply(self, matches: List[Match]) -> List[Match]:
        """Return ``matches`` with this result written in."""
        return replace_matches(matches, [self.match, *self.updated_matches]) + list(self.new_matches)


# ============================================
# Competitions
# ============================================

def create_competition(name: str, format: str, team_ids: Optional[List[str]] = None,
                       number_of_courts: int = 1, match_series_length: Optional[int] = None,
                       config: Optional[CompetitionConfig] = None) -> Competition:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Competition name is required')
    if number_of_courts < 1:
        raise ValidationError('At least one court is required')
    _validate_series_length(match_series_length)
    return Competition(
        id=generate_id(),
        name=name,
        format=format,
        team_ids=tuple(validate_team_ids(team_ids or [], minimum=0)),
        number_of_courts=number_of_courts,
        match_series_length=match_series_length,
        config=config,
    )


def update_competition_teams(competition: Competition, team_ids: List[str]) -> Competition:
    """Replace the team list. Only allowed while the competition is a draft."""
    if competition.status != COMPETITION_DRAFT:
        raise ValidationError(f"Competition {competition.id} has started; its teams are frozen")
    return replace(competition, team_ids=tuple(validate_team_ids(team_ids, minimum=0)))


def start_competition(competition: Competition, play_in_team_ids: Optional[List[str]] = None,
                      seeding: str = SEEDING_STANDARD) -> StartResult:
    """Generate the opening matches for the competition's format and mark it in progress."""
    if competition.status != COMPETITION_DRAFT:
        raise ValidationError(f"Competition {competition.id} is already {competition.status}")

    team_ids = list(competition.team_ids)
    series_length = competition.match_series_length
    rotation_state = None

    if competition.format == FORMAT_ROUND_ROBIN:
        matches = generate_schedule(team_ids, competition.id, series_length=series_length)
    elif competition.format == FORMAT_SINGLE_ELIMINATION:
        matches = generate_bracket(team_ids, competition.id, play_in_team_ids=play_in_team_ids,
                                   seeding=seeding, series_length=series_length)
    elif competition.format == FORMAT_DOUBLE_ELIMINATION:
        matches = generate_double_elimination_bracket(team_ids, competition.id,
                                                      play_in_team_ids=play_in_team_ids,
                                                      seeding=seeding, series_length=series_length)
    else:
        engine = ROTATION_ENGINES[competition.format]
        rotation_state = engine.initialize_state(team_ids, competition.number_of_courts)
        matches = engine.generate_initial_matches(competition.id, rotation_state)

    started = replace(competition, status=COMPETITION_IN_PROGRESS, rotation_state=rotation_state)
    logger.info(f"Started {competition.format} competition {competition.name!r} with {len(matches)} matches")
    return StartResult(competition=started, matches=matches)


def complete_competition(competition: Competition, winner_id: Optional[str] = None) -> Competition:
    """End a competition, optionally naming its winner."""
    if competition.status == COMPETITION_COMPLETED:
        raise ValidationError(f"Competition {competition.id} is already completed")
    if winner_id and winner_id not in competition.team_ids:
        raise ValidationError(f"Team {winner_id} is not in competition {competition.id}")
    logger.info(f"Competition {competition.name!r} completed, winner: {winner_id or 'none'}")
    return replace(competition, status=COMPETITION_COMPLETED, winner_id=winner_id, completed_at=time.time())


def reorder_competition_queue(competition: Competition, new_queue: List[str]) -> Competition:
    _require_rotation(competition)
    return replace(competition, rotation_state=reorder_queue(competition.rotation_state, new_queue))


def swap_court_teams(competition: Competition, matches: List[Match],
                     team_a: str, team_b: str) -> Tuple[Competition, List[Match]]:
    """
    Exchange two teams' places in a rotation, updating pending matches they are in.
    """
    _require_rotation(competition)
    for match in matches:
        if (match.competition_id == competition.id and match.status == MATCH_IN_PROGRESS
                and (match.has_team(team_a) or match.has_team(team_b))):
            raise ValidationError(f"Match {match.id} is in progress; finish it before swapping")

    state = swap_rotation_teams(competition.rotation_state, team_a, team_b)
    swapped = {team_a: team_b, team_b: team_a}
    updated = [
        replace(m,
                home_team_id=swapped.get(m.home_team_id, m.home_team_id),
                away_team_id=swapped.get(m.away_team_id, m.away_team_id))
        for m in matches
        if m.competition_id == competition.id and m.status == MATCH_PENDING
        and (m.has_team(team_a) or m.has_team(team_b))
    ]
    return replace(competition, rotation_state=state), replace_matches(matches, updated)


def _require_rotation(competition: Competition):
    if not competition.is_rotation or competition.rotation_state is None:
        raise ValidationError(f"Competition {competition.id} has no court rotation")


# ============================================
# Deletion
# ============================================

def delete_team(teams: List[Team], competitions: List[Competition], matches: List[Match],
                team_id: str) -> List[Team]:
    """
    Return ``teams`` without ``team_id``.

    A team cannot be deleted while a draft or in-progress competition lists
    it, or while an unfinished match outside a completed competition has it
    on court. Completed records keep the id.
    """
    if not any(t.id == team_id for t in teams):
        raise NotFoundError(f"Team {team_id} not found")

    finished = set()
    for competition in competitions:
        if competition.status == COMPETITION_COMPLETED:
            finished.add(competition.id)
        elif team_id in competition.team_ids:
            raise ValidationError(
                f"Team {team_id} is in {competition.status} competition {competition.name!r}"
            )

    for match in matches:
        if match.status == MATCH_COMPLETED or match.competition_id in finished:
            continue
        if match.has_team(team_id):
            raise ValidationError(f"Team {team_id} is still playing in match {match.id}")

    logger.info(f"Deleted team {team_id}")
    return [t for t in teams if t.id != team_id]


def delete_competition(competitions: List[Competition], matches: List[Match],
                       competition_id: str) -> Tuple[List[Competition], List[Match]]:
    """Remove a competition together with all of its matches."""
    if not any(c.id == competition_id for c in competitions):
        raise NotFoundError(f"Competition {competition_id} not found")
    remaining = [m for m in matches if m.competition_id != competition_id]
    logger.info(f"Deleted competition {competition_id} and {len(matches) - len(remaining)} matches")
    return [c for c in competitions if c.id != competition_id], remaining


# ============================================
# Matches
# ============================================

def create_quick_match(home_team_id: str, away_team_id: str,
                       series_length: Optional[int] = None) -> Match:
    """A match that belongs to no competition."""
    if not home_team_id or not away_team_id:
        raise ValidationError('Both teams are required')
    if home_team_id == away_team_id:
        raise ValidationError('A team cannot play against itself')
    _validate_series_length(series_length)
    return new_match(None, home_team_id=home_team_id, away_team_id=away_team_id,
                     series_length=series_length)


def start_match(match: Match) -> Match:
    if match.status != MATCH_PENDING:
        raise ValidationError(f"Match {match.id} is {match.status}; only pending matches can start")
    if not match.home_team_id or not match.away_team_id:
        raise ValidationError(f"Match {match.id} does not have both teams yet")
    logger.debug(f"Match {match.id} started: {match.home_team_id} vs {match.away_team_id}")
    return replace(match, status=MATCH_IN_PROGRESS)


def update_match_score(match: Match, home_score: int, away_score: int) -> Match:
    """Set the live score of a match that has not been completed."""
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match.id} is already completed")
    _validate_scores(home_score, away_score)
    return replace(match, home_score=home_score, away_score=away_score)


def add_point(match: Match, side: str) -> Match:
    """Add one point to ``side`` ('home' or 'away') and record it in the score history."""
    _require_live_side(match, side)
    return _change_score(match, side, 1, SCORE_ADD)


def deduct_point(match: Match, side: str) -> Match:
    """Take one point from ``side``. A side already at 0 is returned unchanged."""
    _require_live_side(match, side)
    if _side_score(match, side) <= 0:
        return match
    return _change_score(match, side, -1, SCORE_DEDUCT)


def undo_point(match: Match) -> Match:
    """
    Revert the newest point change.

    The side it touched goes back to the score it had before; with no
    history the match is returned unchanged.
    """
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match.id} is already completed")
    if not match.score_history:
        return match
    event = match.score_history[0]
    logger.debug(f"Match {match.id}: undo {event.action} on {event.side}, back to {event.previous_score}")
    return replace(match, score_history=match.score_history[1:],
                   **{f'{event.side}_score': event.previous_score})


def reset_score(match: Match) -> Match:
    """Put both sides back to 0 and forget the score history."""
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match.id} is already completed")
    return replace(match, home_score=0, away_score=0, score_history=())


def _require_live_side(match: Match, side: str):
    if side not in SIDES:
        raise ValidationError(f"Side must be one of {', '.join(SIDES)}, not {side!r}")
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match.id} is already completed")


def _side_score(match: Match, side: str) -> int:
    return match.home_score if side == SIDE_HOME else match.away_score


def _change_score(match: Match, side: str, delta: int, action: str) -> Match:
    previous = _side_score(match, side)
    event = ScoreEvent(
        id=generate_id(),
        side=side,
        team_id=match.home_team_id if side == SIDE_HOME else match.away_team_id,
        action=action,
        previous_score=previous,
        new_score=previous + delta,
    )
    return replace(match, score_history=(event,) + match.score_history,
                   **{f'{side}_score': event.new_score})


def complete_match(matches: List[Match], match_id: str, home_score: int, away_score: int,
                   competition: Optional[Competition] = None) -> ProgressionResult:
    """
    Record the final score of an in-progress match.

    ``matches`` must include every match of the competition. Only a quick
    match (no ``competition_id``) may be completed without a competition.
    """
    match = find_match(matches, match_id)
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match_id} is already completed")
    if match.status != MATCH_IN_PROGRESS:
        raise ValidationError(f"Match {match_id} has not been started")
    _validate_scores(home_score, away_score)

    if competition is None and match.competition_id:
        raise ValidationError(
            f"Match {match_id} belongs to competition {match.competition_id}; pass the competition to complete it"
        )
    if competition is not None:
        if competition.id != match.competition_id:
            raise ValidationError(f"Match {match_id} does not belong to competition {competition.id}")
        if competition.status != COMPETITION_IN_PROGRESS:
            raise ValidationError(f"Competition {competition.id} is {competition.status}")

    if home_score == away_score and not _ties_allowed(competition, match):
        raise ValidationError('Ties are not allowed; one side must score more')

    if match.is_series:
        return _record_series_game(matches, match, home_score, away_score, competition)

    winner_id = None
    if home_score > away_score:
        winner_id = match.home_team_id
    elif away_score > home_score:
        winner_id = match.away_team_id

    completed = replace(match, status=MATCH_COMPLETED, home_score=home_score, away_score=away_score,
                        winner_id=winner_id, completed_at=time.time())
    return _progress(matches, completed, competition)


def record_instant_win(matches: List[Match], match_id: str, winner_id: str,
                       competition: Optional[Competition] = None,
                       winning_score: int = DEFAULT_INSTANT_WIN_SCORE) -> ProgressionResult:
    """Start the match if needed and complete it with ``winning_score`` to 0."""
    match = find_match(matches, match_id)
    if match is None:
        raise NotFoundError(f"Match {match_id} not found")
    if not match.has_team(winner_id):
        raise ValidationError(f"Team {winner_id} is not playing in match {match_id}")
    if winning_score <= 0:
        raise ValidationError('Winning score must be positive')

    if match.status == MATCH_PENDING:
        match = start_match(match)
        matches = replace_matches(matches, [match])

    if winner_id == match.home_team_id:
        home_score, away_score = winning_score, 0
    else:
        home_score, away_score = 0, winning_score
    return complete_match(matches, match_id, home_score, away_score, competition)


def _record_series_game(matches: List[Match], match: Match, home_score: int, away_score: int,
                        competition: Optional[Competition]) -> ProgressionResult:
    home_wins = (match.home_wins or 0) + (1 if home_score > away_score else 0)
    away_wins = (match.away_wins or 0) + (1 if away_score > home_score else 0)
    needed = match.series_length // 2 + 1

    if home_wins < needed and away_wins < needed:
        logger.debug(f"Series {match.id}: game {match.series_game} done, {home_wins}-{away_wins}")
        continued = replace(match, home_wins=home_wins, away_wins=away_wins,
                            series_game=(match.series_game or 1) + 1, home_score=0, away_score=0,
                            score_history=())
        return ProgressionResult(match=continued, competition=competition, series_continues=True)

    winner_id = match.home_team_id if home_wins >= needed else match.away_team_id
    completed = replace(match, status=MATCH_COMPLETED, home_score=home_score, away_score=away_score,
                        home_wins=home_wins, away_wins=away_wins, winner_id=winner_id,
                        completed_at=time.time())
    return _progress(matches, completed, competition)


def _progress(matches: List[Match], completed: Match,
              competition: Optional[Competition]) -> ProgressionResult:
    if competition is None:
        return ProgressionResult(match=completed)

    after = replace_matches(matches, [completed])
    new_matches = ()

    if competition.format == FORMAT_ROUND_ROBIN:
        own = [m for m in after if m.competition_id == competition.id]
        if all(m.status == MATCH_COMPLETED for m in own):
            standings = calculate_standings(list(competition.team_ids), own, competition.effective_config)
            competition = complete_competition(competition, standings[0].team_id if standings else None)

    elif competition.format == FORMAT_SINGLE_ELIMINATION:
        after = advance_winner(after, completed)
        if is_final(completed, after):
            competition = complete_competition(competition, completed.winner_id)

    elif competition.format == FORMAT_DOUBLE_ELIMINATION:
        after = advance_double_elimination(after, completed)
        if completed.bracket == BRACKET_GRAND_FINAL:
            competition = complete_competition(competition, completed.winner_id)

    else:
        if competition.rotation_state is None:
            logger.error(f"Competition {competition.id} is {competition.status} without a rotation state")
            raise InvariantViolation(f"Competition {competition.id} has no rotation state")
        engine = ROTATION_ENGINES[competition.format]
        rotation = engine.process_match_result(competition.rotation_state, completed, competition.id)
        competition = replace(competition, rotation_state=rotation.updated_state)
        if rotation.next_match is not None:
            new_matches = (rotation.next_match,)

    before = {m.id: m for m in matches}
    updated = tuple(m for m in after if m.id != completed.id and before.get(m.id) != m)
    for m in updated:
        logger.debug(f"Match {completed.id} updated match {m.id} ({m.home_team_id} vs {m.away_team_id})")

    return ProgressionResult(match=completed, updated_matches=updated, new_matches=new_matches,
                             competition=competition)


def _ties_allowed(competition: Optional[Competition], match: Match) -> bool:
    if match.is_series or competition is None:
        return False
    return competition.format == FORMAT_ROUND_ROBIN and competition.effective_config.allow_ties


def _validate_scores(home_score, away_score):
    for score in (home_score, away_score):
        if isinstance(score, bool) or not isinstance(score, int):
            raise ValidationError(f"Scores must be whole numbers, got {score!r}")
        if score < 0:
            raise ValidationError(f"Scores cannot be negative, got {score}")


def _validate_series_length(series_length: Optional[int]):
    if series_length is None:
        return
    if series_length < 1 or series_length % 2 == 0:
        raise ValidationError(f"Series length must be a positive odd number, got {series_length}")
