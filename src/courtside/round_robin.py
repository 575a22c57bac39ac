"""
Round robin scheduling and standings.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import CompetitionConfig, DEFAULT_COMPETITION_CONFIG
from .models import Match, MATCH_COMPLETED, new_match, validate_team_ids

BYE = 'BYE'


def generate_schedule(team_ids: List[str], competition_id: str,
                      series_length: Optional[int] = None) -> List[Match]:
    """
    Generate a round robin schedule where every team plays every other team once.

    Uses the circle method: the last slot stays fixed while the others rotate
    one position per round. With an odd team count a virtual BYE slot is
    added and its pairings are dropped, so each team sits out one round.
    """
    teams = validate_team_ids(team_ids)
    if len(teams) % 2 != 0:
        teams.append(BYE)

    n = len(teams)
    matches = []

    for round_idx in range(n - 1):
        for pairing in range(n // 2):
            home = (round_idx + pairing) % (n - 1)
            away = (n - 1 - pairing + round_idx) % (n - 1)
            if pairing == 0:
                away = n - 1

            home_team_id = teams[home]
            away_team_id = teams[away]
            if BYE in (home_team_id, away_team_id):
                continue

            matches.append(new_match(
                competition_id,
                home_team_id=home_team_id,
                away_team_id=away_team_id,
                round=round_idx + 1,
                position=pairing,
                series_length=series_length,
            ))

    return matches


@dataclass
class RoundRobinStanding:
    team_id: str
    played: int = 0
    won: int = 0
    lost: int = 0
    tied: int = 0
    points_for: int = 0
    points_against: int = 0
    points_diff: int = 0
    competition_points: int = 0

    def to_dict(self) -> Dict:
        return {
            'team_id': self.team_id,
            'played': self.played,
            'won': self.won,
            'lost': self.lost,
            'tied': self.tied,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'points_diff': self.points_diff,
            'competition_points': self.competition_points,
        }


def calculate_standings(team_ids: List[str], matches: List[Match],
                        config: Optional[CompetitionConfig] = None) -> List[RoundRobinStanding]:
    """
    Calculate standings from completed matches.

    Sorted by competition points, then point differential, then points
    scored (all descending). The sort is stable, so teams that are level on
    all three keep their order from ``team_ids``.
    """
    config = config or DEFAULT_COMPETITION_CONFIG
    standings = {team_id: RoundRobinStanding(team_id=team_id) for team_id in team_ids}

    for match in matches:
        if match.status != MATCH_COMPLETED:
            continue
        home = standings.get(match.home_team_id)
        away = standings.get(match.away_team_id)
        if home is None or away is None:
            continue

        home.played += 1
        away.played += 1
        home.points_for += match.home_score
        home.points_against += match.away_score
        away.points_for += match.away_score
        away.points_against += match.home_score

        if match.home_score > match.away_score:
            _record_result(home, away, config)
        elif match.away_score > match.home_score:
            _record_result(away, home, config)
        else:
            home.tied += 1
            away.tied += 1
            if config.points_for_tie:
                home.competition_points += config.points_for_tie
                away.competition_points += config.points_for_tie

        home.points_diff = home.points_for - home.points_against
        away.points_diff = away.points_for - away.points_against

    return sorted(
        standings.values(),
        key=lambda s: (-s.competition_points, -s.points_diff, -s.points_for),
    )


def _record_result(winner: RoundRobinStanding, loser: RoundRobinStanding, config: CompetitionConfig):
    winner.won += 1
    winner.competition_points += config.points_for_win
    loser.lost += 1
    loser.competition_points += config.points_for_loss
