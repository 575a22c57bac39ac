"""
Records exchanged between the competition core and its callers.

All records are frozen; the core never edits a record in place; it returns
new ones built with ``dataclasses.replace``.
"""
import time
import uuid
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .config import CompetitionConfig, DEFAULT_COMPETITION_CONFIG, get_competition_config
from .errors import InvariantViolation, ValidationError

logger = logging.getLogger(__name__)

FORMAT_ROUND_ROBIN = 'round_robin'
FORMAT_SINGLE_ELIMINATION = 'single_elimination'
FORMAT_DOUBLE_ELIMINATION = 'double_elimination'
FORMAT_WIN2OUT = 'win2out'
FORMAT_TWO_MATCH_ROTATION = 'two_match_rotation'

COMPETITION_FORMATS = (
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    FORMAT_DOUBLE_ELIMINATION,
    FORMAT_WIN2OUT,
    FORMAT_TWO_MATCH_ROTATION,
)
ELIMINATION_FORMATS = (FORMAT_SINGLE_ELIMINATION, FORMAT_DOUBLE_ELIMINATION)
ROTATION_FORMATS = (FORMAT_WIN2OUT, FORMAT_TWO_MATCH_ROTATION)

COMPETITION_DRAFT = 'draft'
COMPETITION_IN_PROGRESS = 'in_progress'
COMPETITION_COMPLETED = 'completed'

MATCH_PENDING = 'pending'
MATCH_IN_PROGRESS = 'in_progress'
MATCH_COMPLETED = 'completed'

BRACKET_WINNERS = 'winners'
BRACKET_LOSERS = 'losers'
BRACKET_GRAND_FINAL = 'grand_final'

SIDE_HOME = 'home'
SIDE_AWAY = 'away'
SIDES = (SIDE_HOME, SIDE_AWAY)

SCORE_ADD = 'add'
SCORE_DEDUCT = 'deduct'


def generate_id() -> str:
    """Generate a unique record id."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    color: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Team':
        return cls(
            id=data['id'],
            name=data['name'],
            color=data.get('color'),
            created_at=data.get('created_at', time.time()),
        )


def create_team(name: str, color: Optional[str] = None) -> Team:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Team name is required')
    return Team(id=generate_id(), name=name, color=color)


def rename_team(team: Team, name: str, color: Optional[str] = None) -> Team:
    """Return a copy of ``team`` with a new name and color. The id never changes."""
    name = (name or '').strip()
    if not name:
        raise ValidationError('Team name is required')
    return replace(team, name=name, color=color)


@dataclass(frozen=True)
class ScoreEvent:
    """One point added to or taken from one side of a live match."""
    id: str
    side: str
    team_id: str
    action: str
    previous_score: int
    new_score: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'side': self.side,
            'team_id': self.team_id,
            'action': self.action,
            'previous_score': self.previous_score,
            'new_score': self.new_score,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ScoreEvent':
        return cls(
            id=data['id'],
            side=data['side'],
            team_id=data.get('team_id') or '',
            action=data['action'],
            previous_score=data['previous_score'],
            new_score=data['new_score'],
            timestamp=data.get('timestamp', time.time()),
        )


@dataclass(frozen=True)
class Match:
    """A single match.

    Empty team ids mean the slot is not known yet (bracket placeholders).
    ``position`` is 0-based within its round; ``round`` is 1-based.
    """
    id: str
    competition_id: Optional[str]
    home_team_id: str = ''
    away_team_id: str = ''
    home_score: int = 0
    away_score: int = 0
    status: str = MATCH_PENDING
    round: int = 1
    position: int = 0
    bracket: Optional[str] = None
    winner_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    series_length: Optional[int] = None
    home_wins: Optional[int] = None
    away_wins: Optional[int] = None
    series_game: Optional[int] = None
    is_bye: bool = False
    score_history: Tuple[ScoreEvent, ...] = ()

    @property
    def team_ids(self) -> Tuple[str, ...]:
        return tuple(t for t in (self.home_team_id, self.away_team_id) if t)

    @property
    def is_series(self) -> bool:
        return bool(self.series_length and self.series_length > 1)

    def has_team(self, team_id: str) -> bool:
        return bool(team_id) and team_id in (self.home_team_id, self.away_team_id)

    def loser_id(self) -> Optional[str]:
        if not self.winner_id:
            return None
        if self.winner_id == self.home_team_id:
            return self.away_team_id or None
        return self.home_team_id or None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'competition_id': self.competition_id,
            'home_team_id': self.home_team_id,
            'away_team_id': self.away_team_id,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'status': self.status,
            'round': self.round,
            'position': self.position,
            'bracket': self.bracket,
            'winner_id': self.winner_id,
            'created_at': self.created_at,
            'completed_at': self.completed_at,
            'series_length': self.series_length,
            'home_wins': self.home_wins,
            'away_wins': self.away_wins,
            'series_game': self.series_game,
            'is_bye': self.is_bye,
            'score_history': [e.to_dict() for e in self.score_history],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            id=data['id'],
            competition_id=data.get('competition_id'),
            home_team_id=data.get('home_team_id') or '',
            away_team_id=data.get('away_team_id') or '',
            home_score=data.get('home_score', 0),
            away_score=data.get('away_score', 0),
            status=data.get('status', MATCH_PENDING),
            round=data.get('round', 1),
            position=data.get('position', 0),
            bracket=data.get('bracket'),
            winner_id=data.get('winner_id'),
            created_at=data.get('created_at', time.time()),
            completed_at=data.get('completed_at'),
            series_length=data.get('series_length'),
            home_wins=data.get('home_wins'),
            away_wins=data.get('away_wins'),
            series_game=data.get('series_game'),
            is_bye=bool(data.get('is_bye', False)),
            score_history=tuple(ScoreEvent.from_dict(e) for e in data.get('score_history') or ()),
        )


def new_match(competition_id: Optional[str], home_team_id: str = '', away_team_id: str = '',
              round: int = 1, position: int = 0, bracket: Optional[str] = None,
              series_length: Optional[int] = None, is_bye: bool = False) -> Match:
    """Create a fresh pending match with a new id."""
    in_series = bool(series_length and series_length > 1)
    return Match(
        id=generate_id(),
        competition_id=competition_id,
        home_team_id=home_team_id,
        away_team_id=away_team_id,
        round=round,
        position=position,
        bracket=bracket,
        series_length=series_length if in_series else None,
        home_wins=0 if in_series else None,
        away_wins=0 if in_series else None,
        series_game=1 if in_series else None,
        is_bye=is_bye,
    )


def validate_team_ids(team_ids: List[str], minimum: int = 2) -> List[str]:
    """Check a team list is unique and long enough. Returns it as a list."""
    team_ids = list(team_ids)
    if len(team_ids) < minimum:
        raise ValidationError(f"At least {minimum} teams are required, got {len(team_ids)}")
    if len(set(team_ids)) != len(team_ids):
        raise ValidationError("Team list contains duplicate ids")
    if any(not team_id for team_id in team_ids):
        raise ValidationError("Team ids must be non-empty")
    return team_ids


def find_match(matches: List[Match], match_id: str) -> Optional[Match]:
    for match in matches:
        if match.id == match_id:
            return match
    return None


def replace_matches(matches: List[Match], updated: List[Match]) -> List[Match]:
    """Return ``matches`` with every match in ``updated`` substituted by id."""
    by_id = {m.id: m for m in updated}
    return [by_id.get(m.id, m) for m in matches]


# ============================================
# Rotation formats
# ============================================

@dataclass(frozen=True)
class Court:
    number: int
    team_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {'number': self.number, 'team_ids': list(self.team_ids)}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Court':
        return cls(number=data['number'], team_ids=tuple(data.get('team_ids') or ()))


@dataclass(frozen=True)
class Win2OutTeamStatus:
    team_id: str
    win_streak: int = 0
    matches_played: int = 0
    champion_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'team_id': self.team_id,
            'win_streak': self.win_streak,
            'matches_played': self.matches_played,
            'champion_count': self.champion_count,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Win2OutTeamStatus':
        return cls(
            team_id=data['team_id'],
            win_streak=data.get('win_streak', 0),
            matches_played=data.get('matches_played', 0),
            champion_count=data.get('champion_count', 0),
        )


@dataclass(frozen=True)
class TwoMatchTeamStatus:
    team_id: str
    session_matches: int = 0
    total_matches: int = 0
    total_wins: int = 0
    total_losses: int = 0

    def to_dict(self) -> Dict:
        return {
            'team_id': self.team_id,
            'session_matches': self.session_matches,
            'total_matches': self.total_matches,
            'total_wins': self.total_wins,
            'total_losses': self.total_losses,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'TwoMatchTeamStatus':
        return cls(
            team_id=data['team_id'],
            session_matches=data.get('session_matches', 0),
            total_matches=data.get('total_matches', 0),
            total_wins=data.get('total_wins', 0),
            total_losses=data.get('total_losses', 0),
        )


@dataclass(frozen=True)
class RotationState:
    """Courts, waiting queue and per-team counters of a rotation format."""
    courts: Tuple[Court, ...] = ()
    queue: Tuple[str, ...] = ()
    team_statuses: Tuple = ()

    status_class = None
    format = None

    def status_for(self, team_id: str):
        for status in self.team_statuses:
            if status.team_id == team_id:
                return status
        return None

    def court_index_for(self, team_id: str) -> Optional[int]:
        for index, court in enumerate(self.courts):
            if team_id in court.team_ids:
                return index
        return None

    def placed_team_ids(self) -> List[str]:
        """All team ids on courts (court order) followed by the queue."""
        placed = []
        for court in self.courts:
            placed.extend(court.team_ids)
        placed.extend(self.queue)
        return placed

    def to_dict(self) -> Dict:
        return {
            'courts': [c.to_dict() for c in self.courts],
            'queue': list(self.queue),
            'team_statuses': [s.to_dict() for s in self.team_statuses],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'RotationState':
        return cls(
            courts=tuple(Court.from_dict(c) for c in data.get('courts') or ()),
            queue=tuple(data.get('queue') or ()),
            team_statuses=tuple(cls.status_class.from_dict(s) for s in data.get('team_statuses') or ()),
        )


@dataclass(frozen=True)
class Win2OutState(RotationState):
    status_class = Win2OutTeamStatus
    format = FORMAT_WIN2OUT


@dataclass(frozen=True)
class TwoMatchRotationState(RotationState):
    status_class = TwoMatchTeamStatus
    format = FORMAT_TWO_MATCH_ROTATION


ROTATION_STATE_KEYS = {
    FORMAT_WIN2OUT: ('win2out_state', Win2OutState),
    FORMAT_TWO_MATCH_ROTATION: ('two_match_rotation_state', TwoMatchRotationState),
}


# ============================================
# Competition
# ============================================

@dataclass(frozen=True)
class Competition:
    """A competition and, for rotation formats, its court/queue state.

    ``rotation_state`` is keyed by ``format``: a ``Win2OutState`` for win2out,
    a ``TwoMatchRotationState`` for two_match_rotation, otherwise None.
    """
    id: str
    name: str
    format: str
    team_ids: Tuple[str, ...] = ()
    status: str = COMPETITION_DRAFT
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    winner_id: Optional[str] = None
    number_of_courts: int = 1
    match_series_length: Optional[int] = None
    config: Optional[CompetitionConfig] = None
    rotation_state: Optional[RotationState] = None

    def __post_init__(self):
        if self.format not in COMPETITION_FORMATS:
            raise ValidationError(f"Unknown competition format: {self.format}")
        object.__setattr__(self, 'team_ids', tuple(self.team_ids))

        if self.rotation_state is None:
            return
        expected = ROTATION_STATE_KEYS.get(self.format)
        if expected is None or type(self.rotation_state) is not expected[1]:
            logger.error(
                f"Competition {self.id}: {type(self.rotation_state).__name__} "
                f"does not belong to format {self.format}"
            )
            raise InvariantViolation(
                f"{type(self.rotation_state).__name__} cannot be attached to a {self.format} competition"
            )

    @property
    def is_elimination(self) -> bool:
        return self.format in ELIMINATION_FORMATS

    @property
    def is_rotation(self) -> bool:
        return self.format in ROTATION_FORMATS

    @property
    def effective_config(self) -> CompetitionConfig:
        return self.config or DEFAULT_COMPETITION_CONFIG

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'name': self.name,
            'format': self.format,
            'team_ids': list(self.team_ids),
            'status': self.status,
            'created_at': self.created_at,
            'completed_at': self.completed_at,
            'winner_id': self.winner_id,
            'number_of_courts': self.number_of_courts,
            'match_series_length': self.match_series_length,
            'config': self.config.to_dict() if self.config else None,
        }
        if self.rotation_state is not None:
            key, _ = ROTATION_STATE_KEYS[self.format]
            data[key] = self.rotation_state.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Competition':
        present = [fmt for fmt, (key, _) in ROTATION_STATE_KEYS.items() if data.get(key) is not None]
        if len(present) > 1:
            raise InvariantViolation(f"Competition {data.get('id')} carries more than one rotation state")

        rotation_state = None
        if present:
            key, state_class = ROTATION_STATE_KEYS[present[0]]
            rotation_state = state_class.from_dict(data[key])

        return cls(
            id=data['id'],
            name=data.get('name', ''),
            format=data['format'],
            team_ids=tuple(data.get('team_ids') or ()),
            status=data.get('status', COMPETITION_DRAFT),
            created_at=data.get('created_at', time.time()),
            completed_at=data.get('completed_at'),
            winner_id=data.get('winner_id'),
            number_of_courts=data.get('number_of_courts') or 1,
            match_series_length=data.get('match_series_length'),
            config=get_competition_config(data['config']) if data.get('config') else None,
            rotation_state=rotation_state,
        )
