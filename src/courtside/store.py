"""
YAML file holding the CLI's teams, competitions, matches and undo history.
"""
import os
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

from .errors import NotFoundError, ValidationError
from .models import Competition, Match, Team
from .undo import UndoManager

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 10


@dataclass
class State:
    teams: List[Team] = field(default_factory=list)
    competitions: List[Competition] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    undo: UndoManager = field(default_factory=UndoManager)

    def get_team(self, team_id: str) -> Team:
        for team in self.teams:
            if team.id == team_id:
                return team
        raise NotFoundError(f"Team {team_id} not found")

    def find_team_by_name(self, name: str) -> Optional[Team]:
        for team in self.teams:
            if team.name.lower() == name.lower():
                return team
        return None

    def get_competition(self, competition_id: str) -> Competition:
        for competition in self.competitions:
            if competition.id == competition_id:
                return competition
        raise NotFoundError(f"Competition {competition_id} not found")

    def put_competition(self, competition: Competition):
        self.competitions = [competition if c.id == competition.id else c for c in self.competitions]
        if all(c.id != competition.id for c in self.competitions):
            self.competitions.append(competition)

    def get_match(self, match_id: str) -> Match:
        for match in self.matches:
            if match.id == match_id:
                return match
        raise NotFoundError(f"Match {match_id} not found")

    def competition_matches(self, competition_id: str) -> List[Match]:
        return [m for m in self.matches if m.competition_id == competition_id]

    def team_name(self, team_id: Optional[str]) -> str:
        if not team_id:
            return 'TBD'
        for team in self.teams:
            if team.id == team_id:
                return team.name
        return team_id

    def to_dict(self) -> Dict:
        return {
            'teams': [t.to_dict() for t in self.teams],
            'competitions': [c.to_dict() for c in self.competitions],
            'matches': [m.to_dict() for m in self.matches],
            'undo': self.undo.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'State':
        return cls(
            teams=[Team.from_dict(t) for t in data.get('teams') or ()],
            competitions=[Competition.from_dict(c) for c in data.get('competitions') or ()],
            matches=[Match.from_dict(m) for m in data.get('matches') or ()],
            undo=UndoManager.from_dict(data.get('undo')),
        )


def get_lock(path: str) -> FileLock:
    return FileLock(f"{path}.lock", timeout=LOCK_TIMEOUT)


def load_state(path: str) -> State:
    """Load state from YAML. A missing or empty file is an empty state."""
    if not os.path.exists(path):
        return State()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f'Failed to parse {path}: {e}')
        raise ValidationError(f"State file {path} is not valid YAML") from e
    return State.from_dict(data or {})


def save_state(path: str, state: State):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(state.to_dict(), f, default_flow_style=False, sort_keys=False)


@contextmanager
def locked_state(path: str):
    """
    Load, yield and save the state while holding the file lock.

    Nothing is written if the body raises.
    """
    with get_lock(path):
        state = load_state(path)
        yield state
        save_state(path, state)
        logger.debug(f"Saved state to {path}")
