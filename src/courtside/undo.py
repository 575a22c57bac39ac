"""
Undo history for match actions.

Before a match action is applied, the caller snapshots exactly the records
that action will touch. Undo hands the snapshot back as a ``Restoration``
(delete the match the action created, put back the match, the bracket slots
and the competition as they were) for the caller to apply.
"""
import time
import uuid
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import Competition, Match, find_match

logger = logging.getLogger(__name__)

MAX_UNDO_STACK_SIZE = 5

ACTION_INSTANT_WIN = 'instant_win'
ACTION_MATCH_COMPLETE = 'match_complete'
ACTION_MATCH_START = 'match_start'
UNDO_ACTION_TYPES = (ACTION_INSTANT_WIN, ACTION_MATCH_COMPLETE, ACTION_MATCH_START)


@dataclass(frozen=True)
class UndoSnapshot:
    match: Optional[Match] = None
    competition: Optional[Competition] = None
    new_match_id: Optional[str] = None
    affected_matches: Tuple[Match, ...] = ()

    def to_dict(self) -> Dict:
        return {
            'match': self.match.to_dict() if self.match else None,
            'competition': self.competition.to_dict() if self.competition else None,
            'new_match_id': self.new_match_id,
            'affected_matches': [m.to_dict() for m in self.affected_matches],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'UndoSnapshot':
        return cls(
            match=Match.from_dict(data['match']) if data.get('match') else None,
            competition=Competition.from_dict(data['competition']) if data.get('competition') else None,
            new_match_id=data.get('new_match_id'),
            affected_matches=tuple(Match.from_dict(m) for m in data.get('affected_matches') or ()),
        )


@dataclass(frozen=True)
class UndoEntry:
    id: str
    action_type: str
    description: str
    snapshot: UndoSnapshot
    timestamp: float

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'action_type': self.action_type,
            'description': self.description,
            'snapshot': self.snapshot.to_dict(),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'UndoEntry':
        return cls(
            id=data['id'],
            action_type=data['action_type'],
            description=data.get('description', ''),
            snapshot=UndoSnapshot.from_dict(data.get('snapshot') or {}),
            timestamp=data.get('timestamp', time.time()),
        )


@dataclass(frozen=True)
class Restoration:
    """The writes that reverse one action, in the order they must be applied."""
    delete_match_id: Optional[str]
    match: Optional[Match]
    matches: Tuple[Match, ...]
    competition: Optional[Competition]

    def apply_to_matches(self, matches: List[Match]) -> List[Match]:
        restored = {m.id: m for m in self.matches}
        if self.match is not None:
            restored[self.match.id] = self.match
        return [restored.get(m.id, m) for m in matches if m.id != self.delete_match_id]


def generate_undo_id() -> str:
    return f"undo_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def create_snapshot(match: Optional[Match], competition: Optional[Competition],
                    new_match_id: Optional[str] = None,
                    affected_matches: Tuple[Match, ...] = ()) -> UndoSnapshot:
    """Capture records as they are before an action. Records are frozen, so no copying is needed."""
    return UndoSnapshot(match=match, competition=competition, new_match_id=new_match_id,
                        affected_matches=tuple(affected_matches))


def snapshot_progression(result, matches: List[Match],
                         competition: Optional[Competition] = None) -> UndoSnapshot:
    """
    Build the snapshot that reverses a ``ProgressionResult``.

    ``matches`` and ``competition`` are the records before the result is applied.
    """
    previous = find_match(matches, result.match.id)
    affected = tuple(
        original for original in (find_match(matches, m.id) for m in result.updated_matches)
        if original is not None
    )
    return create_snapshot(previous, competition, result.new_match_id, affected)


def restore(snapshot: UndoSnapshot) -> Restoration:
    return Restoration(
        delete_match_id=snapshot.new_match_id,
        match=snapshot.match,
        matches=snapshot.affected_matches,
        competition=snapshot.competition,
    )


def describe_action(action_type: str, winner_name: Optional[str] = None) -> str:
    if action_type in (ACTION_INSTANT_WIN, ACTION_MATCH_COMPLETE):
        return f"{winner_name} won" if winner_name else "Match completed"
    if action_type == ACTION_MATCH_START:
        return "Match started"
    return "Action performed"


class UndoManager:
    """
    Bounded stack of undo entries, newest first.

    Single writer: callers serialize access themselves.
    """

    def __init__(self, entries: Optional[List[UndoEntry]] = None,
                 max_size: int = MAX_UNDO_STACK_SIZE):
        self.max_size = max_size
        self._entries = list(entries or [])[:max_size]

    @property
    def entries(self) -> Tuple[UndoEntry, ...]:
        return tuple(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    def push(self, action_type: str, description: str, snapshot: UndoSnapshot) -> UndoEntry:
        if action_type not in UNDO_ACTION_TYPES:
            raise ValidationError(f"Unknown undo action type: {action_type}")
        entry = UndoEntry(id=generate_undo_id(), action_type=action_type, description=description,
                          snapshot=snapshot, timestamp=time.time())
        self._entries.insert(0, entry)
        del self._entries[self.max_size:]
        return entry

    def peek(self) -> Optional[UndoEntry]:
        return self._entries[0] if self._entries else None

    def perform_undo(self, apply: Callable[[Restoration], None]) -> Optional[UndoEntry]:
        """
        Undo the newest action through ``apply``.

        The entry is removed only after ``apply`` returns; if it raises, the
        exception propagates and the stack is left as it was. Returns the
        undone entry, or None when there is nothing to undo.
        """
        entry = self.peek()
        if entry is None:
            return None
        apply(restore(entry.snapshot))
        self._entries.pop(0)
        logger.info(f"Undid {entry.action_type}: {entry.description}")
        return entry

    def discard_competition(self, competition_id: str) -> int:
        """Drop entries that would restore records of a deleted competition."""
        def touches(entry: UndoEntry) -> bool:
            snapshot = entry.snapshot
            if snapshot.competition is not None and snapshot.competition.id == competition_id:
                return True
            return snapshot.match is not None and snapshot.match.competition_id == competition_id

        kept = [e for e in self._entries if not touches(e)]
        dropped = len(self._entries) - len(kept)
        self._entries = kept
        return dropped

    def clear(self):
        self._entries = []

    def to_dict(self) -> List[Dict]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def from_dict(cls, data: Optional[List[Dict]]) -> 'UndoManager':
        return cls([UndoEntry.from_dict(e) for e in data or ()])
