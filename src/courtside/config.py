"""
Competition scoring/terminology configuration and CLI settings.
"""
import os
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = 'courtside.yaml'
DEFAULT_STATE_FILE = 'courtside_state.yaml'
DEFAULT_INSTANT_WIN_SCORE = 25


@dataclass(frozen=True)
class Terminology:
    venue: str = 'court'
    venue_plural: str = 'courts'
    match: str = 'match'
    match_plural: str = 'matches'

    def to_dict(self) -> Dict:
        return {
            'venue': self.venue,
            'venue_plural': self.venue_plural,
            'match': self.match,
            'match_plural': self.match_plural,
        }


@dataclass(frozen=True)
class CompetitionConfig:
    """Scoring rules and display terminology for one competition.

    ``points_for_tie`` of None means a tie awards nothing; ties are only
    accepted at all when ``allow_ties`` is set.
    """
    points_for_win: int = 3
    points_for_loss: int = 0
    points_for_tie: Optional[int] = None
    allow_ties: bool = False
    terminology: Terminology = field(default_factory=Terminology)

    def to_dict(self) -> Dict:
        return {
            'points_for_win': self.points_for_win,
            'points_for_loss': self.points_for_loss,
            'points_for_tie': self.points_for_tie,
            'allow_ties': self.allow_ties,
            'terminology': self.terminology.to_dict(),
        }


DEFAULT_TERMINOLOGY = Terminology()
DEFAULT_COMPETITION_CONFIG = CompetitionConfig()


def get_competition_config(partial_config: Optional[Dict] = None) -> CompetitionConfig:
    """Merge a partial config dict (e.g. loaded from YAML) with the defaults."""
    if not partial_config:
        return DEFAULT_COMPETITION_CONFIG

    terminology = replace(DEFAULT_TERMINOLOGY, **{
        key: value for key, value in (partial_config.get('terminology') or {}).items()
        if key in DEFAULT_TERMINOLOGY.to_dict()
    })

    return CompetitionConfig(
        points_for_win=partial_config.get('points_for_win', DEFAULT_COMPETITION_CONFIG.points_for_win),
        points_for_loss=partial_config.get('points_for_loss', DEFAULT_COMPETITION_CONFIG.points_for_loss),
        points_for_tie=partial_config.get('points_for_tie'),
        allow_ties=bool(partial_config.get('allow_ties', DEFAULT_COMPETITION_CONFIG.allow_ties)),
        terminology=terminology,
    )


def _load_yaml(path: str) -> Dict:
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f'Failed to parse {path}: {e}')
        return {}
    if not isinstance(data, dict):
        logger.warning(f'Ignoring {path}: expected a mapping at top level')
        return {}
    return data


def load_competition_config(path: str) -> CompetitionConfig:
    """Load a competition config from a YAML file, falling back to defaults."""
    return get_competition_config(_load_yaml(path))


def get_default_settings() -> Dict:
    return {
        'state_file': DEFAULT_STATE_FILE,
        'log_level': 'WARNING',
        'instant_win_score': DEFAULT_INSTANT_WIN_SCORE,
    }


def load_settings(path: Optional[str] = None) -> Dict:
    """Load CLI settings.

    Precedence: ``COURTSIDE_STATE_FILE`` env var, then the settings file,
    then the defaults.
    """
    path = path or os.environ.get('COURTSIDE_SETTINGS', DEFAULT_SETTINGS_FILE)
    settings = get_default_settings()
    settings.update(_load_yaml(path))
    if os.environ.get('COURTSIDE_STATE_FILE'):
        settings['state_file'] = os.environ['COURTSIDE_STATE_FILE']
    return settings
