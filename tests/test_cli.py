"""
End-to-end tests for the command line interface.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from courtside.cli import main
from courtside.models import COMPETITION_COMPLETED, MATCH_COMPLETED, MATCH_IN_PROGRESS, MATCH_PENDING
from courtside.store import load_state

TEAM_NAMES = ["Aces", "Blockers", "Setters", "Diggers"]


@pytest.fixture
def cli(state_file, tmp_path, monkeypatch):
    """Run the CLI against a temporary state file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv('COURTSIDE_SETTINGS', raising=False)
    monkeypatch.delenv('COURTSIDE_STATE_FILE', raising=False)

    def _run(*argv):
        return main(['--state', state_file, *argv])
    return _run


@pytest.fixture
def teams(cli):
    for name in TEAM_NAMES:
        assert cli('team', 'add', name) == 0


def create_and_start(cli, state_file, format, *extra):
    assert cli('create', 'Friday', '--format', format, '--teams', ','.join(TEAM_NAMES)) == 0
    competition_id = load_state(state_file).competitions[-1].id
    assert cli('start', competition_id, *extra) == 0
    return competition_id


class TestTeamCommands:
    """Tests for team management commands."""

    def test_add_and_list(self, cli, teams, capsys):
        """Test added teams are listed."""
        capsys.readouterr()
        assert cli('team', 'list') == 0
        out = capsys.readouterr().out
        for name in TEAM_NAMES:
            assert name in out

    def test_rename(self, cli, teams, state_file):
        """Test renaming keeps the team id."""
        before = load_state(state_file).find_team_by_name('Aces')
        assert cli('team', 'rename', 'Aces', 'Kings', '--color', 'red') == 0
        team = load_state(state_file).get_team(before.id)
        assert (team.name, team.color) == ('Kings', 'red')

    def test_rename_to_taken_name(self, cli, teams, capsys):
        """Test a rename cannot collide with another team."""
        assert cli('team', 'rename', 'Aces', 'blockers') == 1
        assert 'already exists' in capsys.readouterr().err

    def test_delete(self, cli, teams, state_file):
        """Test an unused team can be deleted."""
        assert cli('team', 'delete', 'Diggers') == 0
        assert load_state(state_file).find_team_by_name('Diggers') is None

    def test_delete_team_in_use(self, cli, teams, state_file, capsys):
        """Test a team in a running competition is kept."""
        create_and_start(cli, state_file, 'round_robin')
        assert cli('team', 'delete', 'Diggers') == 1
        assert 'Friday' in capsys.readouterr().err
        assert load_state(state_file).find_team_by_name('Diggers') is not None

    def test_duplicate_name(self, cli, teams, capsys):
        """Test adding a team with an existing name fails."""
        assert cli('team', 'add', 'aces') == 1
        assert 'already exists' in capsys.readouterr().err


class TestCompetitionCommands:
    """Tests for running competitions from the command line."""

    def test_unknown_team(self, cli, teams, capsys):
        """Test creating with an unknown team name fails cleanly."""
        assert cli('create', 'Cup', '--format', 'round_robin', '--teams', 'Aces,Nobody') == 1
        assert 'Nobody' in capsys.readouterr().err

    def test_round_robin_standings(self, cli, teams, state_file, capsys):
        """Test completing a match updates the standings table."""
        competition_id = create_and_start(cli, state_file, 'round_robin')
        match = load_state(state_file).matches[0]
        assert cli('start-match', match.id) == 0
        assert cli('complete', match.id, '25', '10') == 0

        capsys.readouterr()
        assert cli('standings', competition_id) == 0
        out = capsys.readouterr().out
        assert out.splitlines()[1].startswith('Aces')
        assert load_state(state_file).get_match(match.id).status == MATCH_COMPLETED

    def test_instant_win_and_undo(self, cli, teams, state_file, capsys):
        """Test undo reverts an instant win and its rotation step."""
        competition_id = create_and_start(cli, state_file, 'win2out')
        match = load_state(state_file).matches[0]
        assert cli('win', match.id, 'Aces') == 0
        state = load_state(state_file)
        assert len(state.matches) == 2
        assert state.get_match(match.id).home_score == 25

        assert cli('undo') == 0
        state = load_state(state_file)
        assert len(state.matches) == 1
        assert state.get_match(match.id).status == MATCH_PENDING
        assert len(state.get_competition(competition_id).rotation_state.queue) == 2
        assert 'Undid: Aces won' in capsys.readouterr().out

    def test_undo_start_match(self, cli, teams, state_file):
        """Test starting a match can be undone."""
        create_and_start(cli, state_file, 'round_robin')
        match = load_state(state_file).matches[0]
        assert cli('start-match', match.id) == 0
        assert load_state(state_file).get_match(match.id).status == MATCH_IN_PROGRESS
        assert cli('undo') == 0
        assert load_state(state_file).get_match(match.id).status == MATCH_PENDING

    def test_nothing_to_undo(self, cli, capsys):
        """Test undo with an empty history."""
        assert cli('undo') == 0
        assert 'Nothing to undo' in capsys.readouterr().out

    def test_bracket_to_champion(self, cli, teams, state_file, capsys):
        """Test a single elimination bracket played to the end names a winner."""
        competition_id = create_and_start(cli, state_file, 'single_elimination', '--seeding', 'sequential')
        for _ in range(3):
            state = load_state(state_file)
            ready = next(m for m in state.matches if m.status == MATCH_PENDING and len(m.team_ids) == 2)
            assert cli('win', ready.id, ready.home_team_id) == 0

        competition = load_state(state_file).get_competition(competition_id)
        assert competition.status == COMPETITION_COMPLETED
        assert 'Friday winner: Aces' in capsys.readouterr().out

    def test_edit_match_swaps(self, cli, teams, state_file):
        """Test editing a bracket match swaps the displaced team into the sibling match."""
        create_and_start(cli, state_file, 'single_elimination', '--seeding', 'sequential')
        state = load_state(state_file)
        first, second = sorted((m for m in state.matches if m.round == 1), key=lambda m: m.position)
        assert cli('edit-match', first.id, 'Aces', 'Setters') == 0

        state = load_state(state_file)
        assert state.get_match(first.id).team_ids == (first.home_team_id, second.home_team_id)
        assert state.get_match(second.id).team_ids == (first.away_team_id, second.away_team_id)

    def test_queue_reorder(self, cli, teams, state_file):
        """Test reordering the rotation queue."""
        competition_id = create_and_start(cli, state_file, 'two_match_rotation')
        assert cli('queue', competition_id, '--order', 'Diggers,Setters') == 0
        state = load_state(state_file)
        queue = state.get_competition(competition_id).rotation_state.queue
        assert [state.team_name(t) for t in queue] == ['Diggers', 'Setters']

    def test_end_competition(self, cli, teams, state_file):
        """Test ending a rotation competition with a winner."""
        competition_id = create_and_start(cli, state_file, 'win2out')
        assert cli('end', competition_id, '--winner', 'Blockers') == 0
        state = load_state(state_file)
        competition = state.get_competition(competition_id)
        assert competition.status == COMPETITION_COMPLETED
        assert state.team_name(competition.winner_id) == 'Blockers'

    def test_point_by_point(self, cli, teams, state_file):
        """Test live points, undo and reset on a match."""
        create_and_start(cli, state_file, 'round_robin')
        match = load_state(state_file).matches[0]
        assert cli('start-match', match.id) == 0
        assert cli('point', match.id, 'home') == 0
        assert cli('point', match.id, 'home') == 0
        assert cli('point', match.id, 'away') == 0
        assert cli('point', match.id, 'home', '--deduct') == 0
        live = load_state(state_file).get_match(match.id)
        assert (live.home_score, live.away_score) == (1, 1)

        assert cli('undo-point', match.id) == 0
        live = load_state(state_file).get_match(match.id)
        assert (live.home_score, live.away_score) == (2, 1)

        assert cli('reset-score', match.id) == 0
        live = load_state(state_file).get_match(match.id)
        assert (live.home_score, live.away_score) == (0, 0)
        assert live.score_history == ()

    def test_delete_competition(self, cli, teams, state_file):
        """Test deleting a competition removes its matches and their undo entries."""
        competition_id = create_and_start(cli, state_file, 'win2out')
        match = load_state(state_file).matches[0]
        assert cli('start-match', match.id) == 0
        assert cli('delete', competition_id) == 0
        state = load_state(state_file)
        assert state.competitions == [] and state.matches == []
        assert state.undo.size == 0

    def test_error_leaves_state_untouched(self, cli, teams, state_file):
        """Test a failing command writes nothing."""
        create_and_start(cli, state_file, 'round_robin')
        before = load_state(state_file).to_dict()
        match = load_state(state_file).matches[0]
        assert cli('complete', match.id, '25', '10') == 1
        assert load_state(state_file).to_dict() == before


class TestScheduleCommand:
    """Tests for the fixtures preview."""

    def test_round_robin_preview(self, cli, tmp_path, capsys):
        """Test a YAML list of names prints every round."""
        teams_file = tmp_path / "teams.yaml"
        teams_file.write_text("- Aces\n- Blockers\n- Setters\n")
        assert cli('schedule', str(teams_file)) == 0
        out = capsys.readouterr().out
        assert out.count('# Round') == 3
        assert out.count(' vs ') == 3

    def test_bracket_preview_from_pools(self, cli, tmp_path, capsys):
        """Test pools are flattened and byes are shown."""
        teams_file = tmp_path / "teams.yaml"
        teams_file.write_text("Pool A:\n  - Aces\n  - Blockers\nPool B:\n  - Setters\n")
        assert cli('schedule', str(teams_file), '--format', 'single_elimination') == 0
        out = capsys.readouterr().out
        assert '# Semifinal' in out
        assert 'Aces (bye)' in out
        assert 'Blockers vs Setters' in out

    def test_missing_file(self, cli, tmp_path, capsys):
        """Test a missing teams file is an error."""
        assert cli('schedule', str(tmp_path / "nope.yaml")) == 1
        assert 'Cannot read' in capsys.readouterr().err
