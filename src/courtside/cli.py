# Command line entry point for running competitions from a YAML state file

import os
import sys
import logging
import argparse

import yaml
from filelock import Timeout

from . import double_elimination, elimination, progression, two_match_rotation, win2out
from .config import load_competition_config, load_settings
from .errors import CourtsideError, NotFoundError, ValidationError
from .models import (
    COMPETITION_FORMATS,
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    FORMAT_DOUBLE_ELIMINATION,
    FORMAT_WIN2OUT,
    BRACKET_WINNERS,
    BRACKET_LOSERS,
    BRACKET_GRAND_FINAL,
    MATCH_PENDING,
    SIDES,
    create_team,
    rename_team,
)
from .round_robin import calculate_standings, generate_schedule
from .store import load_state, locked_state
from .swap import edit_match_teams
from .undo import (
    ACTION_INSTANT_WIN,
    ACTION_MATCH_COMPLETE,
    ACTION_MATCH_START,
    create_snapshot,
    describe_action,
    snapshot_progression,
)

logger = logging.getLogger(__name__)


def resolve_team_id(state, key):
    """Accept a team id or a (case-insensitive) team name."""
    for team in state.teams:
        if team.id == key:
            return team.id
    team = state.find_team_by_name(key)
    if team is None:
        raise NotFoundError(f"Team {key} not found")
    return team.id


def resolve_team_ids(state, value):
    if not value:
        return []
    return [resolve_team_id(state, key.strip()) for key in value.split(',') if key.strip()]


def describe_match(state, match):
    home = state.team_name(match.home_team_id)
    away = state.team_name(match.away_team_id) if match.away_team_id or not match.is_bye else 'BYE'
    line = f"{match.id}  R{match.round}.{match.position}  {home} vs {away}  [{match.status}]"
    if match.bracket:
        line = f"{match.bracket:<11} {line}"
    if match.status != MATCH_PENDING or match.home_score or match.away_score:
        line += f"  {match.home_score}-{match.away_score}"
    if match.is_series:
        line += f"  (series {match.home_wins}-{match.away_wins}, game {match.series_game})"
    return line


# ============================================
# Teams
# ============================================

def cmd_team_add(args, state):
    if state.find_team_by_name(args.name):
        raise ValidationError(f"A team named {args.name} already exists")
    team = create_team(args.name, args.color)
    state.teams.append(team)
    print(f"Added team {team.name} ({team.id})")


def cmd_team_list(args, state):
    if not state.teams:
        print("No teams yet.")
        return
    for team in state.teams:
        color = f"  {team.color}" if team.color else ''
        print(f"{team.id}  {team.name}{color}")


def cmd_team_rename(args, state):
    team = state.get_team(resolve_team_id(state, args.team))
    other = state.find_team_by_name(args.name)
    if other is not None and other.id != team.id:
        raise ValidationError(f"A team named {args.name} already exists")
    renamed = rename_team(team, args.name, args.color if args.color is not None else team.color)
    state.teams = [renamed if t.id == team.id else t for t in state.teams]
    print(f"Renamed {team.name} to {renamed.name}")


def cmd_team_delete(args, state):
    team = state.get_team(resolve_team_id(state, args.team))
    state.teams = progression.delete_team(state.teams, state.competitions, state.matches, team.id)
    print(f"Deleted team {team.name}")


# ============================================
# Competitions
# ============================================

def cmd_create(args, state):
    config = load_competition_config(args.config) if args.config else None
    competition = progression.create_competition(
        args.name,
        args.format,
        team_ids=resolve_team_ids(state, args.teams),
        number_of_courts=args.courts,
        match_series_length=args.series,
        config=config,
    )
    state.put_competition(competition)
    print(f"Created {competition.format} competition {competition.name} ({competition.id})")


def cmd_start(args, state):
    competition = state.get_competition(args.competition)
    result = progression.start_competition(
        competition,
        play_in_team_ids=resolve_team_ids(state, args.play_in) or None,
        seeding=args.seeding,
    )
    state.put_competition(result.competition)
    state.matches.extend(result.matches)
    print(f"Started {competition.name}: {len(result.matches)} matches")
    for match in result.matches:
        if match.home_team_id and match.away_team_id:
            print(f"  {describe_match(state, match)}")


def cmd_matches(args, state):
    competition = state.get_competition(args.competition)
    matches = state.competition_matches(competition.id)
    if not matches:
        print("No matches yet.")
        return
    for match in matches:
        print(describe_match(state, match))


def cmd_standings(args, state):
    competition = state.get_competition(args.competition)
    matches = state.competition_matches(competition.id)
    terms = competition.effective_config.terminology

    if competition.format == FORMAT_ROUND_ROBIN:
        print(f"{'Team':<20} {'P':>3} {'W':>3} {'L':>3} {'T':>3} {'PF':>5} {'PA':>5} {'+/-':>5} {'Pts':>4}")
        standings = calculate_standings(list(competition.team_ids), matches, competition.effective_config)
        for s in standings:
            print(f"{state.team_name(s.team_id):<20} {s.played:>3} {s.won:>3} {s.lost:>3} {s.tied:>3} "
                  f"{s.points_for:>5} {s.points_against:>5} {s.points_diff:>+5} {s.competition_points:>4}")

    elif competition.format == FORMAT_SINGLE_ELIMINATION:
        rounds = elimination.get_bracket_structure(matches)
        for round_matches in rounds:
            print(elimination.round_name(round_matches[0].round, len(rounds)))
            for match in round_matches:
                print(f"  {describe_match(state, match)}")

    elif competition.format == FORMAT_DOUBLE_ELIMINATION:
        for bracket in (BRACKET_WINNERS, BRACKET_LOSERS, BRACKET_GRAND_FINAL):
            for round_matches in elimination.get_bracket_structure(matches, bracket):
                print(double_elimination.get_match_round_name(round_matches[0], matches))
                for match in round_matches:
                    print(f"  {describe_match(state, match)}")

    elif competition.rotation_state is None:
        print(f"{competition.name} has not started.")

    else:
        rotation_state = competition.rotation_state
        for court in rotation_state.courts:
            names = ' vs '.join(state.team_name(t) for t in court.team_ids) or 'empty'
            print(f"{terms.venue.capitalize()} {court.number + 1}: {names}")
        print(f"Queue: {', '.join(state.team_name(t) for t in rotation_state.queue) or 'empty'}")
        if competition.format == FORMAT_WIN2OUT:
            for status in win2out.get_champion_counts(rotation_state):
                print(f"  {state.team_name(status.team_id):<20} crowns {status.champion_count:>3}  "
                      f"streak {status.win_streak}  played {status.matches_played}")
        else:
            for status in two_match_rotation.get_leaderboard(rotation_state):
                print(f"  {state.team_name(status.team_id):<20} {status.total_wins:>3}W "
                      f"{status.total_losses:>3}L")

    if competition.winner_id:
        print(f"Winner: {state.team_name(competition.winner_id)}")


def cmd_end(args, state):
    competition = state.get_competition(args.competition)
    winner_id = resolve_team_id(state, args.winner) if args.winner else None
    state.put_competition(progression.complete_competition(competition, winner_id))
    print(f"Ended {competition.name}")


def cmd_delete(args, state):
    competition = state.get_competition(args.competition)
    state.competitions, state.matches = progression.delete_competition(
        state.competitions, state.matches, competition.id)
    dropped = state.undo.discard_competition(competition.id)
    if dropped:
        logger.info(f"Dropped {dropped} undo entries for {competition.id}")
    print(f"Deleted {competition.name}")


def cmd_queue(args, state):
    competition = state.get_competition(args.competition)
    if args.swap:
        team_a, team_b = (resolve_team_id(state, t) for t in args.swap)
        competition, state.matches = progression.swap_court_teams(competition, state.matches, team_a, team_b)
    if args.order:
        competition = progression.reorder_competition_queue(competition, resolve_team_ids(state, args.order))
    state.put_competition(competition)
    if competition.rotation_state is not None:
        print(f"Queue: {', '.join(state.team_name(t) for t in competition.rotation_state.queue) or 'empty'}")


# ============================================
# Matches
# ============================================

def cmd_start_match(args, state):
    match = state.get_match(args.match)
    started = progression.start_match(match)
    state.undo.push(ACTION_MATCH_START, describe_action(ACTION_MATCH_START), create_snapshot(match, None))
    state.matches = [started if m.id == started.id else m for m in state.matches]
    print(describe_match(state, started))


def cmd_score(args, state):
    match = state.get_match(args.match)
    updated = progression.update_match_score(match, args.home_score, args.away_score)
    state.matches = [updated if m.id == updated.id else m for m in state.matches]
    print(describe_match(state, updated))


def _replace_match(state, match):
    state.matches = [match if m.id == match.id else m for m in state.matches]
    print(describe_match(state, match))


def cmd_point(args, state):
    match = state.get_match(args.match)
    if args.deduct:
        _replace_match(state, progression.deduct_point(match, args.side))
    else:
        _replace_match(state, progression.add_point(match, args.side))


def cmd_undo_point(args, state):
    match = state.get_match(args.match)
    if not match.score_history:
        print("No points to undo.")
        return
    _replace_match(state, progression.undo_point(match))


def cmd_reset_score(args, state):
    _replace_match(state, progression.reset_score(state.get_match(args.match)))


def _apply_progression(state, result, action_type, competition):
    snapshot = snapshot_progression(result, state.matches, competition)
    winner = state.team_name(result.match.winner_id) if result.match.winner_id else None
    state.undo.push(action_type, describe_action(action_type, winner), snapshot)

    state.matches = result.apply(state.matches)
    if result.competition is not None:
        state.put_competition(result.competition)

    print(describe_match(state, result.match))
    for match in result.new_matches:
        print(f"Next: {describe_match(state, match)}")
    if result.competition is not None and result.competition.winner_id and (
            competition is None or competition.winner_id != result.competition.winner_id):
        print(f"{result.competition.name} winner: {state.team_name(result.competition.winner_id)}")


def _match_competition(state, match):
    return state.get_competition(match.competition_id) if match.competition_id else None


def cmd_complete(args, state):
    match = state.get_match(args.match)
    competition = _match_competition(state, match)
    result = progression.complete_match(state.matches, match.id, args.home_score, args.away_score, competition)
    _apply_progression(state, result, ACTION_MATCH_COMPLETE, competition)


def cmd_win(args, state):
    match = state.get_match(args.match)
    competition = _match_competition(state, match)
    result = progression.record_instant_win(state.matches, match.id, resolve_team_id(state, args.team),
                                            competition, winning_score=args.settings['instant_win_score'])
    _apply_progression(state, result, ACTION_INSTANT_WIN, competition)


def cmd_edit_match(args, state):
    match = state.get_match(args.match)
    competition = _match_competition(state, match)
    if competition is None or not competition.is_elimination:
        raise ValidationError("Only elimination bracket matches can be edited")
    state.matches = edit_match_teams(state.matches, match.id,
                                     resolve_team_id(state, args.home),
                                     resolve_team_id(state, args.away))
    for m in state.competition_matches(competition.id):
        if m.round == match.round and m.bracket == match.bracket:
            print(describe_match(state, m))


def cmd_undo(args, state):
    def apply(restoration):
        state.matches = restoration.apply_to_matches(state.matches)
        if restoration.competition is not None:
            state.put_competition(restoration.competition)

    entry = state.undo.perform_undo(apply)
    if entry is None:
        print("Nothing to undo.")
    else:
        print(f"Undid: {entry.description}")


# ============================================
# Fixtures preview
# ============================================

def cmd_schedule(args, state=None):
    try:
        with open(args.teams_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot read {args.teams_file}: {e}") from e

    # Either a plain list of names or pools of names
    if isinstance(data, dict):
        team_names = [name for names in data.values() for name in (names or [])]
    else:
        team_names = data
    if not team_names:
        raise ValidationError(f"No teams found in {args.teams_file}")

    if args.format == FORMAT_ROUND_ROBIN:
        current_round = None
        for match in generate_schedule(team_names, None):
            if match.round != current_round:
                if current_round is not None:
                    print()
                print(f"# Round {match.round}")
                current_round = match.round
            print(f"{match.home_team_id} vs {match.away_team_id}")
    else:
        matches = elimination.generate_bracket(team_names, None, seeding=args.seeding)
        rounds = elimination.get_bracket_structure(matches)
        for round_matches in rounds:
            print(f"# {elimination.round_name(round_matches[0].round, len(rounds))}")
            for match in round_matches:
                if match.is_bye:
                    print(f"{match.home_team_id} (bye)")
                elif match.home_team_id or match.away_team_id:
                    print(f"{match.home_team_id or 'TBD'} vs {match.away_team_id or 'TBD'}")
                else:
                    print("TBD vs TBD")


def build_parser():
    parser = argparse.ArgumentParser(
        description='Run round robin, elimination and court rotation competitions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  courtside team add "Net Ninjas"
  courtside create "Friday Night" --format win2out --teams "Net Ninjas,Spikers,Aces,Diggers"
  courtside start <competition-id>
  courtside win <match-id> "Net Ninjas"
  courtside undo
        """
    )
    parser.add_argument('--settings', help='Settings YAML file (default: courtside.yaml)')
    parser.add_argument('--state', help='State file (overrides settings)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    commands = parser.add_subparsers(dest='command', required=True)

    team = commands.add_parser('team', help='Manage teams')
    team_commands = team.add_subparsers(dest='team_command', required=True)
    add = team_commands.add_parser('add', help='Add a team')
    add.add_argument('name')
    add.add_argument('--color')
    add.set_defaults(handler=cmd_team_add, writes=True)
    team_list = team_commands.add_parser('list', help='List teams')
    team_list.set_defaults(handler=cmd_team_list, writes=False)
    rename = team_commands.add_parser('rename', help='Rename a team')
    rename.add_argument('team')
    rename.add_argument('name')
    rename.add_argument('--color')
    rename.set_defaults(handler=cmd_team_rename, writes=True)
    team_delete = team_commands.add_parser('delete', help='Delete a team no running competition uses')
    team_delete.add_argument('team')
    team_delete.set_defaults(handler=cmd_team_delete, writes=True)

    create = commands.add_parser('create', help='Create a competition')
    create.add_argument('name')
    create.add_argument('--format', required=True, choices=COMPETITION_FORMATS)
    create.add_argument('--teams', help='Comma-separated team names or ids')
    create.add_argument('--courts', type=int, default=1, help='Courts for rotation formats')
    create.add_argument('--series', type=int, help='Best-of series length (odd)')
    create.add_argument('--config', help='Competition config YAML (scoring, terminology)')
    create.set_defaults(handler=cmd_create, writes=True)

    start = commands.add_parser('start', help='Start a competition')
    start.add_argument('competition')
    start.add_argument('--play-in', help='Comma-separated teams that play in round 1')
    start.add_argument('--seeding', choices=elimination.SEEDING_MODES, default=elimination.SEEDING_STANDARD)
    start.set_defaults(handler=cmd_start, writes=True)

    matches = commands.add_parser('matches', help='List a competition\'s matches')
    matches.add_argument('competition')
    matches.set_defaults(handler=cmd_matches, writes=False)

    start_match = commands.add_parser('start-match', help='Start a pending match')
    start_match.add_argument('match')
    start_match.set_defaults(handler=cmd_start_match, writes=True)

    score = commands.add_parser('score', help='Update the live score of a match')
    score.add_argument('match')
    score.add_argument('home_score', type=int)
    score.add_argument('away_score', type=int)
    score.set_defaults(handler=cmd_score, writes=True)

    point = commands.add_parser('point', help='Add (or with --deduct take) one point')
    point.add_argument('match')
    point.add_argument('side', choices=SIDES)
    point.add_argument('--deduct', action='store_true')
    point.set_defaults(handler=cmd_point, writes=True)

    undo_point = commands.add_parser('undo-point', help='Revert the last point change of a match')
    undo_point.add_argument('match')
    undo_point.set_defaults(handler=cmd_undo_point, writes=True)

    reset_score = commands.add_parser('reset-score', help='Set a live score back to 0-0')
    reset_score.add_argument('match')
    reset_score.set_defaults(handler=cmd_reset_score, writes=True)

    complete = commands.add_parser('complete', help='Record the final score of a match')
    complete.add_argument('match')
    complete.add_argument('home_score', type=int)
    complete.add_argument('away_score', type=int)
    complete.set_defaults(handler=cmd_complete, writes=True)

    win = commands.add_parser('win', help='Record an instant win')
    win.add_argument('match')
    win.add_argument('team')
    win.set_defaults(handler=cmd_win, writes=True)

    standings = commands.add_parser('standings', help='Show standings, bracket or courts')
    standings.add_argument('competition')
    standings.set_defaults(handler=cmd_standings, writes=False)

    edit = commands.add_parser('edit-match', help='Reassign the teams of a pending bracket match')
    edit.add_argument('match')
    edit.add_argument('home')
    edit.add_argument('away')
    edit.set_defaults(handler=cmd_edit_match, writes=True)

    queue = commands.add_parser('queue', help='Reorder the queue or swap two teams in a rotation')
    queue.add_argument('competition')
    queue.add_argument('--order', help='Comma-separated new queue order')
    queue.add_argument('--swap', nargs=2, metavar=('TEAM_A', 'TEAM_B'))
    queue.set_defaults(handler=cmd_queue, writes=True)

    end = commands.add_parser('end', help='End a competition')
    end.add_argument('competition')
    end.add_argument('--winner')
    end.set_defaults(handler=cmd_end, writes=True)

    delete = commands.add_parser('delete', help='Delete a competition and its matches')
    delete.add_argument('competition')
    delete.set_defaults(handler=cmd_delete, writes=True)

    undo = commands.add_parser('undo', help='Undo the last match action')
    undo.set_defaults(handler=cmd_undo, writes=True)

    schedule = commands.add_parser('schedule', help='Preview fixtures for a YAML list of team names')
    schedule.add_argument('teams_file')
    schedule.add_argument('--format', choices=(FORMAT_ROUND_ROBIN, FORMAT_SINGLE_ELIMINATION),
                          default=FORMAT_ROUND_ROBIN)
    schedule.add_argument('--seeding', choices=elimination.SEEDING_MODES, default=elimination.SEEDING_STANDARD)
    schedule.set_defaults(handler=cmd_schedule, writes=None)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    args.settings = load_settings(args.settings)
    level = logging.DEBUG if args.verbose else getattr(logging, str(args.settings['log_level']).upper(), logging.WARNING)
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    state_file = args.state or args.settings['state_file']
    logger.debug(f"Using state file {state_file}")
    try:
        if args.writes is None:
            args.handler(args)
        elif args.writes:
            with locked_state(state_file) as state:
                args.handler(args, state)
        else:
            args.handler(args, load_state(state_file))
    except CourtsideError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Timeout:
        print(f"Error: {os.path.abspath(state_file)} is locked by another process", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
