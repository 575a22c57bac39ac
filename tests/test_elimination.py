"""
Unit tests for single elimination bracket generation and advancement.
"""
import pytest
import sys
import os
from dataclasses import replace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from courtside.errors import InvariantViolation, ValidationError
from courtside.models import MATCH_COMPLETED, MATCH_IN_PROGRESS, MATCH_PENDING, find_match
from courtside.elimination import (
    SEEDING_SEQUENTIAL,
    _generate_bracket_order,
    advance_winner,
    calculate_bracket_size,
    calculate_byes,
    calculate_play_in_count,
    calculate_total_rounds,
    create_first_round_pairs,
    find_bracket_match,
    generate_bracket,
    get_bracket_structure,
    get_champion,
    get_next_match_position,
    get_round_name,
    is_final,
    place_team,
    round_name,
    seed_teams,
)


def finish(match, winner_id):
    return replace(match, status=MATCH_COMPLETED, winner_id=winner_id)


def at(matches, round_number, position):
    return find_bracket_match(matches, matches[0].competition_id, None, round_number, position)


class TestBracketHelpers:
    """Tests for bracket helper functions."""

    def test_calculate_bracket_size_exact_power(self):
        """Test bracket size for exact power of 2."""
        assert calculate_bracket_size(2) == 2
        assert calculate_bracket_size(4) == 4
        assert calculate_bracket_size(8) == 8
        assert calculate_bracket_size(16) == 16

    def test_calculate_bracket_size_non_power(self):
        """Test bracket size for non-power of 2."""
        assert calculate_bracket_size(3) == 4
        assert calculate_bracket_size(5) == 8
        assert calculate_bracket_size(6) == 8
        assert calculate_bracket_size(9) == 16

    def test_calculate_bracket_size_empty(self):
        """Test bracket size for no teams."""
        assert calculate_bracket_size(0) == 0

    def test_calculate_byes(self):
        """Test bye calculation."""
        assert calculate_byes(4) == 0
        assert calculate_byes(5) == 3
        assert calculate_byes(6) == 2
        assert calculate_byes(7) == 1

    def test_calculate_total_rounds(self):
        """Test round count."""
        assert calculate_total_rounds(2) == 1
        assert calculate_total_rounds(4) == 2
        assert calculate_total_rounds(5) == 3
        assert calculate_total_rounds(1) == 0

    def test_calculate_play_in_count(self):
        """Test play-in count is twice the teams over the next smaller bracket."""
        assert calculate_play_in_count(6) == 4
        assert calculate_play_in_count(5) == 2
        assert calculate_play_in_count(8) == 8

    def test_get_round_name(self):
        """Test round naming."""
        assert get_round_name(2) == "Final"
        assert get_round_name(4) == "Semifinal"
        assert get_round_name(8) == "Quarterfinal"
        assert get_round_name(16) == "Round of 16"

    def test_round_name_counts_back_from_final(self):
        """Test round numbers map to names relative to the last round."""
        assert round_name(3, 3) == "Final"
        assert round_name(2, 3) == "Semifinal"
        assert round_name(1, 3) == "Quarterfinal"
        assert round_name(1, 4) == "Round of 16"

    def test_next_match_position(self):
        """Test the winner slot formula."""
        assert get_next_match_position(1, 0) == (2, 0, 'home')
        assert get_next_match_position(1, 1) == (2, 0, 'away')
        assert get_next_match_position(1, 2) == (2, 1, 'home')
        assert get_next_match_position(2, 3) == (3, 1, 'away')


class TestBracketOrder:
    """Tests for standard bracket ordering."""

    def test_bracket_order_2(self):
        """Test bracket order for 2 teams."""
        assert _generate_bracket_order(2) == [1, 2]

    def test_bracket_order_4(self):
        """Test bracket order for 4 teams."""
        assert _generate_bracket_order(4) == [1, 4, 2, 3]

    def test_bracket_order_8(self):
        """Test bracket order for 8 teams."""
        assert _generate_bracket_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]

    def test_bracket_order_16_pairs_sum(self):
        """Test every first round pair sums to bracket size + 1."""
        order = _generate_bracket_order(16)
        assert sorted(order) == list(range(1, 17))
        for i in range(0, 16, 2):
            assert order[i] + order[i + 1] == 17


class TestSeeding:
    """Tests for seeding and first round pairing."""

    def test_seed_without_play_in_keeps_order(self):
        """Test the given order is the seed order."""
        assert seed_teams(['A', 'B', 'C']) == ['A', 'B', 'C']

    def test_play_in_teams_seeded_last(self):
        """Test teams playing in take the lowest seeds."""
        seeded = seed_teams(['A', 'B', 'C', 'D', 'E', 'F'], ['A', 'C', 'E', 'F'])
        assert seeded == ['B', 'D', 'A', 'C', 'E', 'F']

    def test_play_in_wrong_count(self):
        """Test the play-in list must have exactly the required size."""
        with pytest.raises(ValidationError):
            seed_teams(['A', 'B', 'C', 'D', 'E', 'F'], ['A', 'B'])

    def test_play_in_unknown_team(self):
        """Test play-in teams must belong to the competition."""
        with pytest.raises(ValidationError):
            seed_teams(['A', 'B', 'C'], ['A', 'Z'])

    def test_standard_pairs(self):
        """Test standard pairing with byes for the top seeds."""
        pairs = create_first_round_pairs(['A', 'B', 'C', 'D', 'E', 'F'])
        assert pairs == [('A', None), ('D', 'E'), ('B', None), ('C', 'F')]

    def test_sequential_pairs(self):
        """Test sequential pairing gives byes first then pairs in order."""
        pairs = create_first_round_pairs(['A', 'B', 'C', 'D', 'E'], SEEDING_SEQUENTIAL)
        assert pairs == [('A', None), ('B', None), ('C', None), ('D', 'E')]

    def test_unknown_seeding(self):
        """Test an unknown seeding mode is rejected."""
        with pytest.raises(ValidationError):
            create_first_round_pairs(['A', 'B'], 'random')


class TestGenerateBracket:
    """Tests for bracket generation."""

    def test_four_teams(self):
        """Test 4 teams give 2 rounds and 3 matches."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        assert len(matches) == 3
        assert [len(r) for r in get_bracket_structure(matches)] == [2, 1]
        final = at(matches, 2, 0)
        assert final.team_ids == ()
        assert final.status == MATCH_PENDING

    def test_byes_complete_and_advance(self):
        """Test bye matches are completed and their team placed in round 2."""
        matches = generate_bracket(['A', 'B', 'C', 'D', 'E', 'F'], 'c1')
        byes = [m for m in matches if m.is_bye]
        assert sorted(m.winner_id for m in byes) == ['A', 'B']
        assert all(m.status == MATCH_COMPLETED for m in byes)
        assert at(matches, 2, 0).home_team_id == 'A'
        assert at(matches, 2, 1).home_team_id == 'B'
        assert at(matches, 2, 0).away_team_id == ''

    def test_match_count_equals_bracket_minus_one(self):
        """Test the bracket always has bracket_size - 1 matches."""
        for n in range(2, 17):
            assert len(generate_bracket([f"T{i}" for i in range(n)], 'c1')) == calculate_bracket_size(n) - 1

    def test_play_in_bracket(self):
        """Test non-play-in teams receive the byes."""
        matches = generate_bracket(['A', 'B', 'C', 'D', 'E', 'F'], 'c1', play_in_team_ids=['C', 'D', 'E', 'F'])
        assert sorted(m.winner_id for m in matches if m.is_bye) == ['A', 'B']
        played = [m for m in matches if m.round == 1 and not m.is_bye]
        assert sorted(t for m in played for t in m.team_ids) == ['C', 'D', 'E', 'F']

    def test_bracket_label(self):
        """Test an explicit bracket label is applied to every match."""
        matches = generate_bracket(['A', 'B', 'C'], 'c1', bracket='winners')
        assert {m.bracket for m in matches} == {'winners'}

    def test_rejects_duplicates(self):
        """Test duplicate teams are rejected."""
        with pytest.raises(ValidationError):
            generate_bracket(['A', 'A', 'B'], 'c1')


class TestAdvanceWinner:
    """Tests for moving winners through the bracket."""

    def test_scenario_four_teams(self):
        """Test A beats B and C beats D sets up A vs C in the final."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1', seeding=SEEDING_SEQUENTIAL)
        first, second = at(matches, 1, 0), at(matches, 1, 1)
        assert first.team_ids == ('A', 'B')
        assert second.team_ids == ('C', 'D')

        first = finish(first, 'A')
        matches = advance_winner(matches, first)
        second = finish(second, 'C')
        matches = advance_winner(matches, second)

        final = at(matches, 2, 0)
        assert (final.home_team_id, final.away_team_id) == ('A', 'C')

    def test_advance_is_idempotent(self):
        """Test advancing the same match twice changes nothing."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        done = finish(at(matches, 1, 0), 'A')
        once = advance_winner(matches, done)
        assert advance_winner(once, done) == once

    def test_advance_does_not_mutate_input(self):
        """Test the input list is left untouched."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        before = list(matches)
        advance_winner(matches, finish(at(matches, 1, 0), 'A'))
        assert matches == before

    def test_final_has_no_next_match(self):
        """Test advancing the final is a no-op."""
        matches = generate_bracket(['A', 'B'], 'c1')
        final = finish(matches[0], 'B')
        assert is_final(final, matches)
        assert advance_winner(matches, final) == matches

    def test_no_winner_is_noop(self):
        """Test a match without a winner does not advance."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        assert advance_winner(matches, at(matches, 1, 0)) == matches

    def test_cannot_overwrite_started_match(self):
        """Test placing into a started match is an invariant violation."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        final = at(matches, 2, 0)
        matches = [replace(m, status=MATCH_IN_PROGRESS) if m.id == final.id else m for m in matches]
        with pytest.raises(InvariantViolation):
            advance_winner(matches, finish(at(matches, 1, 0), 'A'))

    def test_place_team_missing_target(self):
        """Test placing into a position that does not exist fails."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1')
        with pytest.raises(InvariantViolation):
            place_team(matches, 'c1', None, 3, 0, 'home', 'A')

    def test_champion(self):
        """Test the champion is the final's winner once completed."""
        matches = generate_bracket(['A', 'B', 'C', 'D'], 'c1', seeding=SEEDING_SEQUENTIAL)
        assert get_champion(matches) is None
        for match, winner in ((at(matches, 1, 0), 'A'), (at(matches, 1, 1), 'D')):
            done = finish(match, winner)
            matches = advance_winner([done if m.id == done.id else m for m in matches], done)
        final = finish(at(matches, 2, 0), 'D')
        matches = [final if m.id == final.id else m for m in matches]
        assert find_match(matches, final.id).team_ids == ('A', 'D')
        assert get_champion(matches) == 'D'
