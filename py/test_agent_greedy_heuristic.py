import json
import logging
import random

import pytest
from agent_greedy_heuristic import RejectedMove, choose_move, is_move_positive, main, solve
from klondike import (
    Card,
    DrawPile,
    Foundation,
    FoundationStack,
    Game,
    GameFinalState,
    GameMove,
    Number,
    Stack,
    Suit,
    TableDownturned,
    TableUpturned,
)


@pytest.fixture
def empty_game():
    return Game.empty()


def assert_cards_partitioned(game: Game):
    assert sorted(card.index for card in game.all_cards()) == list(range(52))


def assert_foundations_ascend(game: Game):
    for foundation in game.foundations:
        assert [card.rank for card in foundation] == list(range(1, len(foundation) + 1))
        assert all(card.suit == foundation.suit for card in foundation)


def test_flip_move_is_taken_first(empty_game):
    empty_game.tableaus[0].downturned = Stack([Card(Suit.CLUB, Number.FOUR)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.SPADE, Number.ACE)])
    empty_game.tableaus[2].downturned = Stack([Card(Suit.HEART, Number.FIVE)])
    empty_game.tableaus[2].upturned = Stack([Card(Suit.SPADE, Number.NINE)])
    empty_game.tableaus[3].upturned = Stack([Card(Suit.HEART, Number.TEN)])
    empty_game.draw = Stack([Card(Suit.HEART, Number.ACE)])

    game_state = empty_game.get_game_state()
    assert game_state.table_ace_moves
    assert game_state.draw_ace_moves
    assert game_state.table_moves

    game_move, message = choose_move(empty_game, game_state)
    assert game_move == GameMove(TableDownturned(0, 0), TableUpturned(0, 0))
    assert "Table flip move" in message


def test_priority_after_flips(empty_game):
    empty_game.tableaus[1].upturned = Stack([Card(Suit.SPADE, Number.ACE)])
    empty_game.draw = Stack([Card(Suit.HEART, Number.ACE)])

    game_move, _message = choose_move(empty_game, empty_game.get_game_state())
    assert game_move == GameMove(TableUpturned(1, 0), Foundation(3))

    empty_game.execute(game_move)
    game_move, _message = choose_move(empty_game, empty_game.get_game_state())
    assert game_move == GameMove(DrawPile(0), Foundation(0))


def test_king_not_selected_without_vacant_slot(empty_game):
    cards = [
        Card(Suit.HEART, Number.THREE),
        Card(Suit.DIAMOND, Number.THREE),
        Card(Suit.CLUB, Number.THREE),
        Card(Suit.SPADE, Number.THREE),
        Card(Suit.HEART, Number.SEVEN),
        Card(Suit.DIAMOND, Number.SEVEN),
        Card(Suit.CLUB, Number.SEVEN),
    ]
    for tableau, card in zip(empty_game.tableaus, cards):
        tableau.upturned = Stack([card])
    empty_game.draw = Stack([Card(Suit.SPADE, Number.KING)])

    game_state = empty_game.get_game_state()
    assert game_state.queuing_kings == 1
    assert game_state.table_king_moves == []

    result = solve(empty_game)
    assert result.final_state == GameFinalState.LOST
    assert not result.stuck
    assert result.moves_made == 0


def test_king_taken_when_slot_is_vacant(empty_game):
    empty_game.tableaus[0].upturned = Stack([Card(Suit.SPADE, Number.EIGHT)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.HEART, Number.NINE)])
    empty_game.draw = Stack([Card(Suit.CLUB, Number.KING)])

    game_move, _message = choose_move(empty_game, empty_game.get_game_state())
    assert game_move == GameMove(DrawPile(0), TableUpturned(2, 0))


def test_heuristic_reveals_a_card(empty_game):
    empty_game.tableaus[0].downturned = Stack([Card(Suit.CLUB, Number.FOUR)])
    empty_game.tableaus[0].upturned = Stack([Card(Suit.SPADE, Number.EIGHT)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.HEART, Number.NINE)])
    game_move = GameMove(TableUpturned(0, 0), TableUpturned(1, 1))

    game_state = empty_game.get_game_state()
    assert is_move_positive(game_move, empty_game, game_state) == (True, " - - Positive move : reveals a card")


def test_heuristic_creates_space_only_for_waiting_king(empty_game):
    empty_game.tableaus[0].upturned = Stack([Card(Suit.SPADE, Number.EIGHT)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.HEART, Number.NINE)])
    game_move = GameMove(TableUpturned(0, 0), TableUpturned(1, 1))

    verdict = is_move_positive(game_move, empty_game, empty_game.get_game_state())
    assert verdict == (False, " - - No queuing kings")

    empty_game.draw = Stack([Card(Suit.CLUB, Number.KING)])
    verdict = is_move_positive(game_move, empty_game, empty_game.get_game_state())
    assert verdict == (True, " - - Positive move : creates space for king")


def test_heuristic_partial_run_has_no_verdict(empty_game):
    empty_game.tableaus[0].downturned = Stack([Card(Suit.CLUB, Number.FOUR)])
    empty_game.tableaus[0].upturned = Stack([Card(Suit.CLUB, Number.TEN), Card(Suit.HEART, Number.NINE)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.SPADE, Number.TEN)])
    game_move = GameMove(TableUpturned(0, 1), TableUpturned(1, 1))

    assert is_move_positive(game_move, empty_game, empty_game.get_game_state()) == (False, "")


def test_heuristic_draw_card_enabling_a_move(empty_game):
    empty_game.tableaus[0].upturned = Stack([Card(Suit.HEART, Number.TEN)])
    empty_game.tableaus[2].downturned = Stack([Card(Suit.CLUB, Number.TWO)])
    empty_game.tableaus[2].upturned = Stack([Card(Suit.DIAMOND, Number.TEN), Card(Suit.CLUB, Number.NINE)])
    empty_game.draw = Stack([Card(Suit.SPADE, Number.NINE)])
    game_move = GameMove(DrawPile(0), TableUpturned(0, 1))

    game_state = empty_game.get_game_state()
    assert game_move in game_state.deck_moves
    verdict = is_move_positive(game_move, empty_game, game_state)
    assert verdict == (True, " - - Positive move : enables a move")
    # same state, same verdict
    assert is_move_positive(game_move, empty_game, game_state) == verdict


def test_heuristic_draw_card_not_enabling_a_move(empty_game):
    empty_game.tableaus[0].upturned = Stack([Card(Suit.HEART, Number.TEN)])
    empty_game.tableaus[2].upturned = Stack([Card(Suit.SPADE, Number.TEN)])
    empty_game.draw = Stack([Card(Suit.SPADE, Number.NINE)])
    game_state = empty_game.get_game_state()

    verdict = is_move_positive(GameMove(DrawPile(0), TableUpturned(0, 1)), empty_game, game_state)
    assert verdict == (False, " - - Doesn't enable a move")
    # not an append at the end of the run
    verdict = is_move_positive(GameMove(DrawPile(0), TableUpturned(0, 0)), empty_game, game_state)
    assert verdict == (False, "")


def test_heuristic_other_shapes_are_negative(empty_game):
    empty_game.foundations[3] = FoundationStack(Suit.SPADE, [Card(Suit.SPADE, Number.ACE)])
    empty_game.tableaus[0].downturned = Stack([Card(Suit.CLUB, Number.FOUR)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.HEART, Number.KING), Card(Suit.SPADE, Number.TWO)])
    empty_game.draw = Stack([Card(Suit.SPADE, Number.TWO)])
    game_state = empty_game.get_game_state()

    assert is_move_positive(GameMove(DrawPile(0), Foundation(3)), empty_game, game_state) == (False, "")
    assert is_move_positive(GameMove(TableUpturned(1, 1), Foundation(3)), empty_game, game_state) == (False, "")
    verdict, _reason = is_move_positive(GameMove(TableDownturned(0, 0), TableUpturned(0, 0)), empty_game, game_state)
    assert not verdict

    with pytest.raises(AssertionError):
        is_move_positive(GameMove(Foundation(3), TableUpturned(1, 2)), empty_game, game_state)


def test_ace_stack_move_of_a_lone_card_reveals(empty_game):
    empty_game.foundations[0] = FoundationStack(Suit.HEART, [Card(Suit.HEART, Number.ACE)])
    empty_game.tableaus[0].downturned = Stack([Card(Suit.CLUB, Number.FOUR)])
    empty_game.tableaus[0].upturned = Stack([Card(Suit.HEART, Number.TWO)])

    game_move, message = choose_move(empty_game, empty_game.get_game_state())
    assert game_move == GameMove(TableUpturned(0, 0), Foundation(0))
    assert "reveals a card" in message


def test_stuck_game_reports_rejections(empty_game, caplog):
    empty_game.tableaus[0].upturned = Stack([Card(Suit.SPADE, Number.EIGHT)])
    empty_game.tableaus[1].upturned = Stack([Card(Suit.HEART, Number.NINE)])

    with caplog.at_level(logging.WARNING):
        result = solve(empty_game)

    assert result.final_state == GameFinalState.LOST
    assert result.stuck
    assert result.moves_made == 0
    assert result.rejected_moves == [
        RejectedMove(GameMove(TableUpturned(0, 0), TableUpturned(1, 1)), " - - No queuing kings"),
    ]
    assert "DEBUG STATE" in caplog.text
    assert "Moving [8 ♠] onto [9 ♥]" in caplog.text


def test_won_game_stops_immediately(empty_game):
    empty_game.foundations = [
        FoundationStack(suit, [Card(suit, number) for number in Number]) for suit in Suit
    ]
    result = solve(empty_game)
    assert result.final_state == GameFinalState.WON
    assert result.moves_made == 0
    assert not result.stuck


def test_solve_plays_until_stuck(empty_game):
    empty_game.tableaus[0].downturned = Stack([Card(Suit.HEART, Number.THREE), Card(Suit.HEART, Number.TWO)])
    empty_game.tableaus[0].upturned = Stack([Card(Suit.HEART, Number.ACE)])

    result = solve(empty_game)

    # ace up, flip, two up (reveals), flip; the lone three frees nothing for a king
    assert [str(action.move) for action in empty_game.history] == [
        "TABL_1 up[0] -> FOUN_HEART",
        "TABL_1 down[1] -> TABL_1 up[0]",
        "TABL_1 up[0] -> FOUN_HEART",
        "TABL_1 down[0] -> TABL_1 up[0]",
    ]
    assert result.moves_made == 4
    assert result.final_state == GameFinalState.LOST
    assert result.stuck
    assert result.rejected_moves == [
        RejectedMove(GameMove(TableUpturned(0, 0), Foundation(0)), " - - No queuing kings"),
    ]


@pytest.mark.parametrize("seed", range(30))
def test_random_games_terminate_with_cards_partitioned(seed):
    game = Game(rng=random.Random(seed))

    while True:
        game_state = game.get_game_state()
        if game_state.get_final_state(game) != GameFinalState.UNFINISHED:
            break
        choice = choose_move(game, game_state)
        if choice is None:
            break
        game.execute(choice[0])

        assert_cards_partitioned(game)
        assert_foundations_ascend(game)
        assert game.move_count < 1000


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_solve_is_deterministic_for_a_deal(seed):
    deck = Game(rng=random.Random(seed)).deck_indices
    first = Game(deck)
    second = Game(deck)

    first_result = solve(first)
    second_result = solve(second)

    assert first_result.final_state == second_result.final_state
    assert first_result.moves_made == second_result.moves_made == first.move_count
    assert [action.move for action in first.history] == [action.move for action in second.history]
    assert_cards_partitioned(first)


def test_cli_replays_a_deck(capsys):
    main(["--deck", ",".join(str(idx) for idx in range(52)), "--quiet"])
    out = capsys.readouterr().out.strip().splitlines()
    assert out[-1] in ("WON", "LOST")


def test_cli_json_record(capsys):
    main(["--seed", "5", "--quiet", "--json"])
    out = capsys.readouterr().out.strip().splitlines()
    record = json.loads(out[-1])
    assert out[-2] == record["result"]
    assert len(record["deck_indices"]) == 52
    assert record["move_count"] == len(record["history"])


@pytest.mark.parametrize("deck", ["1,2,3", "a,b,c"])
def test_cli_rejects_bad_deck(deck):
    with pytest.raises(SystemExit):
        main(["--deck", deck])
