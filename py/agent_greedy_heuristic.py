from klondike import (
    DrawPile,
    Game,
    GameFinalState,
    GameMove,
    GameState,
    TableDownturned,
    TableUpturned,
)
import argparse
import json
import logging
import random
import sys
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RejectedMove:
    move: GameMove
    reason: str


@dataclass
class SolveResult:
    final_state: GameFinalState
    moves_made: int
    stuck: bool = False
    rejected_moves: list[RejectedMove] = field(default_factory=list)


def is_move_positive(game_move: GameMove, game: Game, game_state: GameState) -> tuple[bool, str]:
    """
    Decides whether an optional move is worth making now.

    A move is positive when it reveals a face-down card, frees a slot for a
    waiting king, or places a draw card where it opens a further table move.
    Only the whole-run tableau shape and the draw-card shape are judged; any
    other shape gets a negative verdict.

    Args:
        game_move: The candidate move
        game: The game the move would be played on (read only)
        game_state: The move catalog computed from ``game``

    Returns:
        Tuple of (verdict, reason)
    """
    source = game_move.from_location

    if isinstance(source, TableUpturned):
        stack = game.tableaus[source.stack_index]
        if source.upturned_index == 0:
            if stack.downturned_len() > 0:
                return True, " - - Positive move : reveals a card"
            if game_state.queuing_kings > 0:
                return True, " - - Positive move : creates space for king"
            return False, " - - No queuing kings"
        # Moving part of a run is never judged either way.
        return False, ""

    if isinstance(source, DrawPile):
        destination = game_move.to_location
        if not isinstance(destination, TableUpturned):
            return False, ""
        to_stack = game.tableaus[destination.stack_index]
        if to_stack.upturned_len() != destination.upturned_index:
            return False, ""
        card = game.draw[source.deck_index]
        for stack_index, table_stack in enumerate(game.tableaus):
            if stack_index == destination.stack_index:
                continue
            root_card = table_stack.inspect_root()
            if root_card is not None and card.can_sit_on(root_card):
                return True, " - - Positive move : enables a move"
        return False, " - - Doesn't enable a move"

    if isinstance(source, TableDownturned):
        return False, " - - Flip moves are not judged"

    msg = f"There are no moves from {source}"
    raise AssertionError(msg)


def choose_move(game: Game, game_state: GameState) -> tuple[GameMove, str] | None:
    """Pick the single move to play this iteration, or None when every candidate is declined."""
    unconditional = [
        ("Table flip move", game_state.table_flip_moves),
        ("Table ace move", game_state.table_ace_moves),
        ("Draw ace move", game_state.draw_ace_moves),
        ("Table king move", game_state.table_king_moves),
    ]
    for label, moves in unconditional:
        if moves:
            return moves[0], f" - {label} {moves[0]}"

    gated = [
        ("Ace stack move", game_state.ace_stack_moves),
        ("Table move", game_state.table_moves),
        ("Deck move", game_state.deck_moves),
    ]
    for label, moves in gated:
        for game_move in moves:
            do_move, move_reason = is_move_positive(game_move, game, game_state)
            if do_move:
                return game_move, f" - Making {label.lower()} {game_move}\n{move_reason}"

    return None


def collect_rejections(game: Game, game_state: GameState) -> list[RejectedMove]:
    rejected = []
    for game_move in game_state.all_moves():
        _do_move, move_reason = is_move_positive(game_move, game, game_state)
        rejected.append(RejectedMove(game_move, move_reason))
    return rejected


def solve(game: Game) -> SolveResult:
    """
    Play the game to the end, one move per iteration, without backtracking.

    Args:
        game: The game to play; it is mutated in place

    Returns:
        The final state, the number of moves made and, when the loop got
        stuck, every declined move with its reason
    """
    while True:
        game_state = game.get_game_state()
        final_state = game_state.get_final_state(game)

        if final_state != GameFinalState.UNFINISHED:
            return SolveResult(final_state, game.move_count)

        choice = choose_move(game, game_state)
        if choice is None:
            rejected = collect_rejections(game, game_state)
            logger.warning("\n\nDEBUG STATE\n")
            for rejection in rejected:
                logger.warning(
                    "Move %s\n%s\npositivity (False, %r)\n",
                    rejection.move,
                    rejection.move.describe(game),
                    rejection.reason,
                )
            logger.warning("Made no moves\n%s", game.render())
            return SolveResult(GameFinalState.LOST, game.move_count, stuck=True, rejected_moves=rejected)

        game_move, message = choice
        logger.info(message)
        game.execute(game_move)


def parse_deck(value: str) -> list[int]:
    try:
        return [int(part) for part in value.replace(" ", "").split(",") if part]
    except ValueError:
        msg = f"Deck must be a comma separated list of card indices, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from None


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI application."""
    parser = argparse.ArgumentParser(description='Play one game of Klondike with a greedy priority agent')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the shuffle (default: unseeded)')
    parser.add_argument('--deck', type=parse_deck, default=None,
                        help='Replay an exact deal given as 52 comma separated card indices')
    parser.add_argument('--verbose', action='store_true',
                        help='Also print every card moved')
    parser.add_argument('--quiet', action='store_true',
                        help='Only print the result and the stuck diagnostics')
    parser.add_argument('--json', action='store_true',
                        help='Print the final game record as JSON')

    args = parser.parse_args(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)

    rng = random.Random(args.seed) if args.seed is not None else None
    try:
        game = Game(args.deck, rng=rng)
    except ValueError as exc:
        parser.error(str(exc))

    result = solve(game)
    print(result.final_state.value)
    if args.json:
        record = game.as_jsonable_dict()
        record["result"] = result.final_state.value
        record["stuck"] = result.stuck
        print(json.dumps(record))


if __name__ == "__main__":
    main()
