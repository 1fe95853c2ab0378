import json
import logging
import random
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, override

logger = logging.getLogger(__name__)

DECK_SIZE = 52
TABLEAU_COUNT = 7
FOUNDATION_COUNT = 4
SUIT_SIZE = 13


class Color(str, Enum):
    RED = "RED"
    BLACK = "BLACK"


class Suit(str, Enum):
    HEART = "HEART"
    DIAMOND = "DIAMOND"
    CLUB = "CLUB"
    SPADE = "SPADE"

    @staticmethod
    def index_map():
        return {
            0: Suit.HEART,
            1: Suit.DIAMOND,
            2: Suit.CLUB,
            3: Suit.SPADE,
        }

    @staticmethod
    def from_index(index: int) -> "Suit":
        try:
            return Suit.index_map()[index]
        except KeyError:
            msg = f"Invalid suit index {index}"
            raise ValueError(msg) from None

    @property
    def color(self):
        if self == Suit.HEART or self == Suit.DIAMOND:
            return Color.RED
        elif self == Suit.CLUB or self == Suit.SPADE:
            return Color.BLACK
        else:
            msg = f"Suit {self} has no color"
            raise ValueError(msg)

    @override
    def __str__(self) -> str:
        return {
            Suit.HEART: "♥",
            Suit.DIAMOND: "♦",
            Suit.CLUB: "♣",
            Suit.SPADE: "♠",
        }[self]

    def __int__(self) -> int:
        for idx, sut in Suit.index_map().items():
            if sut == self:
                return idx

        msg = f"Suit {self} not found in index map"
        raise ValueError(msg)


class Number(str, Enum):
    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"

    @property
    def int_repr(self) -> int:
        return list(Number).index(self) + 1

    @staticmethod
    def number_map():
        return {item.int_repr: item for item in Number}

    @staticmethod
    def from_int(rank: int) -> "Number":
        try:
            return Number.number_map()[rank]
        except KeyError:
            msg = f"Invalid rank {rank}"
            raise ValueError(msg) from None

    @override
    def __str__(self) -> str:
        return self.value

    @override
    def __repr__(self) -> str:
        return self.value

    def __int__(self) -> int:
        return int(self.int_repr)


@dataclass(frozen=True)
class Card:
    suit: Suit
    number: Number

    @staticmethod
    def from_index(card_index: int) -> "Card":
        """Build a card from its deck identifier: suit = id // 13, rank = id % 13 + 1."""
        if not 0 <= card_index < DECK_SIZE:
            msg = f"Card index {card_index} outside 0..{DECK_SIZE - 1}"
            raise ValueError(msg)
        return Card(Suit.from_index(card_index // SUIT_SIZE), Number.from_int(card_index % SUIT_SIZE + 1))

    @property
    def rank(self) -> int:
        return int(self.number)

    @property
    def color(self) -> Color:
        return self.suit.color

    @property
    def index(self) -> int:
        return int(self.suit) * SUIT_SIZE + self.rank - 1

    def is_opposite_color(self, other: "Card") -> bool:
        return self.color != other.color

    def can_sit_on(self, other: "Card") -> bool:
        return self.is_opposite_color(other) and other.rank == self.rank + 1

    def as_jsonable_dict(self) -> dict:
        return {
            "suit": self.suit.value,
            "rank": self.number.value,
            "color": self.color.value,
        }

    @override
    def __str__(self) -> str:
        return f"{self.number} {self.suit}"

    @override
    def __repr__(self) -> str:
        return f"{self.number} {self.suit}"


type HidableCard = Card | None


class Stack:
    def __init__(self, initial_cards: list[Card] | None = None):
        self.cards = list(initial_cards or [])

    def as_jsonable_dict(self) -> dict:
        return {
            "cards": [card.as_jsonable_dict() for card in self.cards],
        }

    @override
    def __str__(self) -> str:
        return f"Stack: {self.cards}"

    def add_to_top(self, card: Card) -> None:
        self.cards.append(card)

    def add_multiple_to_top(self, cards: list[Card]) -> None:
        self.cards.extend(cards)

    def insert_multiple_at(self, index: int, cards: list[Card]) -> None:
        if not 0 <= index <= len(self.cards):
            msg = f"Cannot insert at {index} into a stack of {len(self.cards)}"
            raise AssertionError(msg)
        self.cards[index:index] = cards

    def inspect_top(self) -> HidableCard:
        if len(self.cards) == 0:
            return None
        return self.cards[-1]

    def inspect_bottom(self) -> HidableCard:
        if len(self.cards) == 0:
            return None
        return self.cards[0]

    def inspect_all(self) -> list[Card]:
        return self.cards.copy()

    def inspect_from(self, index: int) -> list[Card]:
        return self.cards[index:]

    def get_at(self, index: int) -> Card:
        if not 0 <= index < len(self.cards):
            msg = f"No card at {index} in a stack of {len(self.cards)}"
            raise AssertionError(msg)
        return self.cards.pop(index)

    def get_from(self, index: int) -> list[Card]:
        if not 0 <= index < len(self.cards):
            msg = f"No run starting at {index} in a stack of {len(self.cards)}"
            raise AssertionError(msg)
        cards = self.cards[index:]
        del self.cards[index:]
        return cards

    def __getitem__(self, index: int) -> Card:
        return self.cards[index]

    def __iter__(self):
        return iter(self.cards)

    def __len__(self) -> int:
        return len(self.cards)


class FoundationStack(Stack):
    def __init__(self, suit: Suit, initial_cards: list[Card] | None = None):
        super().__init__()
        self.suit = suit
        self.add_multiple_to_top(initial_cards or [])

    def top_rank(self) -> int | None:
        top = self.inspect_top()
        return None if top is None else top.rank

    def is_card_placable(self, card: Card) -> bool:
        if card.suit != self.suit:
            return False
        return card.rank == (self.top_rank() or 0) + 1

    @override
    def add_to_top(self, card: Card) -> None:
        if not self.is_card_placable(card):
            msg = f"{card} cannot go on the {self.suit.value} foundation at {self.top_rank()}"
            raise AssertionError(msg)
        super().add_to_top(card)

    @override
    def add_multiple_to_top(self, cards: list[Card]) -> None:
        for card in cards:
            self.add_to_top(card)

    def is_full(self) -> bool:
        return len(self) >= SUIT_SIZE


class TableauStack:
    """A tableau pile: a face-down run with a face-up run on top of it."""

    def __init__(self, downturned: list[Card] | None = None, upturned: list[Card] | None = None):
        self.downturned = Stack(downturned)
        self.upturned = Stack(upturned)

    def as_jsonable_dict(self) -> dict:
        return {
            "downturned": self.downturned.as_jsonable_dict(),
            "upturned": self.upturned.as_jsonable_dict(),
        }

    @override
    def __str__(self) -> str:
        return f"TableauStack: {self.downturned} {self.upturned}"

    def inspect_top(self) -> HidableCard:
        return self.upturned.inspect_top()

    def inspect_root(self) -> HidableCard:
        return self.upturned.inspect_bottom()

    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        return self.upturned_len() + self.downturned_len()

    def upturned_len(self) -> int:
        return len(self.upturned)

    def downturned_len(self) -> int:
        return len(self.downturned)


@dataclass(frozen=True)
class TableDownturned:
    stack_index: int
    downturned_index: int

    @override
    def __str__(self) -> str:
        return f"TABL_{self.stack_index + 1} down[{self.downturned_index}]"


@dataclass(frozen=True)
class TableUpturned:
    stack_index: int
    upturned_index: int

    @override
    def __str__(self) -> str:
        return f"TABL_{self.stack_index + 1} up[{self.upturned_index}]"


@dataclass(frozen=True)
class Foundation:
    suit_index: int

    @override
    def __str__(self) -> str:
        return f"FOUN_{Suit.from_index(self.suit_index).value}"


@dataclass(frozen=True)
class DrawPile:
    deck_index: int

    @override
    def __str__(self) -> str:
        return f"DRAW[{self.deck_index}]"


type CardPosition = TableDownturned | TableUpturned | Foundation | DrawPile


def position_as_jsonable_dict(position: CardPosition) -> dict:
    return {"kind": type(position).__name__, **asdict(position)}


@dataclass(frozen=True)
class GameMove:
    from_location: CardPosition
    to_location: CardPosition

    @override
    def __str__(self) -> str:
        return f"{self.from_location} -> {self.to_location}"

    @override
    def __repr__(self) -> str:
        return self.__str__()

    def describe(self, game: "Game") -> str:
        """Render the cards this move would carry and what they would land on."""
        cards = game.inspect_cards(self.from_location)
        to = self.to_location
        if isinstance(to, TableUpturned):
            stack = game.tableaus[to.stack_index]
            if 0 < to.upturned_index <= stack.upturned_len():
                return f"Moving {cards} onto [{stack.upturned[to.upturned_index - 1]}]"
            return f"Moving {cards} to empty TABL_{to.stack_index + 1}"
        return f"Moving {cards} to {to}"

    def as_jsonable_dict(self) -> dict:
        return {
            "from_location": position_as_jsonable_dict(self.from_location),
            "to_location": position_as_jsonable_dict(self.to_location),
        }


@dataclass
class HistoryAction:
    move: GameMove
    cards: list[Card]

    @override
    def __str__(self) -> str:
        return f"{self.move}: {self.cards}"

    def as_jsonable_dict(self) -> dict:
        return {
            **self.move.as_jsonable_dict(),
            "cards": [card.as_jsonable_dict() for card in self.cards],
        }


class GameFinalState(str, Enum):
    WON = "WON"
    LOST = "LOST"
    UNFINISHED = "UNFINISHED"


@dataclass
class GameState:
    """Every move currently legal, grouped by category, plus the queuing king count.

    A snapshot: it is rebuilt from the game after every move and never updated in place.
    """

    table_flip_moves: list[GameMove] = field(default_factory=list)
    table_ace_moves: list[GameMove] = field(default_factory=list)
    draw_ace_moves: list[GameMove] = field(default_factory=list)
    table_king_moves: list[GameMove] = field(default_factory=list)
    ace_stack_moves: list[GameMove] = field(default_factory=list)
    table_moves: list[GameMove] = field(default_factory=list)
    deck_moves: list[GameMove] = field(default_factory=list)
    queuing_kings: int = 0

    def all_moves(self) -> list[GameMove]:
        return [
            *self.table_flip_moves,
            *self.table_ace_moves,
            *self.draw_ace_moves,
            *self.table_king_moves,
            *self.ace_stack_moves,
            *self.table_moves,
            *self.deck_moves,
        ]

    def get_final_state(self, game: "Game") -> GameFinalState:
        # LOST only means this policy found nothing left to play, not that the deal is unsolvable.
        if game.is_done():
            return GameFinalState.WON
        if len(self.all_moves()) == 0:
            return GameFinalState.LOST
        return GameFinalState.UNFINISHED


def validate_deck_indices(deck_indices: list[int]) -> list[int]:
    deck_indices = list(deck_indices)
    if len(deck_indices) != DECK_SIZE:
        msg = f"Expected {DECK_SIZE} card indices, got {len(deck_indices)}"
        raise ValueError(msg)
    if sorted(deck_indices) != list(range(DECK_SIZE)):
        msg = f"Card indices must be the distinct values 0..{DECK_SIZE - 1}"
        raise ValueError(msg)
    return deck_indices


class Game:
    def __init__(self, deck_indices: list[int] | None = None, rng: random.Random | None = None) -> None:
        if deck_indices is None:
            deck_indices = list(range(DECK_SIZE))
            (rng or random).shuffle(deck_indices)
        self.deck_indices = validate_deck_indices(deck_indices)
        logger.info("Created game: %s", self.deck_indices)

        self.reset_containers()
        hand = iter(self.deck_indices)
        for idx, tableau in enumerate(self.tableaus):
            tableau.downturned.add_multiple_to_top([Card.from_index(next(hand)) for _ in range(idx)])
            tableau.upturned.add_to_top(Card.from_index(next(hand)))
        self.draw.add_multiple_to_top([Card.from_index(card_index) for card_index in hand])

    @classmethod
    def empty(cls) -> "Game":
        """A game with no cards anywhere, for setting up positions by hand."""
        game = cls.__new__(cls)
        game.deck_indices = []
        game.reset_containers()
        return game

    def reset_containers(self) -> None:
        self.foundations = [FoundationStack(Suit.from_index(idx)) for idx in range(FOUNDATION_COUNT)]
        self.tableaus = [TableauStack() for _ in range(TABLEAU_COUNT)]
        self.draw = Stack()
        self.history: list[HistoryAction] = []
        self.move_count = 0

    def all_cards(self) -> list[Card]:
        cards: list[Card] = []
        for tableau in self.tableaus:
            cards.extend(tableau.downturned)
            cards.extend(tableau.upturned)
        for foundation in self.foundations:
            cards.extend(foundation)
        cards.extend(self.draw)
        return cards

    def is_done(self) -> bool:
        return all(foundation.is_full() for foundation in self.foundations)

    def foundation_tops(self) -> dict[Suit, int]:
        return {
            foundation.suit: rank
            for foundation in self.foundations
            if (rank := foundation.top_rank()) is not None
        }

    def run_targets(self) -> list[tuple[Card, TableUpturned]]:
        """The top card of each non-empty run and the position just past it."""
        targets = []
        for stack_index, tableau in enumerate(self.tableaus):
            top = tableau.inspect_top()
            if top is not None:
                targets.append((top, TableUpturned(stack_index, tableau.upturned_len())))
        return targets

    def get_table_flip_moves(self) -> list[GameMove]:
        moves = []
        for stack_index, tableau in enumerate(self.tableaus):
            if tableau.upturned_len() == 0 and tableau.downturned_len() > 0:
                moves.append(
                    GameMove(
                        TableDownturned(stack_index, tableau.downturned_len() - 1),
                        TableUpturned(stack_index, 0),
                    ),
                )
        return moves

    def get_table_ace_moves(self) -> list[GameMove]:
        moves = []
        for stack_index, tableau in enumerate(self.tableaus):
            top = tableau.inspect_top()
            if top is not None and top.number == Number.ACE:
                moves.append(
                    GameMove(
                        TableUpturned(stack_index, tableau.upturned_len() - 1),
                        Foundation(int(top.suit)),
                    ),
                )
        return moves

    def get_draw_ace_moves(self) -> list[GameMove]:
        return [
            GameMove(DrawPile(deck_index), Foundation(int(card.suit)))
            for deck_index, card in enumerate(self.draw)
            if card.number == Number.ACE
        ]

    def get_table_king_moves(self) -> tuple[list[GameMove], int]:
        queuing: list[CardPosition] = []
        for stack_index, tableau in enumerate(self.tableaus):
            # Only kings with face-down cards beneath them gain anything from an empty slot.
            root = tableau.inspect_root()
            if tableau.downturned_len() > 0 and root is not None and root.number == Number.KING:
                queuing.append(TableUpturned(stack_index, 0))
        for deck_index, card in enumerate(self.draw):
            if card.number == Number.KING:
                queuing.append(DrawPile(deck_index))

        vacant_index = next((idx for idx, tableau in enumerate(self.tableaus) if tableau.is_empty()), None)
        if vacant_index is None:
            return [], len(queuing)

        # One move is executed per iteration, so every king can target the same slot.
        moves = [GameMove(position, TableUpturned(vacant_index, 0)) for position in queuing]
        return moves, len(queuing)

    def get_ace_stack_moves(self) -> list[GameMove]:
        tops = self.foundation_tops()
        moves = []
        for stack_index, tableau in enumerate(self.tableaus):
            top = tableau.inspect_top()
            if top is not None and top.suit in tops and top.rank == tops[top.suit] + 1:
                moves.append(
                    GameMove(
                        TableUpturned(stack_index, tableau.upturned_len() - 1),
                        Foundation(int(top.suit)),
                    ),
                )
        for deck_index, card in enumerate(self.draw):
            if card.suit in tops and card.rank == tops[card.suit] + 1:
                moves.append(GameMove(DrawPile(deck_index), Foundation(int(card.suit))))
        return moves

    def get_table_moves(self, targets: list[tuple[Card, TableUpturned]]) -> list[GameMove]:
        moves = []
        for stack_index, tableau in enumerate(self.tableaus):
            for upturned_index, card in enumerate(tableau.upturned):
                for target_card, target in targets:
                    if target.stack_index == stack_index:
                        continue
                    if card.can_sit_on(target_card):
                        moves.append(GameMove(TableUpturned(stack_index, upturned_index), target))
        return moves

    def get_deck_moves(self, targets: list[tuple[Card, TableUpturned]]) -> list[GameMove]:
        moves = []
        for deck_index, card in enumerate(self.draw):
            for target_card, target in targets:
                if card.can_sit_on(target_card):
                    moves.append(GameMove(DrawPile(deck_index), target))
        return moves

    def get_game_state(self) -> GameState:
        targets = self.run_targets()
        table_king_moves, queuing_kings = self.get_table_king_moves()
        return GameState(
            table_flip_moves=self.get_table_flip_moves(),
            table_ace_moves=self.get_table_ace_moves(),
            draw_ace_moves=self.get_draw_ace_moves(),
            table_king_moves=table_king_moves,
            ace_stack_moves=self.get_ace_stack_moves(),
            table_moves=self.get_table_moves(targets),
            deck_moves=self.get_deck_moves(targets),
            queuing_kings=queuing_kings,
        )

    def _tableau(self, stack_index: int) -> TableauStack:
        if not 0 <= stack_index < len(self.tableaus):
            msg = f"No tableau stack {stack_index}"
            raise AssertionError(msg)
        return self.tableaus[stack_index]

    def _foundation(self, suit_index: int) -> FoundationStack:
        if not 0 <= suit_index < len(self.foundations):
            msg = f"No foundation {suit_index}"
            raise AssertionError(msg)
        return self.foundations[suit_index]

    def inspect_cards(self, position: CardPosition) -> list[Card]:
        """The cards a move from ``position`` would carry, without moving them."""
        if isinstance(position, TableDownturned):
            return [self._tableau(position.stack_index).downturned[position.downturned_index]]
        elif isinstance(position, TableUpturned):
            return self._tableau(position.stack_index).upturned.inspect_from(position.upturned_index)
        elif isinstance(position, DrawPile):
            return [self.draw[position.deck_index]]
        msg = f"There are no moves from {position}"
        raise AssertionError(msg)

    def _take_cards(self, position: CardPosition) -> list[Card]:
        if isinstance(position, TableDownturned):
            tableau = self._tableau(position.stack_index)
            if tableau.upturned_len() > 0 or position.downturned_index != tableau.downturned_len() - 1:
                msg = f"Only the top face-down card of an uncovered stack can be flipped, not {position}"
                raise AssertionError(msg)
            return [tableau.downturned.get_at(position.downturned_index)]
        elif isinstance(position, TableUpturned):
            return self._tableau(position.stack_index).upturned.get_from(position.upturned_index)
        elif isinstance(position, DrawPile):
            return [self.draw.get_at(position.deck_index)]
        msg = f"There are no moves from {position}"
        raise AssertionError(msg)

    def _place_cards(self, position: CardPosition, cards: list[Card]) -> None:
        if isinstance(position, TableUpturned):
            tableau = self._tableau(position.stack_index)
            tableau.upturned.insert_multiple_at(position.upturned_index, cards)
            if position.upturned_index > 0:
                logger.debug(" - - - Onto [%s]", tableau.upturned[position.upturned_index - 1])
        elif isinstance(position, Foundation):
            if len(cards) != 1:
                msg = f"Only one card at a time can go to a foundation, got {cards}"
                raise AssertionError(msg)
            self._foundation(position.suit_index).add_to_top(cards[0])
        else:
            msg = f"There are no moves to {position}"
            raise AssertionError(msg)

    def execute(self, move: GameMove) -> HistoryAction:
        if isinstance(move.from_location, Foundation):
            msg = f"There are no moves from {move.from_location}"
            raise AssertionError(msg)
        if not isinstance(move.to_location, (TableUpturned, Foundation)):
            msg = f"There are no moves to {move.to_location}"
            raise AssertionError(msg)

        cards = self._take_cards(move.from_location)
        logger.debug(" - - Executing move %s", cards)
        self._place_cards(move.to_location, cards)

        action = HistoryAction(move, cards)
        self.history.append(action)
        self.move_count += 1
        return action

    def render(self) -> str:
        lines = ["Foundations:"]
        for foundation in self.foundations:
            lines.append(f"  {foundation.suit}: {foundation.inspect_top() or '--'}")
        lines.append("Tableaus:")
        for idx, tableau in enumerate(self.tableaus):
            cards = ["##"] * tableau.downturned_len() + [str(card) for card in tableau.upturned]
            lines.append(f"  T{idx + 1}: {' '.join(cards)}")
        lines.append(f"Draw ({len(self.draw)}): {' '.join(str(card) for card in self.draw)}")
        return "\n".join(lines)

    def as_jsonable_dict(self) -> dict[str, Any]:
        return {
            "deck_indices": self.deck_indices,
            "foundations": [foundation.as_jsonable_dict() for foundation in self.foundations],
            "tableaus": [tableau.as_jsonable_dict() for tableau in self.tableaus],
            "draw": self.draw.as_jsonable_dict(),
            "history": [action.as_jsonable_dict() for action in self.history],
            "move_count": self.move_count,
        }

    def as_json(self) -> str:
        return json.dumps(self.as_jsonable_dict())
