import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)

NUM_PER_SUIT = 13
DECK_SIZE = 52
TABLEAU_COUNT = 7

SUITS = ("clubs", "diamonds", "hearts", "spades")
SUIT_SYMBOLS = {"clubs": "♣", "diamonds": "♦", "hearts": "♥", "spades": "♠"}
RED_SUITS = ("diamonds", "hearts")
RANKS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")

DEAL_MODES = ("shuffled", "unshuffled", "perfect")


class InvalidRankError(ValueError):
    pass


class CardCountError(RuntimeError):
    """Raised when a transition loses or duplicates a card. Always a bug in the engine."""


def getRankValue(rank) -> int:
    try:
        return RANKS.index(rank) + 1
    except ValueError:
        raise InvalidRankError(f"Invalid rank: {rank!r}") from None


@dataclass(frozen=True, slots=True)
class Card:
    id: int
    hidden: bool = True

    @property
    def suit(self) -> str:
        return SUITS[self.id // NUM_PER_SUIT]

    @property
    def rank(self) -> str:
        return RANKS[self.id % NUM_PER_SUIT]

    @property
    def color(self) -> str:
        if self.suit in RED_SUITS:
            return "red"
        return "black"

    def faceUp(self) -> "Card":
        if not self.hidden:
            return self
        return Card(self.id, False)

    def faceDown(self) -> "Card":
        if self.hidden:
            return self
        return Card(self.id, True)

    def gameStr(self) -> str:
        if self.hidden:
            return "---"
        return SUIT_SYMBOLS[self.suit] + self.rank

    def __str__(self):
        if self.hidden:
            return str(self.id) + "H"
        return str(self.id)

    @staticmethod
    def fromSuitAndRank(suit: str, rank: str, hidden=True) -> "Card":
        return Card(SUITS.index(suit) * NUM_PER_SUIT + getRankValue(rank) - 1, hidden)


@dataclass(frozen=True, slots=True)
class StockPile:
    def notation(self) -> str:
        return "S"


@dataclass(frozen=True, slots=True)
class WastePile:
    def notation(self) -> str:
        return "W"


@dataclass(frozen=True, slots=True)
class FoundationPile:
    suit: str

    def notation(self) -> str:
        return f"F({self.suit})"


@dataclass(frozen=True, slots=True)
class TableauPile:
    index: int

    def notation(self) -> str:
        return f"T{self.index}"


PileRef = Union[StockPile, WastePile, FoundationPile, TableauPile]

STOCK = StockPile()
WASTE = WastePile()


@dataclass(frozen=True, slots=True)
class Move:
    src: PileRef
    cardIndex: int
    dest: PileRef

    def isDraw(self) -> bool:
        return isinstance(self.src, StockPile)

    def toNotation(self) -> str:
        if self.isDraw():
            return "DRAW"
        return f"{self.src.notation()}:{self.cardIndex}->{self.dest.notation()}"


DRAW_MOVE = Move(STOCK, 0, WASTE)

Pile = tuple[Card, ...]


@dataclass(frozen=True, slots=True)
class GameState:
    """
    Immutable snapshot of a game. The last card of every pile is its top card.
    Piles are tuples, so snapshots share every pile a transition did not touch.
    """

    stock: Pile = ()
    waste: Pile = ()
    # One pile per suit, in SUITS order.
    foundations: tuple[Pile, ...] = ((),) * len(SUITS)
    tableaus: tuple[Pile, ...] = ((),) * TABLEAU_COUNT
    moves: int = 0
    won: bool = False
    lost: bool = False
    lastMove: Optional[Move] = None

    def __post_init__(self):
        # Accept lists from callers building scripted positions.
        object.__setattr__(self, "stock", tuple(self.stock))
        object.__setattr__(self, "waste", tuple(self.waste))
        object.__setattr__(self, "foundations", tuple(tuple(pile) for pile in self.foundations))
        object.__setattr__(self, "tableaus", tuple(tuple(pile) for pile in self.tableaus))

    def foundation(self, suit: str) -> Pile:
        return self.foundations[SUITS.index(suit)]

    def pile(self, ref: PileRef) -> Pile:
        if isinstance(ref, StockPile):
            return self.stock
        if isinstance(ref, WastePile):
            return self.waste
        if isinstance(ref, FoundationPile):
            return self.foundation(ref.suit)
        return self.tableaus[ref.index]

    def iterCards(self) -> Iterator[Card]:
        yield from self.stock
        yield from self.waste
        for pile in self.foundations:
            yield from pile
        for pile in self.tableaus:
            yield from pile


def createDeck() -> list[Card]:
    return [Card(cardId) for cardId in range(DECK_SIZE)]


def shuffleDeck(deck: list[Card], shuffleCount: int = 1, rng: Optional[random.Random] = None) -> list[Card]:
    """Fisher-Yates shuffle in place, repeated shuffleCount times. 0 leaves the deck as is."""
    pick = rng if rng is not None else random
    for _ in range(shuffleCount):
        for i in range(len(deck) - 1, 0, -1):
            j = pick.randrange(i + 1)
            deck[i], deck[j] = deck[j], deck[i]
    return deck


def dealCards(deck: list[Card]) -> GameState:
    stock = list(deck)
    tableaus = [[] for _ in range(TABLEAU_COUNT)]
    for i in range(TABLEAU_COUNT):
        for j in range(i, TABLEAU_COUNT):
            if stock:
                tableaus[j].append(stock.pop(0).faceDown())
    for pile in tableaus:
        if pile:
            pile[-1] = pile[-1].faceUp()
    return GameState(
        stock=tuple(card.faceDown() for card in stock),
        tableaus=tuple(tuple(pile) for pile in tableaus),
    )


def dealNearlyPerfectGame() -> GameState:
    return dealCards(shuffleDeck(createDeck(), 0))


def dealPerfectGame() -> GameState:
    """Every card in the stock, Ace of clubs on top: drawing and playing each card wins."""
    deck = createDeck()
    deck.reverse()
    return GameState(stock=tuple(card.faceDown() for card in deck))


def dealSeededGame(seed: int, shuffleCount: int = 1) -> GameState:
    return dealCards(shuffleDeck(createDeck(), shuffleCount, random.Random(seed)))


def canPlaceCardOnTableau(target: Card, moving: Card) -> bool:
    return target.color != moving.color and getRankValue(target.rank) == getRankValue(moving.rank) + 1


def canPlaceCardOnFoundation(pile: Pile, moving: Card) -> bool:
    if len(pile) == 0:
        return moving.rank == "A"
    top = pile[-1]
    return top.suit == moving.suit and getRankValue(top.rank) == getRankValue(moving.rank) - 1


def canAcceptOnTableau(pile: Pile, moving: Card) -> bool:
    if len(pile) == 0:
        return moving.rank == "K"
    return canPlaceCardOnTableau(pile[-1], moving)


def foundationCount(state: GameState) -> int:
    return sum(len(pile) for pile in state.foundations)


def checkWinCondition(state: GameState) -> bool:
    return foundationCount(state) == DECK_SIZE


def countCards(state: GameState) -> int:
    return sum(1 for _ in state.iterCards())


def isValidTableau(pile: Pile) -> bool:
    """True if the pile is a face-down prefix followed by a face-up suffix."""
    seenFaceUp = False
    for card in pile:
        if not card.hidden:
            seenFaceUp = True
        elif seenFaceUp:
            return False
    return True


def _verifyConservation(before: GameState, after: GameState, move: Move):
    expected = countCards(before)
    ids = [card.id for card in after.iterCards()]
    unique = len(set(ids))
    if len(ids) != expected or unique != len(ids):
        logger.error(
            "Card count mismatch: before=%d after=%d unique=%d move=%s",
            expected, len(ids), unique, move.toNotation(),
        )
        raise CardCountError(f"A card went missing during {move.toNotation()}: {expected} -> {len(ids)} ({unique} unique)")


def _withFoundation(foundations: tuple[Pile, ...], suit: str, pile: Pile) -> tuple[Pile, ...]:
    idx = SUITS.index(suit)
    return foundations[:idx] + (pile,) + foundations[idx + 1:]


def moveCard(state: GameState, src: PileRef, cardIndex: int, dest: PileRef) -> Optional[GameState]:
    """
    Moves the sub-stack starting at cardIndex of src onto dest.
    Returns the new state, or None if the move is illegal. The input state is never changed.
    """
    # Resolve the moving cards without touching the state.
    if isinstance(src, TableauPile):
        if src.index < 0 or src.index >= len(state.tableaus):
            return None
        srcPile = state.tableaus[src.index]
        if cardIndex < 0 or cardIndex >= len(srcPile):
            return None
        moving = srcPile[cardIndex:]
        if any(card.hidden for card in moving):
            return None
    elif isinstance(src, WastePile):
        if len(state.waste) == 0 or cardIndex != len(state.waste) - 1:
            return None
        moving = state.waste[cardIndex:]
    else:
        # Foundation and stock cards never move through here.
        return None

    base = moving[0]
    if isinstance(dest, TableauPile):
        if dest.index < 0 or dest.index >= len(state.tableaus) or dest == src:
            return None
        if not canAcceptOnTableau(state.tableaus[dest.index], base):
            return None
    elif isinstance(dest, FoundationPile):
        if dest.suit not in SUITS or base.suit != dest.suit or len(moving) != 1:
            return None
        if not canPlaceCardOnFoundation(state.foundation(dest.suit), base):
            return None
    else:
        return None

    tableaus = list(state.tableaus)
    waste = state.waste
    foundations = state.foundations
    if isinstance(src, TableauPile):
        remaining = srcPile[:cardIndex]
        if remaining and remaining[-1].hidden:
            remaining = remaining[:-1] + (remaining[-1].faceUp(),)
        tableaus[src.index] = remaining
    else:
        waste = state.waste[:-1]

    if isinstance(dest, TableauPile):
        tableaus[dest.index] = tableaus[dest.index] + moving
    else:
        foundations = _withFoundation(foundations, dest.suit, state.foundation(dest.suit) + moving)

    move = Move(src, cardIndex, dest)
    out = replace(
        state,
        waste=waste,
        foundations=foundations,
        tableaus=tuple(tableaus),
        moves=state.moves + 1,
        won=sum(len(pile) for pile in foundations) == DECK_SIZE,
        lastMove=move,
    )
    _verifyConservation(state, out, move)
    return out


def drawFromStock(state: GameState) -> GameState:
    """
    Turns the top stock card onto the waste, or recycles the waste into the stock when the stock is empty.
    With both piles empty the same state object is returned.
    """
    if state.stock:
        card = state.stock[-1]
        out = replace(
            state,
            stock=state.stock[:-1],
            waste=state.waste + (card.faceUp(),),
            moves=state.moves + 1,
            lastMove=DRAW_MOVE,
        )
    elif state.waste:
        out = replace(
            state,
            stock=tuple(card.faceDown() for card in reversed(state.waste)),
            waste=(),
            moves=state.moves + 1,
            lastMove=DRAW_MOVE,
        )
    else:
        return state
    _verifyConservation(state, out, DRAW_MOVE)
    return out


def autoMoveToFoundation(state: GameState) -> Optional[GameState]:
    """Plays at most one tableau top (left to right), then the waste top, to its foundation."""
    for idx, pile in enumerate(state.tableaus):
        if not pile or pile[-1].hidden:
            continue
        top = pile[-1]
        out = moveCard(state, TableauPile(idx), len(pile) - 1, FoundationPile(top.suit))
        if out is not None:
            return out
    if state.waste:
        top = state.waste[-1]
        return moveCard(state, WASTE, len(state.waste) - 1, FoundationPile(top.suit))
    return None


def applyMove(state: GameState, move: Move) -> Optional[GameState]:
    if move.isDraw():
        out = drawFromStock(state)
        if out is state:
            return None
        return out
    return moveCard(state, move.src, move.cardIndex, move.dest)


class GameConfig:
    def __init__(self):
        self.dealMode = "shuffled"
        self.seed = None
        self.shuffleCount = 1

    def initState(self) -> GameState:
        if self.dealMode == "perfect":
            return dealPerfectGame()
        if self.dealMode == "unshuffled":
            return dealNearlyPerfectGame()
        if self.seed is not None:
            return dealSeededGame(self.seed, self.shuffleCount)
        return dealCards(shuffleDeck(createDeck(), self.shuffleCount))


class Core:
    """
    Owns the current GameState snapshot; nothing else replaces it.
    ask*** : called by the player or the interface, returns whether anything happened.
    do***  : installs a snapshot and notifies the interface.
    """
    DEFAULT_CONFIG = GameConfig()

    def __init__(self):
        self.interface = None
        self.state: Optional[GameState] = None
        self.history: Optional[HistoryRecorder] = None
        self.solutionPath: Optional[list[Move]] = None

        self._executor: Optional[ThreadPoolExecutor] = None
        self._cancelEvent: Optional[threading.Event] = None
        # Guards state and solutionPath against the solver worker.
        self._lock = threading.RLock()

    def registerInterface(self, interface):
        self.interface = interface
        interface.core = self

    def startGame(self, gameConfig: GameConfig = DEFAULT_CONFIG):
        self.loadState(gameConfig.initState())

    def loadState(self, state: GameState):
        with self._lock:
            self.state = state
            self.history = HistoryRecorder(self, state)
            self.solutionPath = None
        if self.interface is not None:
            self.interface.onStart()

    def checkWin(self) -> bool:
        if not self.state.won:
            return False
        if self.interface is not None:
            self.interface.onWin()
        return True

    def askMove(self, src: PileRef, cardIndex: int, dest: PileRef) -> bool:
        out = moveCard(self.state, src, cardIndex, dest)
        if out is None:
            return False
        self.doReplace(out)
        return True

    def askDraw(self) -> bool:
        out = drawFromStock(self.state)
        if out is self.state:
            return False
        self.doReplace(out)
        return True

    def askAutoMove(self) -> bool:
        out = autoMoveToFoundation(self.state)
        if out is None:
            return False
        self.doReplace(out)
        return True

    def askAutoMoveAll(self) -> int:
        count = 0
        while self.askAutoMove():
            count += 1
        return count

    def askUndo(self) -> bool:
        return self.history.undo()

    def askRedo(self) -> bool:
        return self.history.redo()

    def askSolve(self, limits=None, rng: Optional[random.Random] = None) -> Optional[list[Move]]:
        from solver.analyzer import SearchLimits, solve_state

        result = solve_state(self.state, limits or SearchLimits(), rng=rng)
        with self._lock:
            self.solutionPath = list(result.solution) if result.solved else None
        return self.solutionPath

    def askSolveAsync(self, limits=None, rng: Optional[random.Random] = None) -> Future:
        """
        Runs the solver on a background worker for the current snapshot.
        The future yields the move list or None; the path is only kept if the snapshot did not change meanwhile.
        """
        from solver.analyzer import SearchLimits, solve_state

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="klondike-solver")
        self.cancelSolve()
        cancel = threading.Event()
        self._cancelEvent = cancel
        start = self.state

        def run():
            result = solve_state(start, limits or SearchLimits(), rng=rng, cancel=cancel)
            path = list(result.solution) if result.solved else None
            with self._lock:
                if self.state is start:
                    self.solutionPath = path
            return path

        return self._executor.submit(run)

    def cancelSolve(self):
        if self._cancelEvent is not None:
            self._cancelEvent.set()

    def shutdown(self):
        self.cancelSolve()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def applyNextSolutionMove(self) -> bool:
        with self._lock:
            if not self.solutionPath:
                return False
            move = self.solutionPath[0]
            out = applyMove(self.state, move)
            if out is None:
                logger.warning("Solver move failed to execute: %s", move.toNotation())
                self.solutionPath = None
                return False
            self.solutionPath = self.solutionPath[1:]
            self.doReplace(out)
            return True

    def replaySolution(self, onStep=None) -> bool:
        if self.solutionPath is None:
            return False
        while self.solutionPath:
            if not self.applyNextSolutionMove():
                return False
            if onStep is not None:
                onStep(self.state)
        self.solutionPath = None
        return True

    def doReplace(self, state: GameState, doLog=True):
        with self._lock:
            self.state = state
            if doLog:
                self.history.log(state)
        if self.interface is not None:
            self.interface.onEvent(state.lastMove)
        self.checkWin()

    def doRestore(self, state: GameState, undone: Optional[Move] = None):
        with self._lock:
            self.state = state
            self.solutionPath = None
        if self.interface is None:
            return
        if undone is not None:
            self.interface.onUndoEvent(undone)
        else:
            self.interface.onEvent(state.lastMove)


class HistoryRecorder:
    def __init__(self, core: Core, initial: GameState):
        self.core = core
        self.lst = [initial]
        self.idx = 0  # index of the snapshot the core currently holds

    def log(self, state: GameState):
        if self.idx != len(self.lst) - 1:
            self.lst = self.lst[:self.idx + 1]
        self.lst.append(state)
        self.idx += 1

    def undo(self) -> bool:
        if self.idx <= 0:
            return False
        undone = self.lst[self.idx].lastMove
        self.idx -= 1
        self.core.doRestore(self.lst[self.idx], undone)
        return True

    def redo(self) -> bool:
        if self.idx >= len(self.lst) - 1:
            return False
        self.idx += 1
        self.core.doRestore(self.lst[self.idx])
        return True
