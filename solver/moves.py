from __future__ import annotations

from typing import Optional

from klondike.Core import (
    DRAW_MOVE,
    WASTE,
    FoundationPile,
    GameState,
    Move,
    TableauPile,
    canAcceptOnTableau,
    canPlaceCardOnFoundation,
    drawFromStock,
    moveCard,
)

Transition = tuple[Move, GameState]


def _try_move(state: GameState, move: Move, out: list[Transition]) -> bool:
    next_state = moveCard(state, move.src, move.cardIndex, move.dest)
    if next_state is None:
        return False
    out.append((move, next_state))
    return True


def _first_foundation_move(state: GameState) -> Optional[Transition]:
    found: list[Transition] = []
    if state.waste:
        idx = len(state.waste) - 1
        card = state.waste[idx]
        if canPlaceCardOnFoundation(state.foundation(card.suit), card):
            if _try_move(state, Move(WASTE, idx, FoundationPile(card.suit)), found):
                return found[0]

    for s_idx, pile in enumerate(state.tableaus):
        if not pile or pile[-1].hidden:
            continue
        idx = len(pile) - 1
        card = pile[idx]
        if canPlaceCardOnFoundation(state.foundation(card.suit), card):
            if _try_move(state, Move(TableauPile(s_idx), idx, FoundationPile(card.suit)), found):
                return found[0]
    return None


def find_next_moves(state: GameState) -> list[Transition]:
    """
    Moves to expand from a search node.
    A foundation move (waste first, then tableaus left to right) is returned alone;
    otherwise every waste->tableau and tableau->tableau move plus one draw.
    """
    foundation = _first_foundation_move(state)
    if foundation is not None:
        return [foundation]

    out: list[Transition] = []
    tableaus = state.tableaus

    if state.waste:
        idx = len(state.waste) - 1
        card = state.waste[idx]
        for d_idx, dest in enumerate(tableaus):
            if canAcceptOnTableau(dest, card):
                _try_move(state, Move(WASTE, idx, TableauPile(d_idx)), out)

    for s_idx, pile in enumerate(tableaus):
        for idx, card in enumerate(pile):
            if card.hidden:
                continue
            for d_idx, dest in enumerate(tableaus):
                if d_idx == s_idx:
                    continue
                if canAcceptOnTableau(dest, card):
                    _try_move(state, Move(TableauPile(s_idx), idx, TableauPile(d_idx)), out)

    if state.stock or state.waste:
        out.append((DRAW_MOVE, drawFromStock(state)))

    return out
