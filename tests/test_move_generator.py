import random
import unittest

from klondike.Core import (
    DRAW_MOVE,
    SUITS,
    WASTE,
    Card,
    FoundationPile,
    GameState,
    Move,
    TableauPile,
    countCards,
    dealSeededGame,
    getRankValue,
    isValidTableau,
    moveCard,
)
from solver.moves import find_next_moves


def up(suit, rank):
    return Card.fromSuitAndRank(suit, rank, hidden=False)


def down(suit, rank):
    return Card.fromSuitAndRank(suit, rank)


def tableaus(*piles):
    out = [list(pile) for pile in piles]
    while len(out) < 7:
        out.append([])
    return out


class MoveGeneratorTestCase(unittest.TestCase):
    def test_waste_foundation_move_short_circuits(self):
        state = GameState(
            stock=[down("hearts", "9")],
            waste=[up("clubs", "A")],
            tableaus=tableaus([up("diamonds", "A")], [up("spades", "K")]),
        )
        moves = find_next_moves(state)
        self.assertEqual([Move(WASTE, 0, FoundationPile("clubs"))], [m for m, _ in moves])

    def test_first_tableau_foundation_move_short_circuits(self):
        state = GameState(
            waste=[up("clubs", "5")],
            tableaus=tableaus([up("spades", "5")], [up("hearts", "A")], [up("diamonds", "A")]),
        )
        moves = find_next_moves(state)
        self.assertEqual([Move(TableauPile(1), 0, FoundationPile("hearts"))], [m for m, _ in moves])

    def test_enumerates_tableau_moves_and_one_draw(self):
        state = GameState(
            stock=[down("clubs", "2")],
            waste=[up("hearts", "Q")],
            tableaus=tableaus([up("spades", "K")], [up("clubs", "K")]),
        )
        moves = {m.toNotation() for m, _ in find_next_moves(state)}
        expected = {
            "W:0->T0",
            "W:0->T1",
            "T0:0->T2", "T0:0->T3", "T0:0->T4", "T0:0->T5", "T0:0->T6",
            "T1:0->T2", "T1:0->T3", "T1:0->T4", "T1:0->T5", "T1:0->T6",
            "DRAW",
        }
        self.assertEqual(expected, moves)

    def test_every_face_up_index_is_a_move_source(self):
        state = GameState(
            tableaus=tableaus(
                [down("clubs", "2"), up("hearts", "9"), up("spades", "8")],
                [up("clubs", "10")],
                [up("diamonds", "9")],
            ),
        )
        moves = {m.toNotation() for m, _ in find_next_moves(state)}
        self.assertEqual({"T0:1->T1", "T0:2->T2", "T2:0->T1"}, moves)

    def test_no_draw_when_stock_and_waste_are_empty(self):
        state = GameState(tableaus=tableaus([up("hearts", "5")]))
        self.assertEqual([], find_next_moves(state))

    def test_draw_is_offered_for_recycle(self):
        state = GameState(waste=[up("hearts", "5")], tableaus=tableaus([up("hearts", "9")]))
        moves = find_next_moves(state)
        self.assertEqual([DRAW_MOVE], [m for m, _ in moves])
        self.assertEqual(1, len(moves[0][1].stock))

    def test_generated_states_match_move_card(self):
        state = dealSeededGame(7)
        for move, next_state in find_next_moves(state):
            if move.isDraw():
                continue
            self.assertEqual(moveCard(state, move.src, move.cardIndex, move.dest), next_state)

    def test_random_walk_keeps_invariants(self):
        rng = random.Random(11)
        state = dealSeededGame(20260210)
        for _ in range(400):
            moves = find_next_moves(state)
            if not moves:
                break
            _, state = rng.choice(moves)
            self.assertEqual(52, countCards(state))
            self.assertEqual(52, len({card.id for card in state.iterCards()}))
            for pile in state.tableaus:
                self.assertTrue(isValidTableau(pile))
            for suit, pile in zip(SUITS, state.foundations):
                self.assertEqual(list(range(1, len(pile) + 1)), [getRankValue(card.rank) for card in pile])
                self.assertTrue(all(card.suit == suit for card in pile))


if __name__ == "__main__":
    unittest.main()
