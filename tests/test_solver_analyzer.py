import random
import threading
import unittest

from klondike.Core import (
    RANKS,
    SUITS,
    WASTE,
    Card,
    FoundationPile,
    GameState,
    Move,
    TableauPile,
    checkWinCondition,
    dealNearlyPerfectGame,
    dealPerfectGame,
)
from klondike.settings_store import load_settings
from solver.analyzer import (
    IllegalMoveError,
    SearchLimits,
    analyze_seed,
    analyze_state,
    heuristic,
    limits_from_settings,
    replay_solution,
    solve,
    solve_state,
    state_key,
)


def up(suit, rank):
    return Card.fromSuitAndRank(suit, rank, hidden=False)


def down(suit, rank):
    return Card.fromSuitAndRank(suit, rank)


def full_suit(suit, upto="K"):
    return [up(suit, rank) for rank in RANKS[:RANKS.index(upto) + 1]]


def won_state():
    return GameState(foundations=[full_suit(suit) for suit in SUITS], won=True)


def two_clubs_left():
    """Q and K of clubs left, the queen buried under the king."""
    return GameState(
        foundations=[full_suit("clubs", "J"), full_suit("diamonds"), full_suit("hearts"), full_suit("spades")],
        tableaus=[[down("clubs", "Q"), up("clubs", "K")], [], [], [], [], [], []],
    )


def crossed_kings():
    """The queens of hearts and clubs are each buried under the other suit's king; the last spades wait in the stock."""
    return GameState(
        stock=[down("spades", "K"), down("spades", "Q")],
        foundations=[full_suit("clubs", "J"), full_suit("diamonds"), full_suit("hearts", "J"), full_suit("spades", "J")],
        tableaus=[
            [down("hearts", "Q"), up("clubs", "K")],
            [down("clubs", "Q"), up("hearts", "K")],
            [], [], [], [], [],
        ],
    )


def stuck_state():
    return GameState(tableaus=[[up("hearts", "5")], [], [], [], [], [], []])


class StateKeyTestCase(unittest.TestCase):
    def test_ignores_counters(self):
        state = dealPerfectGame()
        moved = GameState(stock=state.stock, moves=12, lost=True)
        self.assertEqual(state_key(state), state_key(moved))

    def test_tracks_face_orientation(self):
        hidden = GameState(tableaus=[[down("clubs", "5")], [], [], [], [], [], []])
        shown = GameState(tableaus=[[up("clubs", "5")], [], [], [], [], [], []])
        self.assertNotEqual(state_key(hidden), state_key(shown))

    def test_tracks_pile_order(self):
        a = GameState(waste=[up("clubs", "5"), up("hearts", "5")])
        b = GameState(waste=[up("hearts", "5"), up("clubs", "5")])
        self.assertNotEqual(state_key(a), state_key(b))


class HeuristicTestCase(unittest.TestCase):
    def test_won_state(self):
        self.assertEqual(-35, heuristic(won_state()))

    def test_perfect_deal(self):
        self.assertEqual(17, heuristic(dealPerfectGame()))

    def test_penalties(self):
        # same-colour run +1, buried king +5, six empty piles -30
        state = GameState(tableaus=[[up("spades", "K"), up("clubs", "Q")], [], [], [], [], [], []])
        self.assertEqual(52 + 1 + 5 - 30, heuristic(state))

    def test_face_down_cards_weigh_double(self):
        state = GameState(tableaus=[[down("spades", "4"), down("clubs", "Q"), up("hearts", "2")], [], [], [], [], [], []])
        self.assertEqual(52 + 4 - 30, heuristic(state))


class SolveTestCase(unittest.TestCase):
    def test_solves_perfect_deal(self):
        state = dealPerfectGame()
        path = solve(state, epsilon=0.0)
        self.assertIsNotNone(path)
        self.assertEqual(104, len(path))
        self.assertEqual(52, sum(1 for move in path if move.isDraw()))
        final = replay_solution(state, path)
        self.assertTrue(final.won)
        self.assertTrue(checkWinCondition(final))

    def test_already_won_returns_empty_path(self):
        self.assertEqual([], solve(won_state()))

    def test_moves_a_king_to_free_a_buried_card(self):
        res = solve_state(two_clubs_left(), SearchLimits(epsilon=0.0))
        self.assertEqual("solved", res.status)
        self.assertEqual(
            ["T0:1->T1", "T0:0->F(clubs)", "T1:0->F(clubs)"],
            [move.toNotation() for move in res.solution],
        )
        self.assertEqual(0, res.solution_draws)

    def test_solution_with_tableau_moves_and_draws_replays(self):
        state = crossed_kings()
        self.assertEqual(52, sum(1 for _ in state.iterCards()))
        path = solve(state, rng=random.Random(1))
        self.assertIsNotNone(path)
        self.assertTrue(any(move.isDraw() for move in path))
        self.assertTrue(
            any(isinstance(move.src, TableauPile) and isinstance(move.dest, TableauPile) for move in path)
        )
        self.assertTrue(replay_solution(state, path).won)

    def test_unshuffled_deal_solves_and_replays(self):
        state = dealNearlyPerfectGame()
        path = solve(state, rng=random.Random(1))
        self.assertIsNotNone(path)
        final = replay_solution(state, path)
        self.assertTrue(final.won)
        self.assertEqual(len(path), final.moves)

    def test_exhausted_when_no_moves(self):
        res = solve_state(stuck_state())
        self.assertEqual("exhausted", res.status)
        self.assertFalse(res.solved)
        self.assertEqual((), res.solution)
        self.assertEqual(1, res.iterations)

    def test_iteration_limit(self):
        res = solve_state(dealPerfectGame(), SearchLimits(max_iterations=5, epsilon=0.0))
        self.assertEqual("limits_reached", res.status)
        self.assertEqual(5, res.iterations)
        self.assertIsNone(solve(dealPerfectGame(), max_iterations=5))

    def test_time_limit(self):
        res = solve_state(dealPerfectGame(), SearchLimits(max_seconds=0.0))
        self.assertEqual("limits_reached", res.status)
        self.assertEqual(0, res.iterations)

    def test_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        res = solve_state(dealPerfectGame(), cancel=cancel)
        self.assertEqual("cancelled", res.status)
        self.assertEqual(0, res.iterations)

    def test_full_exploration_picks_randomly_every_time(self):
        res = solve_state(dealPerfectGame(), SearchLimits(epsilon=1.0), rng=random.Random(5))
        self.assertTrue(res.solved)
        self.assertEqual(res.iterations, res.random_picks)

    def test_replay_rejects_illegal_move(self):
        with self.assertRaises(IllegalMoveError):
            replay_solution(dealPerfectGame(), [Move(WASTE, 0, FoundationPile("clubs"))])


class AnalyzeTestCase(unittest.TestCase):
    def test_analyze_solved_state(self):
        result = analyze_state(dealPerfectGame(), deal="perfect", limits=SearchLimits(epsilon=0.0))
        self.assertEqual("solved", result.status)
        self.assertTrue(result.solvable)
        self.assertEqual("DRAW", result.solution[0])
        self.assertEqual("W:0->F(clubs)", result.solution[1])
        self.assertEqual(104, result.metrics["solution_len"])
        self.assertEqual(52, result.metrics["solution_draws"])
        self.assertEqual(52, result.metrics["solution_plays"])
        self.assertEqual(104, result.metrics["final_moves"])
        self.assertEqual(17, result.metrics["initial_heuristic"])

        payload = result.to_dict()
        self.assertEqual("perfect", payload["deal"])
        self.assertIsNone(payload["seed"])
        self.assertEqual(104, len(payload["solution"]))

    def test_analyze_unsolved_state(self):
        result = analyze_state(stuck_state(), deal="custom")
        self.assertEqual("exhausted", result.status)
        self.assertIsNone(result.solvable)
        self.assertEqual("exhausted", result.metrics["reason"])
        self.assertNotIn("solution_len", result.metrics)
        self.assertEqual([], result.to_dict()["solution"])

    def test_analyze_seed_returns_structured_result(self):
        result = analyze_seed(
            seed=20260210,
            limits=SearchLimits(max_iterations=200, max_seconds=2.0),
            rng=random.Random(0),
        )
        self.assertIn(result.status, {"solved", "limits_reached", "exhausted"})
        self.assertEqual(20260210, result.seed)
        self.assertEqual("seeded", result.deal)
        self.assertIn("expanded_nodes", result.metrics)
        self.assertLessEqual(result.metrics["iterations"], 200)

    def test_limits_from_settings(self):
        settings = load_settings("/nonexistent/klondike-settings.ini")
        self.assertEqual(SearchLimits(max_iterations=50000, epsilon=0.1, max_seconds=None), limits_from_settings(settings))
        settings["solver"]["max_seconds"] = "2.5"
        settings["solver"]["max_iterations"] = "10"
        limits = limits_from_settings(settings)
        self.assertEqual(2.5, limits.max_seconds)
        self.assertEqual(10, limits.max_iterations)


if __name__ == "__main__":
    unittest.main()
