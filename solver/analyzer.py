from __future__ import annotations

import argparse
import json
import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from klondike.Core import (
    DECK_SIZE,
    GameState,
    Move,
    applyMove,
    checkWinCondition,
    dealNearlyPerfectGame,
    dealPerfectGame,
    dealSeededGame,
    foundationCount,
)
from klondike.settings_store import load_settings
from solver.moves import find_next_moves
from solver.priority_queue import PriorityQueue

logger = logging.getLogger(__name__)

CardKey = tuple[int, ...]
TableauKey = tuple[tuple[int, bool], ...]
StateKey = tuple[CardKey, CardKey, tuple[CardKey, ...], tuple[TableauKey, ...]]

FACE_DOWN_WEIGHT = 2
EMPTY_TABLEAU_BONUS = 5
KING_BURIED_PENALTY = 5
PROGRESS_LOG_EVERY = 1000


@dataclass(frozen=True, slots=True)
class SearchLimits:
    max_iterations: int = 50_000
    # Probability of expanding a random open node instead of the best one.
    epsilon: float = 0.1
    max_seconds: Optional[float] = None


@dataclass(slots=True)
class SolveResult:
    status: str
    solution: tuple[Move, ...]
    iterations: int
    expanded_nodes: int
    generated_nodes: int
    unique_states: int
    max_frontier: int
    random_picks: int
    elapsed_ms: float
    solution_draws: int

    @property
    def solved(self) -> bool:
        return self.status == "solved"


@dataclass(slots=True)
class AnalyzeResult:
    status: str
    solvable: Optional[bool]
    metrics: dict
    deal: str
    seed: Optional[int] = None
    solution: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "deal": self.deal,
            "seed": self.seed,
            "status": self.status,
            "solvable": self.solvable,
            "metrics": self.metrics,
            "solution": list(self.solution),
        }


class IllegalMoveError(ValueError):
    pass


def state_key(state: GameState) -> StateKey:
    """Order-sensitive identity of a position; counters and flags are not part of it."""
    return (
        tuple(card.id for card in state.stock),
        tuple(card.id for card in state.waste),
        tuple(tuple(card.id for card in pile) for pile in state.foundations),
        tuple(tuple((card.id, card.hidden) for card in pile) for pile in state.tableaus),
    )


def _same_color_run_penalty(state: GameState) -> int:
    penalty = 0
    for pile in state.tableaus:
        for i in range(len(pile) - 1):
            lower = pile[i]
            upper = pile[i + 1]
            if not lower.hidden and not upper.hidden and lower.color == upper.color:
                penalty += 1
    return penalty


def _king_buried_penalty(state: GameState) -> int:
    penalty = 0
    for pile in state.tableaus:
        if len(pile) > 1 and pile[0].rank == "K":
            penalty += KING_BURIED_PENALTY
    return penalty


def heuristic(state: GameState) -> int:
    """Estimated remaining cost, lower is better. Not admissible."""
    face_down = sum(1 for pile in state.tableaus for card in pile if card.hidden)
    empty = sum(1 for pile in state.tableaus if not pile)
    return (
        (DECK_SIZE - foundationCount(state))
        + face_down * FACE_DOWN_WEIGHT
        - empty * EMPTY_TABLEAU_BONUS
        + _same_color_run_penalty(state)
        + _king_buried_penalty(state)
    )


def _move_cost(move: Move) -> int:
    # Drawing is free so the search looks through the stock without inflating g.
    if move.isDraw():
        return 0
    return 1


def _reconstruct(came_from: dict[StateKey, tuple[StateKey, Move]], goal: StateKey) -> tuple[Move, ...]:
    path: list[Move] = []
    cur = goal
    while cur in came_from:
        prev, move = came_from[cur]
        path.append(move)
        cur = prev
    path.reverse()
    return tuple(path)


def solve_state(
    initial_state: GameState,
    limits: SearchLimits = SearchLimits(),
    rng: Optional[random.Random] = None,
    cancel: Optional[threading.Event] = None,
) -> SolveResult:
    """Epsilon-greedy best-first search on f = g + h over find_next_moves."""

    start = time.perf_counter()
    pick = rng if rng is not None else random.Random()
    logger.info(
        "Starting search with max_iterations=%d epsilon=%s",
        limits.max_iterations, limits.epsilon,
    )

    start_key = state_key(initial_state)
    g_score: dict[StateKey, int] = {start_key: 0}
    came_from: dict[StateKey, tuple[StateKey, Move]] = {}
    open_set: PriorityQueue[tuple[StateKey, GameState]] = PriorityQueue()
    open_keys: set[StateKey] = {start_key}
    open_set.push((start_key, initial_state), heuristic(initial_state))

    iterations = 0
    expanded = 0
    generated = 1
    max_frontier = 1
    random_picks = 0
    status = "exhausted"

    def result(status: str, solution: tuple[Move, ...] = ()) -> SolveResult:
        return SolveResult(
            status=status,
            solution=solution,
            iterations=iterations,
            expanded_nodes=expanded,
            generated_nodes=generated,
            unique_states=len(g_score),
            max_frontier=max_frontier,
            random_picks=random_picks,
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
            solution_draws=sum(1 for move in solution if move.isDraw()),
        )

    while open_set:
        if iterations >= limits.max_iterations:
            status = "limits_reached"
            break
        if cancel is not None and cancel.is_set():
            status = "cancelled"
            break
        if limits.max_seconds is not None and (time.perf_counter() - start) >= limits.max_seconds:
            status = "limits_reached"
            break

        iterations += 1
        if pick.random() < limits.epsilon:
            key, current = open_set.pop_random(pick)
            random_picks += 1
        else:
            key, current = open_set.pop()
        open_keys.discard(key)

        if iterations % PROGRESS_LOG_EVERY == 0:
            logger.debug(
                "Iteration %d, g=%d, open=%d, seen=%d",
                iterations, g_score[key], len(open_set), len(g_score),
            )

        if checkWinCondition(current):
            solution = _reconstruct(came_from, key)
            logger.info("Solution of %d moves found after %d iterations", len(solution), iterations)
            return result("solved", solution)

        expanded += 1
        current_g = g_score[key]
        for move, next_state in find_next_moves(current):
            next_key = state_key(next_state)
            tentative = current_g + _move_cost(move)
            if tentative >= g_score.get(next_key, math.inf):
                continue
            came_from[next_key] = (key, move)
            g_score[next_key] = tentative
            if next_key not in open_keys:
                open_set.push((next_key, next_state), tentative + heuristic(next_state))
                open_keys.add(next_key)
                generated += 1

        if len(open_set) > max_frontier:
            max_frontier = len(open_set)

    logger.info("No solution found: %s after %d iterations", status, iterations)
    return result(status)


def solve(
    state: GameState,
    max_iterations: int = 50_000,
    epsilon: float = 0.1,
    rng: Optional[random.Random] = None,
    cancel: Optional[threading.Event] = None,
) -> Optional[list[Move]]:
    """Returns a winning move list, or None if none was found within the budget."""
    res = solve_state(state, SearchLimits(max_iterations=max_iterations, epsilon=epsilon), rng=rng, cancel=cancel)
    if not res.solved:
        return None
    return list(res.solution)


def replay_solution(state: GameState, moves: Iterable[Move]) -> GameState:
    for step, move in enumerate(moves):
        next_state = applyMove(state, move)
        if next_state is None:
            raise IllegalMoveError(f"step {step}: {move.toNotation()} is not legal")
        state = next_state
    return state


def limits_from_settings(settings: dict) -> SearchLimits:
    solver = settings["solver"]
    return SearchLimits(
        max_iterations=int(solver["max_iterations"]),
        epsilon=float(solver["epsilon"]),
        max_seconds=float(solver["max_seconds"]) if solver["max_seconds"] else None,
    )


def analyze_state(
    initial_state: GameState,
    deal: str,
    seed: Optional[int] = None,
    limits: SearchLimits = SearchLimits(),
    rng: Optional[random.Random] = None,
) -> AnalyzeResult:
    """Solve a position and report search metrics; a found solution is replayed before it is reported."""

    res = solve_state(initial_state, limits, rng=rng)
    metrics = {
        "iterations": res.iterations,
        "expanded_nodes": res.expanded_nodes,
        "generated_nodes": res.generated_nodes,
        "unique_states": res.unique_states,
        "max_frontier": res.max_frontier,
        "random_picks": res.random_picks,
        "elapsed_ms": round(res.elapsed_ms, 3),
        "initial_heuristic": heuristic(initial_state),
    }

    if not res.solved:
        metrics["reason"] = res.status
        return AnalyzeResult(status=res.status, solvable=None, metrics=metrics, deal=deal, seed=seed)

    final = replay_solution(initial_state, res.solution)
    metrics.update(
        {
            "solution_len": len(res.solution),
            "solution_draws": res.solution_draws,
            "solution_plays": len(res.solution) - res.solution_draws,
            "final_moves": final.moves,
        }
    )
    return AnalyzeResult(
        status="solved",
        solvable=True,
        metrics=metrics,
        deal=deal,
        seed=seed,
        solution=tuple(move.toNotation() for move in res.solution),
    )


def analyze_seed(
    seed: int,
    shuffle_count: int = 1,
    limits: SearchLimits = SearchLimits(),
    rng: Optional[random.Random] = None,
) -> AnalyzeResult:
    state = dealSeededGame(seed, shuffle_count)
    return analyze_state(state, deal="seeded", seed=seed, limits=limits, rng=rng)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search for a winning move sequence of a Klondike deal.")
    parser.add_argument("--seed", type=int, action="append", default=[], help="Seeded deal to solve; can be repeated.")
    parser.add_argument(
        "--deal",
        choices=("seeded", "unshuffled", "perfect"),
        default="seeded",
        help="Deal variant. unshuffled and perfect ignore --seed.",
    )
    parser.add_argument("--settings", type=str, default=None, help="INI file with [solver] defaults.")
    parser.add_argument("--max-iterations", type=int, default=None, help="Search iteration limit.")
    parser.add_argument("--epsilon", type=float, default=None, help="Random exploration probability.")
    parser.add_argument("--max-seconds", type=float, default=None, help="Optional wall-clock limit.")
    parser.add_argument("--rng-seed", type=int, default=None, help="Seed of the exploration generator.")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print json output.")
    parser.add_argument("--verbose", action="store_true", help="Log search progress.")
    args = parser.parse_args()
    if args.deal == "seeded" and not args.seed:
        parser.error("--seed is required for seeded deals")
    return args


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    base = limits_from_settings(load_settings(args.settings))
    limits = SearchLimits(
        max_iterations=args.max_iterations if args.max_iterations is not None else base.max_iterations,
        epsilon=args.epsilon if args.epsilon is not None else base.epsilon,
        max_seconds=args.max_seconds if args.max_seconds is not None else base.max_seconds,
    )
    rng = random.Random(args.rng_seed) if args.rng_seed is not None else None

    if args.deal == "perfect":
        results = [analyze_state(dealPerfectGame(), deal="perfect", limits=limits, rng=rng)]
    elif args.deal == "unshuffled":
        results = [analyze_state(dealNearlyPerfectGame(), deal="unshuffled", limits=limits, rng=rng)]
    else:
        results = [analyze_seed(seed, limits=limits, rng=rng) for seed in args.seed]

    payload = [result.to_dict() for result in results]
    if len(payload) == 1:
        payload = payload[0]

    if args.pretty:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(payload, ensure_ascii=False))


if __name__ == "__main__":
    main()
