from __future__ import annotations

import argparse
import json
import logging
import random
import time
from pathlib import Path

from solver.analyzer import SearchLimits, analyze_seed


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch seed mining for the Klondike solver.")
    parser.add_argument("--start-seed", type=int, required=True, help="Start seed (inclusive).")
    parser.add_argument("--count", type=int, required=True, help="How many seeds to scan.")
    parser.add_argument("--shuffle-count", type=int, default=1, help="Shuffle passes per deal.")
    parser.add_argument("--max-iterations", type=int, default=50_000, help="Per-seed iteration limit.")
    parser.add_argument("--max-seconds", type=float, default=None, help="Optional per-seed time limit.")
    parser.add_argument("--epsilon", type=float, default=0.1, help="Random exploration probability.")
    parser.add_argument("--rng-seed", type=int, default=None, help="Seed of the exploration generator.")
    parser.add_argument("--target-solved", type=int, default=1, help="Stop early after this many solved seeds.")
    parser.add_argument("--jsonl", type=str, default="", help="Optional output jsonl path.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(message)s")
    limits = SearchLimits(max_iterations=args.max_iterations, epsilon=args.epsilon, max_seconds=args.max_seconds)
    rng = random.Random(args.rng_seed) if args.rng_seed is not None else None

    out_path = Path(args.jsonl).expanduser() if args.jsonl else None
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)

    solved = 0
    unsolved = 0
    started = time.perf_counter()

    for i in range(args.count):
        seed = args.start_seed + i
        t0 = time.perf_counter()
        result = analyze_seed(seed=seed, shuffle_count=args.shuffle_count, limits=limits, rng=rng)
        wall_ms = (time.perf_counter() - t0) * 1000.0

        payload = result.to_dict()
        payload["wall_ms"] = round(wall_ms, 3)

        if out_path is not None:
            with out_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")

        if result.status == "solved":
            solved += 1
        else:
            unsolved += 1

        metrics = result.metrics
        print(
            f"seed={seed} status={result.status} wall_ms={wall_ms:.1f} "
            f"iterations={metrics['iterations']} unique={metrics['unique_states']} "
            f"solution_len={metrics.get('solution_len')}"
        )

        if solved >= args.target_solved:
            break

    total_ms = (time.perf_counter() - started) * 1000.0
    print(f"summary scanned={solved + unsolved} solved={solved} unsolved={unsolved} total_ms={total_ms:.1f}")


if __name__ == "__main__":
    main()
