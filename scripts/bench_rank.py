#!/usr/bin/env python3
"""Measure ranking latency over a synthetic pattern pool.

Usage:
    python scripts/bench_rank.py --size 20000 --runs 20

Every run uses a fresh query signature so the result cache never answers.
Prints P50/P95 latency in milliseconds.
"""

import argparse
import statistics
from time import perf_counter

from patternrank.config import Settings, configure_logging
from patternrank.service import RankingService
from patternrank.storage import RedisPatternStore
from patternrank.synthetic import generate_pool, generate_signals


def percentile(samples: list[float], pct: float) -> float:
    ordered = sorted(samples)
    index = min(len(ordered) - 1, max(0, round(pct / 100 * (len(ordered) - 1))))
    return ordered[index]


def run(pool: list, runs: int, k: int, budget: int | None, seed: int) -> list[float]:
    timings: list[float] = []
    with RankingService(Settings()) as service:
        for idx in range(runs):
            signals = generate_signals(f"{seed}:{idx}")
            started = perf_counter()
            result = service.rank(pool, signals, k=k, budget_bytes=budget)
            elapsed = (perf_counter() - started) * 1000
            timings.append(elapsed)
            print(
                f"run {idx + 1:3d}: {elapsed:8.1f} ms  "
                f"considered={result.meta.considered} included={result.meta.included}"
            )
    return timings


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--size", type=int, default=20_000, help="patterns in the pool")
    parser.add_argument("--runs", type=int, default=20)
    parser.add_argument("--k", type=int, default=10)
    parser.add_argument("--budget", type=int, default=None, help="byte budget per result")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument(
        "--redis", action="store_true", help="rank the pool stored under REDIS_URL instead"
    )
    args = parser.parse_args()

    configure_logging()
    if args.redis:
        pool = RedisPatternStore.from_settings(Settings()).load_pool()
        print(f"Loaded {len(pool)} patterns from Redis")
    else:
        print(f"Generating {args.size} patterns (seed={args.seed})")
        pool = generate_pool(args.size, args.seed)
    timings = run(pool, args.runs, args.k, args.budget, args.seed)

    print("\nLatency:")
    print(f"  P50  {percentile(timings, 50):8.1f} ms")
    print(f"  P95  {percentile(timings, 95):8.1f} ms")
    print(f"  mean {statistics.fmean(timings):8.1f} ms")


if __name__ == "__main__":
    main()
