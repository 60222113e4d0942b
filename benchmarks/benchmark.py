#!/usr/bin/env python3
"""
Standalone benchmark script for pyremote statement overhead.

Measures, against an in-process loopback engine:
    - round trip of a single derivation (build, submit, confirm)
    - throughput of long method chains issued without waiting
    - resident memory growth over many handles

Usage:
    python benchmark.py [--quick] [--transport {queue,socket,both}] [--max-in-flight N ...]
"""

import argparse
import asyncio
import gc
import statistics
import sys
import time
from pathlib import Path

import psutil
from tabulate import tabulate

# Add project root to path for pyremote imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from benchmark_harness import LoopbackEngine  # noqa: E402
from pyremote import RemoteSession  # noqa: E402
from pyremote.dataframe import DataFrame  # noqa: E402


class BenchmarkResult:
    def __init__(self, mean, stdev, min_time, max_time):
        self.mean = mean
        self.stdev = stdev
        self.min_time = min_time
        self.max_time = max_time


class SimpleRunner:
    """Times an async callable over warmup and measured runs."""

    def __init__(self, warmup_runs=5, benchmark_runs=1000):
        self.warmup_runs = warmup_runs
        self.benchmark_runs = benchmark_runs

    async def run_benchmark(self, name, func):
        times = []

        for _ in range(self.warmup_runs):
            await func()

        for _ in range(self.benchmark_runs):
            start = time.perf_counter()
            await func()
            end = time.perf_counter()
            times.append(end - start)

        return BenchmarkResult(
            statistics.mean(times),
            statistics.stdev(times) if len(times) > 1 else 0,
            min(times),
            max(times),
        )


async def bench_round_trip(runner, transport_kind, max_in_flight):
    engine = LoopbackEngine(transport_kind)
    async with RemoteSession(engine.start(), {"max_in_flight": max_in_flight}) as session:
        df = session.handle("DataFrame", "people", DataFrame)

        async def func():
            await df.filter("age > 20")

        result = await runner.run_benchmark("round_trip", func)
    engine.stop()
    return result


async def bench_chain(chain_length, transport_kind, max_in_flight):
    """Issue a chain of derivations without waiting; return statements per second."""
    engine = LoopbackEngine(transport_kind)
    async with RemoteSession(engine.start(), {"max_in_flight": max_in_flight}) as session:
        df = session.handle("DataFrame", "people", DataFrame)
        start = time.perf_counter()
        for i in range(chain_length):
            df = df.limit(i)
        await df
        elapsed = time.perf_counter() - start
    engine.stop()
    return chain_length / elapsed


async def bench_memory(handle_count):
    """RSS growth in MB while holding *handle_count* confirmed handles."""
    process = psutil.Process()
    gc.collect()
    before = process.memory_info().rss

    engine = LoopbackEngine("queue")
    async with RemoteSession(engine.start(), {"max_in_flight": 16}) as session:
        df = session.handle("DataFrame", "people", DataFrame)
        handles = [df.select("name", "age") for _ in range(handle_count)]
        await asyncio.gather(*(h.wait() for h in handles))
        gc.collect()
        after = process.memory_info().rss
    engine.stop()
    return (after - before) / (1024 * 1024)


async def run_benchmarks(quick=False, transports=("queue", "socket"), windows=(1, 8)):
    print("pyremote Statement Benchmark Suite")
    print("=" * 60)

    runner = SimpleRunner(
        warmup_runs=2 if quick else 5,
        benchmark_runs=100 if quick else 1000,
    )
    chain_length = 500 if quick else 5000

    latency_rows = []
    throughput_rows = []
    for kind in transports:
        for window in windows:
            name = f"{kind}_window{window}"
            print(f"Running {name}...")
            try:
                res = await bench_round_trip(runner, kind, window)
            except Exception as e:
                print(f"FAILED: {e}")
                continue
            latency_rows.append([name, f"{res.mean * 1000:.3f}", f"{res.stdev * 1000:.3f}"])
            rate = await bench_chain(chain_length, kind, window)
            throughput_rows.append([name, chain_length, f"{rate:,.0f}"])

    memory_mb = await bench_memory(2000 if quick else 20000)

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)
    print(tabulate(latency_rows, headers=["Test", "Mean (ms)", "Std Dev (ms)"]))
    print()
    print(tabulate(throughput_rows, headers=["Test", "Chain length", "Statements/s"]))
    print()
    print(tabulate([["RSS growth (MB)", f"{memory_mb:.1f}"]], headers=["Memory", ""]))
    return 0


def main():
    parser = argparse.ArgumentParser(description="pyremote Benchmark")
    parser.add_argument("--quick", action="store_true")
    parser.add_argument("--transport", choices=["queue", "socket", "both"], default="both")
    parser.add_argument("--max-in-flight", type=int, nargs="+", default=[1, 8])

    args = parser.parse_args()
    transports = ("queue", "socket") if args.transport == "both" else (args.transport,)

    return asyncio.run(run_benchmarks(args.quick, transports, tuple(args.max_in_flight)))


if __name__ == "__main__":
    sys.exit(main())
