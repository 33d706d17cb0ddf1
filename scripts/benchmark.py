#!/usr/bin/env python3
"""
MutaStore Performance Benchmarks - Terminal Report

Measures how fast a store drains mutation steps, with patch tracking on and
off, and prints the results as rich tables.

Usage:
    python scripts/benchmark.py               # Run all benchmarks
    python scripts/benchmark.py --config      # Show current benchmark configuration
    python scripts/benchmark.py --help        # Show help

Configuration:
    Adjust the constants at the top of the file to change benchmark parameters.
"""

import argparse
import time
from typing import Any, Callable, Dict

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table, box

from mutastore import create_store

# Configuration constants - adjust these to change benchmark behavior
TIME_LIMIT_SECONDS = 0.5  # Stop scaling once one run takes this long
STARTING_N = 10  # Starting number of steps
SCALE_FACTOR = 1.5  # How much to multiply N by each iteration
WIDE_STATE_KEYS = 1000  # Top level keys in the structural sharing benchmark


def _increment(draft, prior):
    draft["count"] += 1


def _build_wide_state(width: int) -> Dict[str, Any]:
    return {f"section_{i}": {"items": list(range(10)), "rev": 0} for i in range(width)}


class MutaStoreBenchmark:
    """Rich-formatted display for MutaStore drain throughput."""

    def __init__(self):
        self.console = Console()
        self.results: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def run_benchmarks(self):
        start_time = time.time()
        self._display_header()

        for patches in (True, False):
            label = "patches on" if patches else "patches off"
            self.results[label] = {
                "Sequential updates": self._run_sequential_benchmark(patches),
                "Batched mutators": self._run_batched_benchmark(patches),
                "Listener follow-ups": self._run_reentrant_benchmark(patches),
                "Wide state, one key": self._run_wide_state_benchmark(patches),
            }

        self._display_final_results(start_time)

    # ------------------------------------------------------------------------
    # Benchmarks
    # ------------------------------------------------------------------------

    def _run_sequential_benchmark(self, patches: bool) -> Dict[str, Any]:
        """One update() call per step."""

        def operation(n):
            store = create_store({"count": 0}, enable_patches=patches)
            for _ in range(n):
                store.update(_increment)
            assert store.state["count"] == n
            return n

        return self._run_adaptive_benchmark(operation)

    def _run_batched_benchmark(self, patches: bool) -> Dict[str, Any]:
        """A single update() call carrying n mutators."""

        def operation(n):
            store = create_store({"count": 0}, enable_patches=patches)
            store.update(*([_increment] * n))
            assert store.state["count"] == n
            return n

        return self._run_adaptive_benchmark(operation)

    def _run_reentrant_benchmark(self, patches: bool) -> Dict[str, Any]:
        """Each step's listener queues the next step until n steps ran."""

        def operation(n):
            store = None

            def listener(event):
                if event.new_state["count"] < n:
                    store.update(_increment)

            store = create_store({"count": 0}, listener, enable_patches=patches)
            store.update(_increment)
            assert store.state["count"] == n
            return n

        return self._run_adaptive_benchmark(operation)

    def _run_wide_state_benchmark(self, patches: bool) -> Dict[str, Any]:
        """Nested write into one section of a state with many sections."""
        initial = _build_wide_state(WIDE_STATE_KEYS)

        def operation(n):
            store = create_store(initial, enable_patches=patches)
            for i in range(n):
                key = f"section_{i % WIDE_STATE_KEYS}"

                def touch(draft, prior, key=key):
                    draft[key]["rev"] += 1

                store.update(touch)
            assert sum(section["rev"] for section in store.state.values()) == n
            return n

        return self._run_adaptive_benchmark(operation)

    def _run_adaptive_benchmark(self, operation: Callable[[int], int]) -> Dict[str, Any]:
        """Scale the workload until one run reaches the time limit."""
        n = STARTING_N
        while True:
            start = time.perf_counter()
            performed = operation(n)
            elapsed = time.perf_counter() - start

            result = {
                "max_n": n,
                "operation_time": elapsed,
                "operations_per_second": performed / elapsed if elapsed else float("inf"),
            }
            if elapsed >= TIME_LIMIT_SECONDS:
                return result
            n = int(n * SCALE_FACTOR) + 1

    # ------------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------------

    def _display_header(self):
        header = Panel(
            Align.center("MutaStore Drain Throughput"),
            title="MutaStore Benchmarks",
            border_style="blue",
        )
        self.console.print(header)
        self.console.print()

    def _display_final_results(self, start_time: float):
        table = Table(title="Steps per second", box=box.DOUBLE, header_style="bold cyan")
        table.add_column("Benchmark", style="cyan", no_wrap=True)
        for label in self.results:
            table.add_column(label, style="green", justify="right")
        table.add_column("Tracking cost", style="yellow", justify="right")

        on, off = self.results["patches on"], self.results["patches off"]
        for name in on:
            with_patches = on[name]["operations_per_second"]
            without = off[name]["operations_per_second"]
            overhead = (without / with_patches - 1) * 100 if with_patches else 0.0
            table.add_row(name, f"{with_patches:,.0f}", f"{without:,.0f}", f"{overhead:+.0f}%")

        self.console.print(table)
        self.console.print()
        self.console.print(
            f"[dim]Benchmark completed in {time.time() - start_time:.2f} seconds[/dim]"
        )


def print_config():
    """Print the current benchmark configuration."""
    print("MutaStore Benchmark Configuration:")
    print(f"  TIME_LIMIT_SECONDS: {TIME_LIMIT_SECONDS}")
    print(f"  STARTING_N: {STARTING_N}")
    print(f"  SCALE_FACTOR: {SCALE_FACTOR}")
    print(f"  WIDE_STATE_KEYS: {WIDE_STATE_KEYS}")


def main():
    parser = argparse.ArgumentParser(description="MutaStore Performance Benchmarks")
    parser.add_argument(
        "--config", action="store_true", help="Show current benchmark configuration"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print the configuration before running",
    )
    args = parser.parse_args()

    if args.config:
        print_config()
        return

    if not args.quiet:
        print_config()
        print()

    MutaStoreBenchmark().run_benchmarks()


if __name__ == "__main__":
    main()
