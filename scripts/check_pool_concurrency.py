#!/usr/bin/env python
"""
Verification script for ScriptPool concurrency.

Pushes many short scripts through a pool and checks, under real thread
contention, that:
- No more than max_contexts scripts run at the same time
- No context is used by two scripts at once
- Every handle is signalled and every handler runs exactly once
- Every handler receives its own state bag object
"""

import random
import sys
import threading
import time
from pathlib import Path

# Add the src directory to the path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from scriptpool import ScriptPool, wait_all

SCRIPT = """
import time
tracker.enter(context_id)
time.sleep(delay)
tracker.exit(context_id)
emit(task_id)
"""


class Tracker:
    """Counts scripts running at once and flags shared contexts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active_contexts: set[str] = set()
        self.running = 0
        self.peak = 0
        self.shared: list[str] = []

    def enter(self, context_id: str) -> None:
        with self._lock:
            if context_id in self._active_contexts:
                self.shared.append(context_id)
            self._active_contexts.add(context_id)
            self.running += 1
            self.peak = max(self.peak, self.running)

    def exit(self, context_id: str) -> None:
        with self._lock:
            self._active_contexts.discard(context_id)
            self.running -= 1


def run_round(max_contexts: int, num_tasks: int) -> bool:
    tracker = Tracker()
    bags = [{"task_id": i} for i in range(num_tasks)]
    deliveries: dict[int, list] = {i: [] for i in range(num_tasks)}
    failures: list[str] = []
    lock = threading.Lock()

    def on_complete(results, state_bag):
        task_id = results[0].value
        with lock:
            deliveries[task_id].append(state_bag)

    def on_error(fault, state_bag):
        with lock:
            failures.append(f"Task {state_bag.get('task_id')}: FAIL - {fault}")

    print(f"\n--- max_contexts={max_contexts}, tasks={num_tasks} ---")
    start_time = time.time()
    with ScriptPool(min_contexts=1, max_contexts=max_contexts) as pool:
        handles = [
            pool.submit(
                SCRIPT,
                on_complete=on_complete,
                on_error=on_error,
                state_bag=bags[i],
                parameters={"tracker": tracker, "delay": random.uniform(0.001, 0.01), "task_id": i},
            )
            for i in range(num_tasks)
        ]
        all_signalled = wait_all(handles, timeout=60)
        stats = pool.stats
    elapsed = time.time() - start_time

    wrong_bag = [i for i, got in deliveries.items() if len(got) == 1 and got[0] is not bags[i]]
    not_once = [i for i, got in deliveries.items() if len(got) != 1]

    print(f"  Peak concurrency: {tracker.peak} (limit {max_contexts})")
    print(f"  Contexts created: {stats['contexts_created']}")
    print(f"  Shared context events: {len(tracker.shared)}")
    print(f"  Handler not called exactly once: {len(not_once)}")
    print(f"  Wrong state bag delivered: {len(wrong_bag)}")
    print(f"  Script failures: {len(failures)}")
    print(f"  Time elapsed: {elapsed:.3f}s")
    for failure in failures[:5]:
        print(f"    {failure}")

    return (
        all_signalled
        and tracker.peak <= max_contexts
        and stats["contexts_created"] <= max_contexts
        and not tracker.shared
        and not not_once
        and not wrong_bag
        and not failures
    )


def main() -> int:
    print("=" * 60)
    print("ScriptPool Concurrency Check")
    print("=" * 60)

    all_passed = True
    for max_contexts, num_tasks in [(1, 20), (4, 200), (20, 500)]:
        if not run_round(max_contexts, num_tasks):
            all_passed = False

    print("\n" + "=" * 60)
    print("ALL CHECKS PASSED" if all_passed else "SOME CHECKS FAILED")
    print("=" * 60)
    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
