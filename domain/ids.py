from __future__ import annotations

import time
from collections.abc import Callable, Container

IdFactory = Callable[[str, Container[str]], str]


def new_unique_id(
    prefix: str,
    taken: Container[str],
    clock: Callable[[], float] = time.time,
) -> str:
    base = f"{prefix}{int(clock() * 1000)}"
    if base not in taken:
        return base
    suffix = 1
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def sequential_ids() -> IdFactory:
    counters: dict[str, int] = {}

    def factory(prefix: str, taken: Container[str]) -> str:
        while True:
            counters[prefix] = counters.get(prefix, 0) + 1
            candidate = f"{prefix}{counters[prefix]}"
            if candidate not in taken:
                return candidate

    return factory
