#!/usr/bin/env python3
"""Run one query through the wired engine and print every published state."""

import asyncio
import logging
import sys

from scout.core.config import settings
from scout.core.container import build_engine_components
from scout.core.errors import ConfigurationError

logger = logging.getLogger("smoke_search")


async def run(query: str) -> int:
    components = build_engine_components()

    async def keystrokes():
        # Type the query one character at a time
        for i in range(1, len(query) + 1):
            yield query[:i]
            await asyncio.sleep(0.05)

    final = None
    async for state in components.aggregator.search(keystrokes()):
        print(f"[gen {state.generation}] {state.phase.value} {state.query!r}")
        final = state

    if final is None:
        return 1
    for item in final.items:
        print(f"  {item.kind:6} {item.name}")
    if final.advisory:
        print(f"  advisory: {final.advisory}")
    if final.message:
        print(f"  message: {final.message}")
    await components.aggregator.aclose()
    return 0 if final.items else 1


def main() -> None:
    logging.basicConfig(level=settings.log_level)
    query = " ".join(sys.argv[1:]) or "kivu"
    try:
        raise SystemExit(asyncio.run(run(query)))
    except ConfigurationError as e:
        logger.error(f"Engine is not configured: {e}")
        raise SystemExit(2) from e


if __name__ == "__main__":
    main()
