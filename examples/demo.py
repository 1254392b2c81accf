#!/usr/bin/env python3
"""Demo: Using backlogctx as a Python library.

This shows how to use backlogctx programmatically, not just as a CLI tool.
Run it from a project that has a .backlog/ directory.
"""

import asyncio
from pathlib import Path

from backlogctx.backlog.store import FileBacklog
from backlogctx.context import ContextRequest, HydrationEngine
from backlogctx.search.index import RetrievalIndex


async def main():
    # Point at any project with a .backlog directory
    backlog = FileBacklog.open(Path("."))

    # 1. Build the retrieval index
    print("Building retrieval index...")
    index = RetrievalIndex()
    await index.build(backlog.list_items(), backlog.list_documents())
    print(f"  Indexed: {len(index)} items and documents")
    print(f"  Hybrid search: {'on' if index.is_hybrid_active else 'off'}")

    # 2. Search
    print("\n--- Searching for 'search ranking' ---")
    hits = await index.search_all("search ranking", limit=5)
    for h in hits:
        print(f"  {h.score:.3f} {h.id} [{h.type}] {h.title}")
        if h.snippet and h.snippet.matched_fields:
            print(f"        {h.snippet.field}: {h.snippet.text[:80]}")

    print("\n--- Most recently updated matches for 'ranking' ---")
    for h in await index.search_all("ranking", limit=5, sort="recent"):
        print(f"  {h.id} {h.title}")

    if not hits or hits[0].item is None:
        return

    # 3. Hydrate context for the best item hit
    engine = HydrationEngine(backlog, search=index.search_all, operations=backlog)
    result = await engine.hydrate(ContextRequest(id=hits[0].id, depth=2, max_tokens=2000))

    print(f"\n--- Context for {result.focal.id} ---")
    meta = result.metadata
    print(f"  Items: {meta.total_items}, ~{meta.token_estimate} tokens, truncated: {meta.truncated}")
    print(f"  Stages: {', '.join(meta.stages_executed)}")
    print()
    print(result.render())


if __name__ == "__main__":
    asyncio.run(main())
