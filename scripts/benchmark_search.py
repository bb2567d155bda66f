#!/usr/bin/env python3
"""
Search Strategy Benchmark

Times the naive, optimized, and index strategies plus the batch variant
over a corpus file, and checks that batch results match per-query
optimized results.

Usage:
    python scripts/benchmark_search.py corpus.json [--queries 10] [--limit 50] [--index]
    python scripts/benchmark_search.py corpus.json --text "textile manufacturers in India"
"""

import sys
import time
import asyncio
import logging
import argparse
from pathlib import Path

import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


async def run(args) -> int:
    from leadscout.common.config import load_config
    from leadscout.common.embedding_service import EmbeddingService
    from leadscout.common.errors import LeadScoutError
    from leadscout.common.row_store import InMemoryRowStore
    from leadscout.retriever.vector_search import VectorSearchEngine

    config = load_config()

    print(f"[Benchmark] Loading corpus from {args.corpus}...")
    store = InMemoryRowStore.from_json_file(args.corpus)
    window = await store.fetch(None, len(store))
    if not window.records:
        print("[Benchmark] ERROR: Corpus has no usable embeddings")
        return 1
    dimension = window.records[0].dimension
    print(f"[Benchmark] {len(window.records)} usable records, {len(window.skipped)} skipped, dim={dimension}")

    if args.index:
        try:
            indexed = store.build_index(config.search.index_name)
            print(f"[Benchmark] ANN index built over {indexed} records")
        except LeadScoutError as e:
            print(f"[Benchmark] Index unavailable: {e.message}")

    if args.text:
        embedding = EmbeddingService.from_config(config.embedding, config.retry)
        if not embedding.is_available:
            print("[Benchmark] ERROR: Embedding service not available")
            return 1
        queries = [np.asarray(v) for v in await embedding.embed(args.text)]
    else:
        rng = np.random.default_rng(args.seed)
        queries = [rng.standard_normal(dimension) for _ in range(args.queries)]
    print(f"[Benchmark] {len(queries)} query vectors")

    search_config = config.search
    search_config.early_termination_enabled = False
    engine = VectorSearchEngine(store, search_config)

    strategies = ["naive", "optimized"] + (["index"] if store.supports_index else [])
    per_query = {}
    for name in strategies:
        runner = getattr(engine, f"{name}_search")
        started = time.perf_counter()
        runs = [await runner(q, None, args.limit, args.min_score) for q in queries]
        elapsed = (time.perf_counter() - started) * 1000
        per_query[name] = [run.results for run in runs]
        print(f"[Benchmark] {name:<10} {elapsed:9.1f}ms total, {elapsed / len(queries):7.2f}ms/query")

    started = time.perf_counter()
    batch = await engine.batch_search(queries, None, args.limit, args.min_score)
    elapsed = (time.perf_counter() - started) * 1000
    print(f"[Benchmark] {'batch':<10} {elapsed:9.1f}ms total, {elapsed / len(queries):7.2f}ms/query")

    mismatches = 0
    for single, batched in zip(per_query["optimized"], batch):
        if [r.record_id for r in single] != [r.record_id for r in batched]:
            mismatches += 1
    if mismatches:
        print(f"[Benchmark] ERROR: batch differs from optimized for {mismatches} queries")
        return 1
    print("[Benchmark] Batch results match per-query optimized results")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Benchmark vector search strategies over a corpus file")
    parser.add_argument("corpus", type=str, help="JSON file with corpus rows")
    parser.add_argument("--queries", type=int, default=10, help="Number of random query vectors")
    parser.add_argument("--text", type=str, nargs="*", help="Embed these texts as queries instead")
    parser.add_argument("--limit", type=int, default=50, help="Results per query")
    parser.add_argument("--min-score", type=float, default=0.1, help="Minimum similarity")
    parser.add_argument("--index", action="store_true", help="Build and time the faiss index strategy")
    parser.add_argument("--seed", type=int, default=7, help="Random seed for query vectors")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
