#!/usr/bin/env python3
"""
Q&A Embedding Repair Script

Embeds Q&A pairs that were stored without an embedding (for example after a
failed embedding call or a bulk import). Pairs without an embedding are never
returned by search, so they silently stop answering questions until fixed.

Only meaningful with the postgres store backend; the in-memory store does
not outlive the server process.

Usage:
    python scripts/reembed_qa_pairs.py [--dry-run]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def main():
    parser = argparse.ArgumentParser(description="Embed Q&A pairs that have no embedding")
    parser.add_argument("--dry-run", action="store_true", help="List pairs that need embeddings without changing them")
    parser.add_argument("--page-size", type=int, default=100, help="Pairs fetched per page")
    args = parser.parse_args()

    from dotenv import load_dotenv

    from huddle.admin import QAPairService
    from huddle.common.config import load_config
    from huddle.common.embedding_service import EmbeddingService
    from huddle.common.pg_store import PgVectorStore

    load_dotenv()
    config = load_config()

    if config.store.backend != "postgres" or not config.store.database_url:
        print("[Repair] ERROR: Set HUDDLE_STORE_BACKEND=postgres and DATABASE_URL")
        sys.exit(1)

    print(f"[Repair] Model: {config.embedding.model} ({config.embedding.dimensions} dims)")
    embedding_svc = EmbeddingService(
        api_key=config.llm.openai_api_key or None,
        model=config.embedding.model,
        dimensions=config.embedding.dimensions,
    )
    if not embedding_svc.is_available and not args.dry_run:
        print("[Repair] ERROR: Embedding service not available (OPENAI_API_KEY)")
        sys.exit(1)

    store = PgVectorStore(config.store.database_url)
    service = QAPairService(store, embedding_svc)

    if args.dry_run:
        print("[Repair] DRY RUN - no changes will be made")

    try:
        ids = service.reembed_missing(dry_run=args.dry_run, page_size=args.page_size)
    except Exception as e:
        print(f"[Repair] ERROR: {e}")
        sys.exit(1)

    for pair_id in ids:
        print(f"[Repair] {'Would embed' if args.dry_run else 'Embedded'} qa_{pair_id}")
    print(f"[Repair] Complete: {len(ids)} pair(s) {'need embeddings' if args.dry_run else 'embedded'}")


if __name__ == "__main__":
    main()
