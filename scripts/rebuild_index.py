#!/usr/bin/env python3
"""
Index Rebuild Utility
Re-runs the indexer over every business in the canonical store. Businesses that are
unverified or deleted lose their embedding record; the rest are (re-)embedded.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from semantic_index.core.business_repo import list_business_ids
from semantic_index.core.db import init_db
from semantic_index.core.embedding_dao import clear_checksums
from semantic_index.core.indexer import Indexer
from semantic_index.vector.embeddings import EmbeddingProvider
from semantic_index.vector.projection import VectorProjectionSync


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Rebuild business embedding records")
    parser.add_argument("--force", action="store_true",
                        help="forget stored checksums so every eligible business is re-embedded")
    parser.add_argument("--organization", metavar="ID",
                        help="only rebuild businesses of this organization")
    return parser.parse_args(argv)


async def rebuild(force: bool = False, organization_id: str = None, indexer: Indexer = None) -> dict:
    """Index every business; returns counts of indexed, removed and failed businesses."""
    if indexer is None:
        indexer = Indexer(EmbeddingProvider(), VectorProjectionSync())

    if force:
        cleared = await asyncio.to_thread(clear_checksums, organization_id)
        print(f"Cleared {cleared} stored checksums")

    business_ids = await asyncio.to_thread(list_business_ids, organization_id)
    print(f"Found {len(business_ids)} businesses in canonical store")

    counts = {"indexed": 0, "removed": 0, "failed": 0}
    for position, business_id in enumerate(business_ids, start=1):
        try:
            record = await indexer.upsert(business_id)
        except Exception as e:
            print(f"ERROR: Failed to index business {business_id}: {e}")
            counts["failed"] += 1
            continue

        counts["indexed" if record is not None else "removed"] += 1
        if position % 10 == 0:
            print(f"  ... processed {position}/{len(business_ids)} businesses")

    return counts


def main(argv=None):
    """Rebuild embedding records from the business store."""
    args = parse_args(argv)

    init_db()
    print("Starting index rebuild...")

    counts = asyncio.run(rebuild(force=args.force, organization_id=args.organization))

    print(f"Indexed: {counts['indexed']}, removed: {counts['removed']}, failed: {counts['failed']}")
    if counts["failed"]:
        sys.exit(1)
    print("Index rebuild complete!")


if __name__ == "__main__":
    main()
