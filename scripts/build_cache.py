#!/usr/bin/env python3
"""
Embedding Cache Warm-up Utility
Loads the knowledge base and precomputes (or validates) its embedding cache so
the first server start does not pay for a full embedding pass.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from kbmatch.core.config import DB_PATH, KB_PATH, get_match_engine, validate_config
from kbmatch.core.errors import ConfigError, KnowledgeBaseError, ModelUnavailableError


def _print_progress(done: int, total: int):
    print(f"  ... embedded {done}/{total} entries")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Precompute the embedding cache for a knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                  # Use KB_PATH and DB_PATH from the environment
  %(prog)s --kb data/preguntas.json         # Warm the cache for a specific file
  %(prog)s --force                          # Discard the stored cache and recompute

Environment variables:
- EMBED_PROVIDER=sentence_transformers|hash
- EMBED_MODEL_NAME=intfloat/multilingual-e5-small
- EMBED_BATCH_SIZE=10
        """
    )
    parser.add_argument("--kb", default=KB_PATH, help=f"Knowledge base JSON file (default: {KB_PATH})")
    parser.add_argument("--db", default=DB_PATH, help=f"SQLite cache database (default: {DB_PATH})")
    parser.add_argument("--force", "-f", action="store_true", help="Clear the stored cache before loading")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        print(f"ERROR: Invalid configuration: {issues}")
        sys.exit(1)

    print("Starting embedding cache warm-up...")

    try:
        engine = get_match_engine(kb_path=args.kb, db_path=args.db)
    except (KnowledgeBaseError, ConfigError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"Found {len(engine.entries)} entries in knowledge base")

    if args.force:
        engine.cache.clear()
        print("✓ Cleared stored embedding cache")

    try:
        engine.provider.load()
        asyncio.run(engine.load(progress=_print_progress))
    except ModelUnavailableError as e:
        print(f"ERROR: Embedding model unavailable: {e}")
        sys.exit(1)

    if engine.cache_hit:
        print("✓ Cache is current, nothing to recompute")
    else:
        print(f"✓ Computed and stored {len(engine.store)} embeddings")

    print("Cache warm-up complete!")


if __name__ == "__main__":
    main()
