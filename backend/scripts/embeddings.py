#!/usr/bin/env python3
"""
Embedding maintenance for Picstash.

Runs the batch embedding operations outside the API server.

Usage:
    cd backend
    python scripts/embeddings.py status
    python scripts/embeddings.py generate
    python scripts/embeddings.py regenerate
    python scripts/embeddings.py sync
    python scripts/embeddings.py labels [--regenerate]

Exit codes:
    0 - Success
    1 - One or more items failed
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from picstash.container import build_container  # noqa: E402
from picstash.core.config import settings  # noqa: E402
from picstash.core.database import session_scope  # noqa: E402
from picstash.core.logging_config import setup_logging  # noqa: E402
from picstash.services.image_embedding_service import (  # noqa: E402
    generate_missing_embeddings,
    get_embedding_status,
    regenerate_all_embeddings,
    sync_embeddings_to_vector_store,
)
from picstash.services.label_embedding_service import (  # noqa: E402
    generate_missing_label_embeddings,
    regenerate_all_label_embeddings,
)

MODEL_COMMANDS = {"generate", "regenerate", "labels"}


def print_progress(current: int, total: int, name: str = "") -> None:
    suffix = f" {name}" if name else ""
    print(f"  [{current}/{total}]{suffix}")


async def run_command(container, args) -> int:
    """Run one subcommand and return the process exit code."""
    with session_scope(container.session_factory) as db:
        if args.command == "status":
            status = get_embedding_status(db, container.vector_store)
            print(json.dumps(status.to_dict(), indent=2))
            return 0

        if args.command == "sync":
            result = sync_embeddings_to_vector_store(db, container.vector_store)
            print(json.dumps(result.to_dict(), indent=2))
            return 0

        if args.command == "labels":
            operation = (
                regenerate_all_label_embeddings if args.regenerate
                else generate_missing_label_embeddings
            )
            result = await operation(
                db,
                container.embedding_service,
                print_progress,
                container.settings.EMBEDDING_DIMENSION,
            )
        else:
            operation = (
                regenerate_all_embeddings if args.command == "regenerate"
                else generate_missing_embeddings
            )
            result = await operation(
                db,
                container.embedding_service,
                container.file_storage,
                container.vector_store,
                print_progress,
            )

    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Maintain Picstash image and label embeddings")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show embedding counts and vector store sync state")
    subparsers.add_parser("generate", help="Embed images that have no embedding yet")
    subparsers.add_parser("regenerate", help="Clear and re-embed every image")
    subparsers.add_parser("sync", help="Rebuild the vector store from stored embeddings")
    labels = subparsers.add_parser("labels", help="Embed label names")
    labels.add_argument(
        "--regenerate",
        action="store_true",
        help="Clear and re-embed every label instead of only missing ones"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(log_format="pretty", file_enabled=False)

    container = build_container(settings)
    try:
        container.initialize(load_models=args.command in MODEL_COMMANDS)
        return asyncio.run(run_command(container, args))
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
