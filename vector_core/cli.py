#!/usr/bin/env python3
"""
Vector Engine CLI - Command line interface for embedding store management.

Usage:
    vector-engine provision [--yes] [--backend=BACKEND] [--config-dir=DIR]
    vector-engine health-check [--format=FORMAT] [--backend=BACKEND] [--config-dir=DIR]
    vector-engine collections [--backend=BACKEND] [--config-dir=DIR]
    vector-engine count [--collection=NAME] [--backend=BACKEND] [--config-dir=DIR]
    vector-engine build-index [--backend=BACKEND] [--config-dir=DIR]
    vector-engine import --file=FILE [--backend=BACKEND] [--config-dir=DIR]
    vector-engine config show [--section=SECTION] [--config-dir=DIR]
    vector-engine version
    vector-engine --help

Commands:
    provision           Drop and recreate the embedding schema (destroys all records)
    health-check        Check that the backend is reachable and the schema is queryable
    collections         List populated collections
    count               Count records, optionally in one collection
    build-index         Train the IVF index over all stored embeddings
    import              Upsert records from a JSON array or JSON Lines file as one batch
    config              Show configuration
    version             Show version information

Options:
    -h --help           Show this help message
    --yes               Do not ask for confirmation before provisioning
    --backend=BACKEND   Storage backend (sqlite, numpy) [default: from configuration]
    --config-dir=DIR    Configuration directory
    --format=FORMAT     Output format (text, json)
    --collection=NAME   Collection name
    --file=FILE         Input file path
    --section=SECTION   Configuration section
"""

import os
import sys
import asyncio
import json
import yaml
from typing import Any, Dict, List, Optional, Tuple
import logging
import traceback

from vector_core import __version__
from vector_core.config import ConfigManager, ConfigValidationError, init_config
from vector_core.core.embedding_store import EmbeddingStore
from vector_core.monitoring import configure_logging
from vector_core.storage.interfaces import EmbeddingStoreError

logger = logging.getLogger(__name__)


def load_records(path: str) -> List[Dict[str, Any]]:
    """
    Read records from a JSON array file or a JSON Lines file.

    Each record is an object with id, collection, content, metadata and embedding keys.
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    stripped = text.lstrip()
    if stripped.startswith("["):
        records = json.loads(stripped)
    else:
        records = [json.loads(line) for line in text.splitlines() if line.strip()]

    if not isinstance(records, list):
        raise ValueError(f"{path} does not contain a list of records")
    return records


class VectorEngineCLI:
    """Vector Engine command line interface."""

    def __init__(self, config_dir: Optional[str] = None, backend: Optional[str] = None):
        self.config_dir = config_dir
        self.backend = backend
        self.config_manager: Optional[ConfigManager] = None
        self.store: Optional[EmbeddingStore] = None

    def initialize(self):
        """Load configuration, set up logging and build the store."""
        self.config_manager = init_config(self.config_dir)
        configure_logging(self.config_manager.config.logging)
        self.store = EmbeddingStore.from_config(backend_type=self.backend)
        logger.debug("CLI initialized")

    async def provision_command(self, assume_yes: bool = False):
        """Drop and recreate the embedding schema."""
        if not assume_yes:
            answer = input("This deletes every stored embedding. Type 'yes' to continue: ")
            if answer.strip().lower() != "yes":
                print("Provisioning cancelled")
                sys.exit(1)

        self.initialize()
        async with self.store:
            await self.store.provision()
        print(f"✅ Embedding schema provisioned (dimension={self.store.dimension})")

    async def health_check_command(self, format: str = "text"):
        """Check store health; exits with status 1 when unhealthy."""
        self.initialize()
        async with self.store:
            healthy = await self.store.health_check()
            index_info = await self.store.get_index_info() if healthy else None

        if format == "json":
            print(json.dumps({"healthy": healthy, "index": index_info}, indent=2, default=str))
        elif healthy:
            print("✅ Embedding store is healthy")
            print(
                f"   Index: {index_info['index_type']} "
                f"(trained={index_info['trained']}, clusters={index_info['num_clusters']}, "
                f"nprobe={index_info['nprobe']})"
            )
        else:
            print("❌ Embedding store is unhealthy")

        if not healthy:
            sys.exit(1)

    async def collections_command(self):
        self.initialize()
        async with self.store:
            collections = await self.store.list_collections()

        if not collections:
            print("No collections")
        for name in collections:
            print(name)

    async def count_command(self, collection: Optional[str] = None):
        self.initialize()
        async with self.store:
            total = await self.store.count(collection)
        scope = f"collection '{collection}'" if collection else "all collections"
        print(f"{total} records in {scope}")

    async def build_index_command(self):
        """Train the IVF index."""
        self.initialize()
        async with self.store:
            info = await self.store.build_index()
        print(
            f"✅ Built {info['index_type']} index: {info['num_clusters']} clusters "
            f"over {info['trained_vectors']} vectors"
        )

    async def import_command(self, file: str):
        """Upsert every record in a file as a single atomic batch."""
        records = load_records(file)
        print(f"📥 Importing {len(records)} records from {file}")

        self.initialize()
        async with self.store:
            written = await self.store.upsert_many(records)
        print(f"✅ Imported {written} records")

    def config_command(self, action: str, section: Optional[str] = None):
        if action != "show":
            print(f"❌ Unknown config action: {action}")
            sys.exit(1)

        self.config_manager = init_config(self.config_dir)
        config = self.config_manager.to_dict()
        if section:
            if section not in config:
                print(f"❌ Unknown configuration section: {section}")
                sys.exit(1)
            config = config[section]
            print(f"📋 Configuration - {section}")
        else:
            print("📋 Configuration")

        print("=" * 50)
        print(yaml.dump(config, indent=2, default_flow_style=False))

    def version_command(self):
        print(f"Vector Engine CLI v{__version__}")


def parse_args(argv: Optional[List[str]] = None) -> Tuple[str, Dict[str, Any]]:
    """Parse command line arguments manually."""
    argv = sys.argv[1:] if argv is None else argv

    if len(argv) < 1:
        print(__doc__)
        sys.exit(1)

    command = argv[0]
    args: Dict[str, Any] = {}

    i = 1
    while i < len(argv):
        arg = argv[i]

        if arg.startswith('--'):
            if '=' in arg:
                key, value = arg[2:].split('=', 1)
                args[key] = value
            else:
                key = arg[2:]
                if i + 1 < len(argv) and not argv[i + 1].startswith('--'):
                    args[key] = argv[i + 1]
                    i += 1
                else:
                    args[key] = True
        else:
            args.setdefault('positional', []).append(arg)

        i += 1

    return command, args


async def run(argv: Optional[List[str]] = None):
    """Dispatch one CLI command."""
    command, args = parse_args(argv)
    cli = VectorEngineCLI(config_dir=args.get('config-dir'), backend=args.get('backend'))

    if command == "provision":
        await cli.provision_command(assume_yes=bool(args.get('yes', False)))

    elif command == "health-check":
        await cli.health_check_command(format=args.get('format', 'text'))

    elif command == "collections":
        await cli.collections_command()

    elif command == "count":
        await cli.count_command(collection=args.get('collection'))

    elif command == "build-index":
        await cli.build_index_command()

    elif command == "import":
        if 'file' not in args or args['file'] is True:
            print("❌ Import requires --file argument")
            sys.exit(1)
        await cli.import_command(file=args['file'])

    elif command == "config":
        if not args.get('positional'):
            print("❌ Config command requires action (show)")
            sys.exit(1)
        cli.config_command(action=args['positional'][0], section=args.get('section'))

    elif command == "version":
        cli.version_command()

    elif command in ["--help", "-h", "help"]:
        print(__doc__)

    else:
        print(f"❌ Unknown command: {command}")
        print("Run 'vector-engine --help' for usage information")
        sys.exit(1)


def main():
    """Console script entry point."""
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\n🛑 Operation cancelled")
        sys.exit(1)
    except (EmbeddingStoreError, ConfigValidationError, ValueError, OSError) as e:
        print(f"❌ {type(e).__name__}: {e}")
        if os.getenv('DEBUG'):
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
