#!/usr/bin/env python3
"""
Database Reset Script
Drops and recreates the pool event log tables.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from privacy_pool.config import get_settings
from privacy_pool.storage.database import DatabaseManager


def reset_database(database_url=None):
    """Drop every table and create empty ones."""
    database_url = database_url or get_settings().database_url
    print(f"🔄 Resetting database {database_url}...")

    manager = DatabaseManager(database_url)
    print("  ⚠️  Dropping all tables...")
    manager.drop_tables()
    print("  ✨ Creating tables...")
    manager.create_tables()
    manager.engine.dispose()

    print("\n✅ Database reset complete!")


if __name__ == "__main__":
    try:
        reset_database(sys.argv[1] if len(sys.argv) > 1 else None)
    except KeyboardInterrupt:
        print("\n\n⚠️  Operation cancelled by user")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        sys.exit(1)
