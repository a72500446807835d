#!/usr/bin/env python3
"""
Clear the catalog cache.

Usage:
    clear_cache.py              # all catalog cache keys
    clear_cache.py 'dataset:*'  # keys matching a pattern
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dualstore.catalog.cache import CatalogCache  # noqa: E402
from dualstore.config.settings import get_settings  # noqa: E402


def clear_cache(pattern: str = "*") -> int:
    """Delete cache keys matching pattern and return how many were removed."""
    settings = get_settings()
    cache = CatalogCache(redis_url=settings.redis_url)

    if not cache.ping():
        print(f"✗ Redis not reachable at {settings.redis_url}", file=sys.stderr)
        sys.exit(1)

    deleted = cache.clear(pattern)
    print(f"✓ Cleared {deleted} cache key(s) matching '{pattern}'")
    return deleted


if __name__ == "__main__":
    clear_cache(sys.argv[1] if len(sys.argv) > 1 else "*")
