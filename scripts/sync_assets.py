"""Populate the offline asset cache and drop outdated cache buckets."""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path to import face_attendance modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_attendance.asset_cache import AssetCache
from face_attendance.config import ASSET_ORIGIN, CACHE_NAME


def main():
    parser = argparse.ArgumentParser(description="Sync the offline app shell and model cache")
    parser.add_argument("--origin", type=str, default=ASSET_ORIGIN,
                        help="App origin that relative shell entries resolve against")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    cache = AssetCache(origin=args.origin)

    print(f"Installing {CACHE_NAME} from {args.origin}...")
    cached, failed = cache.install()
    for url in cached:
        print(f"  ✓ {url}")
    for url in failed:
        print(f"  ✗ {url}")

    deleted = cache.activate()
    if deleted:
        print(f"Removed old caches: {', '.join(deleted)}")

    print(f"\nDone: {len(cached)} cached, {len(failed)} failed")


if __name__ == "__main__":
    main()
