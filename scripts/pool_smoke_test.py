"""Session pool smoke test.

Opens the pool, runs a burst of concurrent customer searches through it and
prints the pool and metrics summary. Useful after changing Sage credentials
or SAGE_POOL_SIZE.

Usage:
    python scripts/pool_smoke_test.py [--workers 4] [--requests 20] [--memory]
"""

import argparse
import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from api.server import build_pool
from core.config import load_config
from core.observability.logging import configure_logging
from core.observability.metrics import get_metrics
from core.pool import PoolError
from models.customers import CustomerSearchRequest
from services import CustomerService


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Exercise the Sage 100 session pool")
    parser.add_argument("--workers", type=int, default=4, help="Concurrent callers")
    parser.add_argument("--requests", type=int, default=20, help="Total searches")
    parser.add_argument("--name", default="A", help="Customer name filter")
    parser.add_argument("--timeout", type=float, default=None, help="Acquire timeout override")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory sample database")
    args = parser.parse_args(argv)

    sage_config, api_config = load_config()
    if args.memory:
        sage_config.driver = "memory"
    if args.timeout is not None:
        sage_config.acquire_timeout_seconds = args.timeout
    configure_logging(level=api_config.log_level, json_format=api_config.log_json)

    pool = build_pool(sage_config)
    service = CustomerService(pool, sage_config)
    print(f"Pool capacity {pool.capacity}, {args.workers} workers, {args.requests} searches")

    ok = failed = 0
    start = time.time()
    try:
        with ThreadPoolExecutor(max_workers=args.workers) as executor:
            futures = [
                executor.submit(service.search, CustomerSearchRequest(name=args.name, limit=5))
                for _ in range(args.requests)
            ]
            for future in as_completed(futures):
                try:
                    future.result()
                    ok += 1
                except PoolError as e:
                    failed += 1
                    print(f"  failed: {type(e).__name__}: {e}")
        print(f"Healthy: {pool.is_healthy()}")
    finally:
        pool.shutdown()

    elapsed = time.time() - start
    print(f"\n{ok} succeeded, {failed} failed in {elapsed:.2f}s")
    print(json.dumps(get_metrics().get_summary()["pool"], indent=2))
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
