#!/usr/bin/env python3
"""
Headless cache refresher.

Logs into the store API, warms the local cache, then keeps it fresh with the
periodic flush-and-refetch scheduler (every 5 minutes). Useful on a kiosk or
shop PC so the POS opens with current products even when the network is flaky.
"""

import argparse
import os
import sys
import time

try:
    from ..client.config import ClientSettings
    from ..client.context import AppContext
    from ..client.errors import AuthError, FetchError, WebhookError
    from ..jsonlog import json_log
except ImportError:  # pragma: no cover
    # Allow running as a script: `python3 backend/workers/refresh_service.py`
    sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))
    from backend.client.config import ClientSettings
    from backend.client.context import AppContext
    from backend.client.errors import AuthError, FetchError, WebhookError
    from backend.jsonlog import json_log


def build_context(args) -> AppContext:
    settings = ClientSettings()
    if args.api_base_url:
        settings.api_base_url = args.api_base_url.rstrip("/")
    if args.db:
        settings.cache_db = args.db
    return AppContext.from_settings(settings)


def warm(ctx: AppContext) -> dict:
    results = {}
    scheduler = ctx.build_scheduler()
    for name in scheduler.domains():
        results[name] = scheduler.refresh_if_stale(name)
    return results


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--api-base-url", default="")
    parser.add_argument("--db", default="", help="sqlite cache file")
    parser.add_argument("--password", default=os.getenv("POS_PASSWORD", ""))
    parser.add_argument("--interval-ms", type=int, default=None)
    parser.add_argument("--once", action="store_true", help="Warm stale caches and exit")
    args = parser.parse_args(argv)

    ctx = build_context(args)
    if not ctx.auth.is_authenticated:
        try:
            ctx.login(args.password)
        except (AuthError, FetchError, WebhookError) as ex:
            json_log("error", "worker.refresh.login_failed", error=str(ex))
            return 2

    json_log("info", "worker.refresh.warm", results=warm(ctx), identity=ctx.auth.identity)
    if args.once:
        return 0

    scheduler = ctx.build_scheduler(args.interval_ms)
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop(timeout=5)
    return 0


if __name__ == "__main__":
    sys.exit(main())
