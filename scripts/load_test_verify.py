#!/usr/bin/env python3
"""Hammer the public verify endpoint and report how many calls were throttled.

RUN:  python scripts/load_test_verify.py [credential-id]

Prerequisites: the API is running (uvicorn certanchor.main:app --port 8000).
The identifier need not exist; NOT_FOUND answers count against the
limit just like real ones.
"""

from __future__ import annotations

import sys
import time

import httpx

from certanchor.api.ratelimit import VERIFY_LIMIT

BASE_URL = "http://localhost:8000"
TOTAL_REQUESTS = 100


def main() -> None:
    identifier = sys.argv[1] if len(sys.argv) > 1 else "CERT-000000000-AAAAAAAA"
    path = f"/v1/certificates/{identifier}/verify"
    print(f"Target: {BASE_URL}{path}  ({TOTAL_REQUESTS} requests)")

    results: dict[int, int] = {}
    start = time.monotonic()
    with httpx.Client(base_url=BASE_URL, timeout=10) as client:
        for _ in range(TOTAL_REQUESTS):
            resp = client.get(path)
            results[resp.status_code] = results.get(resp.status_code, 0) + 1
    elapsed = time.monotonic() - start

    throttled = results.pop(429, 0)
    answered = sum(results.values())
    print(f"{TOTAL_REQUESTS} requests in {elapsed:.2f}s")
    print(f"  answered : {answered:>4}  {results}")
    print(f"  throttled: {throttled:>4}")
    print(
        f"bucket capacity={VERIFY_LIMIT.capacity} refill={VERIFY_LIMIT.refill_rate}/s"
    )
    if throttled == 0:
        print("WARNING: nothing was throttled; is the limiter wired to this route?")


if __name__ == "__main__":
    main()
