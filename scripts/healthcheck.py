"""
Container health check for the massive-import API.

Exits 0 only when the API answers and reports itself ready.
"""

from __future__ import annotations

import os

import requests


def main() -> int:
    port = os.getenv("PORT", "8000")
    path = os.getenv("HEALTHCHECK_PATH", "/health")
    url = f"http://127.0.0.1:{port}{path}"

    try:
        response = requests.get(url, timeout=2)
        body = response.json()
    except (requests.RequestException, ValueError):
        return 1
    return 0 if response.ok and body.get("ready") is True else 1


if __name__ == "__main__":
    raise SystemExit(main())
