from __future__ import annotations

"""upload_files.py — Upload files via /files/upload and poll until each is ready or failed.

Usage:
    python scripts/upload_files.py path/to/plan.dwg path/to/spec.pdf

Requires:
  - API running at API_BASE_URL (default http://localhost:8000)
"""

import asyncio
import mimetypes
import os
import sys
import time
from pathlib import Path

import httpx

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
POLL_INTERVAL = 5  # seconds between status polls
POLL_TIMEOUT = 360  # the server gives up on translation after ~5 minutes


async def upload_file(client: httpx.AsyncClient, path: Path) -> str | None:
    """Upload one file and return its id."""
    print(f"\n→ Uploading {path.name} …")
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    with path.open("rb") as f:
        response = await client.post(
            f"{BASE_URL}/api/v1/files/upload",
            files={"files": (path.name, f, mime)},
            timeout=120,
        )

    if response.status_code != 200:
        print(f"  ✗ Upload failed ({response.status_code}): {response.text}")
        return None

    record = response.json()["files"][0]
    print(f"  id: {record['id']} type: {record['detectedType']}")
    return record["id"]


async def wait_for_file(client: httpx.AsyncClient, file_id: str) -> dict | None:
    """Poll GET /files/{id} until the record leaves uploading/processing."""
    print(f"  polling {file_id} …", end="", flush=True)
    deadline = time.monotonic() + POLL_TIMEOUT
    while time.monotonic() < deadline:
        await asyncio.sleep(POLL_INTERVAL)
        response = await client.get(f"{BASE_URL}/api/v1/files/{file_id}", timeout=10)
        if response.status_code != 200:
            print(f"\n  ✗ Status check failed: {response.text}")
            return None

        record = response.json()
        print(".", end="", flush=True)
        if record["status"] == "ready":
            print(f"\n  ✓ Ready — metadata: {record['metadata']}")
            return record
        if record["status"] == "error":
            print(f"\n  ✗ Failed — error: {record['errorMessage']}")
            return record

    print(f"\n  ✗ Timed out after {POLL_TIMEOUT}s")
    return None


async def main() -> None:
    paths = [Path(p) for p in sys.argv[1:]]
    if not paths:
        print("Usage: python scripts/upload_files.py FILE [FILE ...]")
        sys.exit(1)

    missing = [p for p in paths if not p.is_file()]
    if missing:
        print(f"Not found: {', '.join(str(p) for p in missing)}")
        sys.exit(1)

    results: dict[str, str] = {}
    async with httpx.AsyncClient() as client:
        for path in paths:
            file_id = await upload_file(client, path)
            record = await wait_for_file(client, file_id) if file_id else None
            results[path.name] = record["status"] if record else "FAILED"

    print("\n" + "=" * 60)
    print("Upload summary:")
    for name, status in results.items():
        print(f"  {name}: {status}")
    print("=" * 60)

    if any(status != "ready" for status in results.values()):
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
