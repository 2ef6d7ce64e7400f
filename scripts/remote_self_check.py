#!/usr/bin/env python3
"""Self-check for a configured household service (HOMEGATE_API_BASE)."""

from __future__ import annotations

import sys

from homegate import settings
from homegate.remote import RemoteBackend


def _check(label: str, result: dict, key: str) -> None:
    if not result.get("ok"):
        raise AssertionError(f"{label} failed: {result.get('error')}")
    if key not in result:
        raise AssertionError(f"{label} missing key: {key}")


def main() -> int:
    base = settings.api_base()
    if not base:
        print("HOMEGATE_API_BASE is not set; nothing to check")
        return 1
    remote = RemoteBackend(base, device_secret=settings.device_secret(), timeout=settings.api_timeout_seconds())

    doors = remote.get_doors()
    _check("GET /door", doors, "doors")
    if not doors["doors"]:
        raise AssertionError("GET /door returned no doors")

    _check("GET /devices/state", remote.get_device_states(), "states")
    _check("GET /members", remote.list_members(), "members")

    print(f"remote self-check ok ({len(doors['doors'])} doors)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
