"""Parser for the backend's `devices list` text output.

The CLI prints one device per line in a human format that has changed
between backend releases. We only rely on a status word followed
(anywhere later on the line) by a hex id of at least 12 characters.
"""

from __future__ import annotations

__all__ = ["parse_devices_output"]

import re

from gateway_wrapper.models import DeviceRecord

_PENDING_RE = re.compile(r"pending.*?([a-f0-9]{12,})", re.IGNORECASE)
_APPROVED_RE = re.compile(r"(?:approved|paired).*?([a-f0-9]{12,})", re.IGNORECASE)


def parse_devices_output(text: str | None) -> list[DeviceRecord]:
    """Parse `devices list` output into records.

    Lines without a recognised marker and id are ignored; empty or
    garbage input yields an empty list.

    Args:
        text: Raw CLI output.

    Returns:
        One DeviceRecord per recognised line, in input order.
    """
    if not text:
        return []

    devices: list[DeviceRecord] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = _PENDING_RE.search(line)
        if match:
            devices.append(DeviceRecord(request_id=match.group(1), status="pending", info=line))
            continue

        match = _APPROVED_RE.search(line)
        if match:
            devices.append(DeviceRecord(request_id=match.group(1), status="approved", info=line))

    return devices
