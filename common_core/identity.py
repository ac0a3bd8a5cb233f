from __future__ import annotations

from typing import Optional

MACHINE_NAME_MAX_LEN = 32


def derive_machine_name(display_name: Optional[str]) -> str:
    """Canonical tenant machine name: lowercase, spaces to underscores, max 32 chars.

    Used on both the producing site and the monitor to correlate records, so it
    must stay a pure function of the display name.
    """
    if not display_name:
        return ""
    return display_name.lower().replace(" ", "_")[:MACHINE_NAME_MAX_LEN]
