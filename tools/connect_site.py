from __future__ import annotations

import argparse
import time

from apps.site_agent.credentials import CredentialStore, connect, connection_status
from common_core.db import SiteSessionLocal
from common_core.errors import AuthError


def main():
    parser = argparse.ArgumentParser(description="Connect this site to the monitoring platform.")
    parser.add_argument("--status", action="store_true", help="Only print the current connection status")
    args = parser.parse_args()

    store = CredentialStore(SiteSessionLocal)
    if args.status:
        print(connection_status(store.load()))
        return

    try:
        cred = connect(store)
    except AuthError as e:
        print(f"Error: connection failed: {e}")
        raise SystemExit(1)
    print(f"Connected. Token valid for {cred.remaining_days(int(time.time()))} days.")


if __name__ == "__main__":
    main()
