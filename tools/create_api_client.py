from __future__ import annotations

import argparse
from datetime import datetime, timezone

from common_core.db import MonitorSessionLocal
from common_core.passwords import hash_secret
from apps.monitor_backend.models import ApiClient, MonitorUser


def main():
    parser = argparse.ArgumentParser(description="Register an API client and the operator account a site connects with.")
    parser.add_argument("--client-id", required=True)
    parser.add_argument("--client-secret", required=True, help="min 8 chars")
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", required=True, help="min 8 chars")
    parser.add_argument("--scopes", default="rest_api", help="Space-separated scopes (default: rest_api)")
    parser.add_argument("--roles", default="site_reporter", help="Comma-separated roles (default: site_reporter)")
    args = parser.parse_args()

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    db = MonitorSessionLocal()
    try:
        if db.get(ApiClient, args.client_id) is not None:
            print(f"Error: client '{args.client_id}' already exists.")
            return
        db.add(
            ApiClient(
                client_id=args.client_id,
                secret_hash=hash_secret(args.client_secret),
                scopes=args.scopes,
                is_active=True,
                created_at_utc=now,
            )
        )
        if db.get(MonitorUser, args.username) is None:
            db.add(
                MonitorUser(
                    username=args.username,
                    password_hash=hash_secret(args.password),
                    roles=args.roles,
                    created_at_utc=now,
                )
            )
        db.commit()
        print(f"Client '{args.client_id}' created for user '{args.username}'.")
    except ValueError as e:
        print(f"Error: {e}")
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":
    main()
