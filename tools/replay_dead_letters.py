from __future__ import annotations
import os
from sqlalchemy.orm import Session

from common_core.db import SiteSessionLocal
from apps.site_agent import queue_store

DRY_RUN = os.environ.get("DRY_RUN", "0") == "1"
MAX_BATCH = int(os.environ.get("MAX_BATCH", "200"))

def main():
    db: Session = SiteSessionLocal()
    try:
        pending = queue_store.dead_letter_count(db)
        if DRY_RUN:
            print(f"DRY_RUN dead_letters={pending} would_requeue={min(pending, MAX_BATCH)}")
            return
        moved = queue_store.requeue_dead_letters(db, limit=MAX_BATCH)
        print(f"COMMIT requeued={moved} remaining={pending - moved}")
    finally:
        db.close()

if __name__ == "__main__":
    main()
