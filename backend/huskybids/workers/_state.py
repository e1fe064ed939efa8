"""Persistent worker state: last run time and summary per worker, across restarts.

Stored in the lightweight `worker_state` collection.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from huskybids.utils import ensure_utc, utcnow


async def get_synced_at(db, worker_id: str) -> Optional[datetime]:
    doc = await db.worker_state.find_one({"_id": worker_id})
    return doc["synced_at"] if doc else None


async def set_synced(db, worker_id: str, summary: Optional[dict[str, Any]] = None) -> None:
    """Mark a worker as just run, with an optional result summary."""
    fields: dict[str, Any] = {"synced_at": utcnow()}
    if summary is not None:
        fields["last_result"] = summary
    await db.worker_state.update_one({"_id": worker_id}, {"$set": fields}, upsert=True)


async def recently_synced(db, worker_id: str, max_age: timedelta) -> bool:
    last = await get_synced_at(db, worker_id)
    if not last:
        return False
    return (utcnow() - ensure_utc(last)) < max_age
