"""
Metadata Drafts
----------------
Two tiers of draft persistence:

  local  -> LocalDraftStore (JSON file, mirrors browser local storage keys)
  cloud  -> DraftService    (metadata_drafts table, upsert per user/app/type/label)

Auto-save is debounced; conflicts between tiers resolve last-write-wins
with ties going to the cloud copy.
"""

import os
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from config.settings import settings
from db.models import MetadataDraft

logger = logging.getLogger(__name__)

DRAFT_TYPES = ("keywords", "single-locale", "multi-locale")
STORAGE_PREFIX = "yodel_draft"
STORAGE_FILE = "local_storage.json"

Timestamp = Union[str, datetime]


class DraftValidationError(Exception):
    pass


class DraftNotFoundError(Exception):
    pass


def validate_draft(draft_type: str, draft_data: Any) -> None:
    if draft_type not in DRAFT_TYPES:
        raise DraftValidationError(f"Invalid draft type '{draft_type}'")
    if not isinstance(draft_data, dict):
        raise DraftValidationError("draft_data must be an object")
    if draft_type == "keywords" and "keywords" not in draft_data:
        raise DraftValidationError("keywords drafts require 'keywords'")
    if draft_type == "single-locale" and "title" not in draft_data:
        raise DraftValidationError("single-locale drafts require 'title'")
    if draft_type == "multi-locale" and not isinstance(draft_data.get("locales"), list):
        raise DraftValidationError("multi-locale drafts require a 'locales' list")


# ─── Timestamps ──────────────────────────────────────────────────────────────


def parse_timestamp(value: Timestamp) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compare_timestamps(first: Timestamp, second: Timestamp) -> str:
    """'first' | 'second' | 'equal': which timestamp is newer. Unreadable input counts as equal."""
    try:
        a, b = parse_timestamp(first), parse_timestamp(second)
    except (TypeError, ValueError) as e:
        logger.warning(f"Cannot compare timestamps {first!r} and {second!r}: {e}")
        return "equal"
    if a > b:
        return "first"
    if b > a:
        return "second"
    return "equal"


def format_time_ago(timestamp: Timestamp, now: Optional[datetime] = None) -> str:
    then = parse_timestamp(timestamp)
    now = parse_timestamp(now) if now else datetime.now(timezone.utc)
    seconds = (now - then).total_seconds()

    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if days < 30:
        return f"{days} day{'s' if days != 1 else ''} ago"
    return then.date().isoformat()


@dataclass
class ConflictResolution:
    winner: str                 # local | cloud
    draft: Dict[str, Any]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"winner": self.winner, "draft": self.draft, "reason": self.reason}


def resolve_conflict(local: Optional[Dict[str, Any]], cloud: Optional[Dict[str, Any]]) -> Optional[ConflictResolution]:
    """Both drafts carry a `saved_at` timestamp. Newer wins; ties go to cloud."""
    if not local and not cloud:
        return None
    if not local:
        return ConflictResolution("cloud", cloud, "no local draft")
    if not cloud:
        return ConflictResolution("local", local, "no cloud draft")

    order = compare_timestamps(local["saved_at"], cloud["saved_at"])
    if order == "first":
        return ConflictResolution("local", local, "local draft is newer")
    if order == "second":
        return ConflictResolution("cloud", cloud, "cloud draft is newer")
    return ConflictResolution("cloud", cloud, "timestamps equal")


# ─── Local Store ─────────────────────────────────────────────────────────────


class LocalDraftStore:
    """
    Key/value JSON file with the same key layout as browser storage:

      yodel_draft:{app_id}:{draft_type}            -> draft data (JSON)
      yodel_draft:{app_id}:{draft_type}:timestamp  -> ISO timestamp
      yodel_draft:{app_id}:{draft_type}:label      -> label
      yodel_draft:{app_id}:{draft_type}:org        -> organization id
    """

    def __init__(self, directory: str = settings.DRAFT_LOCAL_DIR,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.directory = directory
        self.path = os.path.join(directory, STORAGE_FILE)
        self._clock = clock
        self._lock = threading.Lock()

    @staticmethod
    def storage_key(app_id: str, draft_type: str) -> str:
        return f"{STORAGE_PREFIX}:{app_id}:{draft_type}"

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: Dict[str, str]) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp, self.path)

    def save(self, app_id: str, organization_id: str, draft_type: str,
             draft_data: Dict[str, Any], draft_label: Optional[str] = None) -> str:
        validate_draft(draft_type, draft_data)
        key = self.storage_key(app_id, draft_type)
        now = self._clock().isoformat()
        with self._lock:
            data = self._read()
            data[key] = json.dumps(draft_data)
            data[f"{key}:timestamp"] = now
            data[f"{key}:org"] = organization_id
            if draft_label:
                data[f"{key}:label"] = draft_label
            else:
                data.pop(f"{key}:label", None)
            self._write(data)
        logger.debug(f"Saved local draft {key} at {now}")
        return now

    def load(self, app_id: str, draft_type: str) -> Optional[Dict[str, Any]]:
        key = self.storage_key(app_id, draft_type)
        with self._lock:
            data = self._read()
        raw, saved_at, org = data.get(key), data.get(f"{key}:timestamp"), data.get(f"{key}:org")
        if raw is None or saved_at is None or org is None:
            return None
        return {
            "app_id": app_id,
            "organization_id": org,
            "draft_type": draft_type,
            "draft_label": data.get(f"{key}:label"),
            "draft_data": json.loads(raw),
            "saved_at": saved_at,
        }

    def has_draft(self, app_id: str, draft_type: str) -> bool:
        with self._lock:
            return self.storage_key(app_id, draft_type) in self._read()

    def clear(self, app_id: str, draft_type: str) -> None:
        key = self.storage_key(app_id, draft_type)
        with self._lock:
            data = self._read()
            for suffix in ("", ":timestamp", ":label", ":org"):
                data.pop(f"{key}{suffix}", None)
            self._write(data)

    def clear_all_for_app(self, app_id: str) -> None:
        for draft_type in DRAFT_TYPES:
            self.clear(app_id, draft_type)

    def all_keys(self) -> List[str]:
        """Primary draft keys only (no timestamp/label/org siblings)."""
        with self._lock:
            data = self._read()
        return sorted(k for k in data if k.startswith(f"{STORAGE_PREFIX}:") and k.count(":") == 2)


# ─── Auto-save ───────────────────────────────────────────────────────────────


class DraftAutoSaver:
    """
    Debounced writer: every schedule() restarts the timer, so only the last
    edit within `delay` seconds reaches the store.
    """

    def __init__(self, store: LocalDraftStore, delay: float = settings.DRAFT_AUTOSAVE_DELAY_SECONDS,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self.store = store
        self.delay = delay
        self._timer_factory = timer_factory
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()
        self.last_saved_at: Optional[str] = None
        self.save_count = 0

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, app_id: str, organization_id: str, draft_type: str,
                 draft_data: Dict[str, Any], draft_label: Optional[str] = None) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = {
                "app_id": app_id,
                "organization_id": organization_id,
                "draft_type": draft_type,
                "draft_data": draft_data,
                "draft_label": draft_label,
            }
            self._timer = self._timer_factory(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> Optional[str]:
        with self._lock:
            pending, self._pending = self._pending, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if pending is None:
            return None
        self.last_saved_at = self.store.save(**pending)
        self.save_count += 1
        return self.last_saved_at

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None


# ─── Cloud Drafts ────────────────────────────────────────────────────────────


def draft_summary(row: MetadataDraft) -> Dict[str, Any]:
    data = row.draft_data or {}
    return {
        "id": row.id,
        "app_id": row.app_id,
        "organization_id": row.organization_id,
        "draft_type": row.draft_type,
        "draft_label": row.draft_label,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
        "title": data.get("title"),
        "locale_count": len(data.get("locales") or []),
        "keyword_count": len(data.get("keywords") or []),
    }


def draft_to_dict(row: MetadataDraft) -> Dict[str, Any]:
    return {
        **draft_summary(row),
        "user_id": row.user_id,
        "draft_data": row.draft_data,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "saved_at": row.updated_at.isoformat() if row.updated_at else None,
    }


class DraftService:

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self._clock = clock

    def save_draft(self, user_id: str, organization_id: str, app_id: str, draft_type: str,
                   draft_data: Dict[str, Any], draft_label: Optional[str] = None) -> MetadataDraft:
        validate_draft(draft_type, draft_data)
        now = self._clock()
        row = self.session.query(MetadataDraft).filter(
            MetadataDraft.user_id == user_id,
            MetadataDraft.app_id == app_id,
            MetadataDraft.draft_type == draft_type,
            MetadataDraft.draft_label.is_(None) if draft_label is None else MetadataDraft.draft_label == draft_label,
        ).first()

        if row is None:
            row = MetadataDraft(
                user_id=user_id,
                organization_id=organization_id,
                app_id=app_id,
                draft_type=draft_type,
                draft_label=draft_label,
                draft_data=draft_data,
                created_at=now,
                updated_at=now,
            )
            self.session.add(row)
            logger.info(f"Created {draft_type} draft for app {app_id}")
        else:
            row.draft_data = draft_data
            row.organization_id = organization_id
            row.updated_at = now
            logger.info(f"Updated {draft_type} draft #{row.id} for app {app_id}")
        self.session.commit()
        return row

    def get_latest_draft(self, user_id: str, app_id: str, draft_type: Optional[str] = None) -> Optional[MetadataDraft]:
        query = self.session.query(MetadataDraft).filter(
            MetadataDraft.user_id == user_id, MetadataDraft.app_id == app_id
        )
        if draft_type:
            query = query.filter(MetadataDraft.draft_type == draft_type)
        return query.order_by(MetadataDraft.updated_at.desc(), MetadataDraft.id.desc()).first()

    def list_drafts(self, user_id: str, app_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.session.query(MetadataDraft).filter(MetadataDraft.user_id == user_id)
        if app_id:
            query = query.filter(MetadataDraft.app_id == app_id)
        return [draft_summary(r) for r in query.order_by(MetadataDraft.updated_at.desc()).all()]

    def get_draft(self, draft_id: int, user_id: Optional[str] = None) -> MetadataDraft:
        row = self.session.get(MetadataDraft, draft_id)
        if row is None or (user_id and row.user_id != user_id):
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        return row

    def delete_draft(self, draft_id: int, user_id: Optional[str] = None) -> None:
        row = self.get_draft(draft_id, user_id)
        self.session.delete(row)
        self.session.commit()
