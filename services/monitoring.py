"""
App Monitoring
---------------
Monitored apps per organization, their audit snapshot history and the
competitor set used for competitive analysis.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from db.models import AuditSnapshot, CompetitorApp, MonitoredApp

logger = logging.getLogger(__name__)

APP_FIELDS = (
    "app_name", "developer_name", "category", "vertical", "locale",
    "audit_enabled", "tags", "notes",
)
SNAPSHOT_SOURCES = ("live", "cache", "manual")


class MonitoringError(Exception):
    pass


class MonitoredAppNotFoundError(MonitoringError):
    pass


def _field(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def app_to_dict(app: MonitoredApp) -> Dict[str, Any]:
    return {
        "id": app.id,
        "organization_id": app.organization_id,
        "app_id": app.app_id,
        "platform": app.platform,
        "app_name": app.app_name,
        "developer_name": app.developer_name,
        "category": app.category,
        "vertical": app.vertical,
        "locale": app.locale,
        "audit_enabled": app.audit_enabled,
        "latest_audit_score": app.latest_audit_score,
        "latest_audit_at": app.latest_audit_at.isoformat() if app.latest_audit_at else None,
        "tags": app.tags or [],
        "notes": app.notes,
    }


def snapshot_to_dict(snapshot: AuditSnapshot, include_result: bool = False) -> Dict[str, Any]:
    data = {
        "id": snapshot.id,
        "monitored_app_id": snapshot.monitored_app_id,
        "app_id": snapshot.app_id,
        "platform": snapshot.platform,
        "locale": snapshot.locale,
        "source": snapshot.source,
        "title": snapshot.title,
        "subtitle": snapshot.subtitle,
        "overall_score": snapshot.overall_score,
        "created_at": snapshot.created_at.isoformat() if snapshot.created_at else None,
    }
    if include_result:
        data["description"] = snapshot.description
        data["audit_result"] = snapshot.audit_result
    return data


def competitor_to_dict(competitor: CompetitorApp) -> Dict[str, Any]:
    return {
        "id": competitor.id,
        "monitored_app_id": competitor.monitored_app_id,
        "app_id": competitor.app_id,
        "app_name": competitor.app_name,
        "title": competitor.title,
        "subtitle": competitor.subtitle,
        "description": competitor.description,
    }


class MonitoringService:

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self._clock = clock

    # ─── Apps ────────────────────────────────────────────────────────────────

    def save_monitored_app(self, organization_id: str, app_id: str, app_name: str,
                           platform: str = "ios", **fields) -> MonitoredApp:
        app = self.session.query(MonitoredApp).filter(
            MonitoredApp.organization_id == organization_id,
            MonitoredApp.app_id == app_id,
            MonitoredApp.platform == platform,
        ).first()
        values = {k: v for k, v in fields.items() if k in APP_FIELDS and v is not None}

        if app is None:
            app = MonitoredApp(
                organization_id=organization_id, app_id=app_id, platform=platform,
                app_name=app_name, **values,
            )
            self.session.add(app)
            logger.info(f"Monitoring {platform} app {app_id} for org {organization_id}")
        else:
            app.app_name = app_name
            for key, value in values.items():
                setattr(app, key, value)
            app.updated_at = self._clock()
        self.session.commit()
        return app

    def list_monitored_apps(self, organization_id: Optional[str] = None) -> List[MonitoredApp]:
        query = self.session.query(MonitoredApp)
        if organization_id:
            query = query.filter(MonitoredApp.organization_id == organization_id)
        return query.order_by(MonitoredApp.app_name).all()

    def get_monitored_app(self, monitored_app_id: int) -> MonitoredApp:
        app = self.session.get(MonitoredApp, monitored_app_id)
        if app is None:
            raise MonitoredAppNotFoundError(f"Monitored app {monitored_app_id} not found")
        return app

    def delete_monitored_app(self, monitored_app_id: int) -> None:
        app = self.get_monitored_app(monitored_app_id)
        self.session.delete(app)
        self.session.commit()
        logger.info(f"Stopped monitoring app {app.app_id}")

    # ─── Snapshots ───────────────────────────────────────────────────────────

    def record_audit_snapshot(self, app: MonitoredApp, metadata: Any, audit_result: Any,
                              source: str = "live") -> AuditSnapshot:
        if source not in SNAPSHOT_SOURCES:
            raise MonitoringError(f"Invalid snapshot source '{source}'")

        result = audit_result.to_dict() if hasattr(audit_result, "to_dict") else dict(audit_result)
        score = int(round(result.get("overall_score", 0)))
        now = self._clock()

        snapshot = AuditSnapshot(
            monitored_app_id=app.id,
            organization_id=app.organization_id,
            app_id=app.app_id,
            platform=app.platform,
            locale=_field(metadata, "locale") or app.locale,
            source=source,
            title=_field(metadata, "title"),
            subtitle=_field(metadata, "subtitle"),
            description=_field(metadata, "description"),
            audit_result=result,
            overall_score=score,
            created_at=now,
        )
        self.session.add(snapshot)
        app.latest_audit_score = score
        app.latest_audit_at = now
        self.session.commit()
        logger.info(f"Recorded audit snapshot for {app.app_id}: score {score}")
        return snapshot

    def list_audit_snapshots(self, monitored_app_id: int, limit: int = 20) -> List[AuditSnapshot]:
        return (
            self.session.query(AuditSnapshot)
            .filter(AuditSnapshot.monitored_app_id == monitored_app_id)
            .order_by(AuditSnapshot.created_at.desc(), AuditSnapshot.id.desc())
            .limit(limit)
            .all()
        )

    def score_trend(self, monitored_app_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Oldest-first (created_at, overall_score) points for charting."""
        snapshots = self.list_audit_snapshots(monitored_app_id, limit=limit)
        return [
            {"created_at": s.created_at.isoformat(), "overall_score": s.overall_score}
            for s in reversed(snapshots)
        ]

    # ─── Competitors ─────────────────────────────────────────────────────────

    def add_competitor(self, monitored_app_id: int, app_id: str, app_name: str,
                       title: Optional[str] = None, subtitle: Optional[str] = None,
                       description: Optional[str] = None) -> CompetitorApp:
        self.get_monitored_app(monitored_app_id)
        competitor = self.session.query(CompetitorApp).filter(
            CompetitorApp.monitored_app_id == monitored_app_id,
            CompetitorApp.app_id == app_id,
        ).first()
        if competitor is None:
            competitor = CompetitorApp(monitored_app_id=monitored_app_id, app_id=app_id, app_name=app_name)
            self.session.add(competitor)
        competitor.app_name = app_name
        competitor.title = title if title is not None else competitor.title
        competitor.subtitle = subtitle if subtitle is not None else competitor.subtitle
        competitor.description = description if description is not None else competitor.description
        self.session.commit()
        return competitor

    def list_competitors(self, monitored_app_id: int) -> List[CompetitorApp]:
        return (
            self.session.query(CompetitorApp)
            .filter(CompetitorApp.monitored_app_id == monitored_app_id)
            .order_by(CompetitorApp.app_name)
            .all()
        )

    def remove_competitor(self, monitored_app_id: int, competitor_id: int) -> None:
        competitor = self.session.get(CompetitorApp, competitor_id)
        if competitor is None or competitor.monitored_app_id != monitored_app_id:
            raise MonitoredAppNotFoundError(f"Competitor {competitor_id} not found")
        self.session.delete(competitor)
        self.session.commit()
