"""
Monitored apps, audit snapshots and competitor lists.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta

import pytest
from db.models import AuditSnapshot
from scoring.audit import MetadataAuditEngine
from services.monitoring import (
    MonitoredAppNotFoundError,
    MonitoringError,
    MonitoringService,
    app_to_dict,
    snapshot_to_dict,
)

METADATA = {"title": "Budget Buddy: Money Tracker", "subtitle": "Save, Plan & Track Spending"}


class SteppingClock:
    def __init__(self):
        self.current = datetime(2026, 3, 1, 9, 0)

    def __call__(self):
        value = self.current
        self.current += timedelta(hours=1)
        return value


@pytest.fixture
def service(session):
    return MonitoringService(session, clock=SteppingClock())


@pytest.fixture
def app(service):
    return service.save_monitored_app("org-1", "1459919596", "Budget Buddy", category="Finance", vertical="finance")


class TestApps:
    def test_upsert(self, service, app):
        again = service.save_monitored_app("org-1", "1459919596", "Budget Buddy Pro", notes="renamed")
        assert again.id == app.id
        assert again.app_name == "Budget Buddy Pro"
        assert again.category == "Finance"
        assert again.notes == "renamed"

    def test_unknown_fields_are_ignored(self, service):
        app = service.save_monitored_app("org-1", "1", "App", latest_audit_score=99)
        assert app.latest_audit_score is None

    def test_platforms_are_separate(self, service, app):
        android = service.save_monitored_app("org-1", "1459919596", "Budget Buddy", platform="android")
        assert android.id != app.id

    def test_list_by_org(self, service, app):
        service.save_monitored_app("org-1", "570060128", "Another App")
        service.save_monitored_app("org-2", "1090779584", "Busuu")
        names = [a.app_name for a in service.list_monitored_apps("org-1")]
        assert names == ["Another App", "Budget Buddy"]
        assert len(service.list_monitored_apps()) == 3

    def test_get_missing(self, service):
        with pytest.raises(MonitoredAppNotFoundError):
            service.get_monitored_app(42)

    def test_delete_cascades(self, service, app, session):
        service.record_audit_snapshot(app, METADATA, {"overall_score": 50})
        service.delete_monitored_app(app.id)
        assert session.query(AuditSnapshot).count() == 0

    def test_to_dict(self, app):
        data = app_to_dict(app)
        assert data["app_id"] == "1459919596"
        assert data["vertical"] == "finance"


class TestSnapshots:
    def test_record_updates_latest_score(self, service, app):
        result = MetadataAuditEngine().evaluate(METADATA)
        snapshot = service.record_audit_snapshot(app, METADATA, result)
        assert snapshot.overall_score == result.overall_score
        assert app.latest_audit_score == result.overall_score
        assert app.latest_audit_at == snapshot.created_at
        assert snapshot.title == METADATA["title"]
        assert snapshot.audit_result["overall_score"] == result.overall_score

    def test_invalid_source(self, service, app):
        with pytest.raises(MonitoringError):
            service.record_audit_snapshot(app, METADATA, {"overall_score": 1}, source="guess")

    def test_newest_first_and_trend_oldest_first(self, service, app):
        for score in (40, 55, 70):
            service.record_audit_snapshot(app, METADATA, {"overall_score": score}, source="manual")
        snapshots = service.list_audit_snapshots(app.id)
        assert [s.overall_score for s in snapshots] == [70, 55, 40]
        assert [p["overall_score"] for p in service.score_trend(app.id)] == [40, 55, 70]
        assert len(service.list_audit_snapshots(app.id, limit=2)) == 2

    def test_snapshot_dict(self, service, app):
        snapshot = service.record_audit_snapshot(app, METADATA, {"overall_score": 61.6}, source="cache")
        assert snapshot.overall_score == 62
        assert "audit_result" not in snapshot_to_dict(snapshot)
        assert snapshot_to_dict(snapshot, include_result=True)["audit_result"] == {"overall_score": 61.6}


class TestCompetitors:
    def test_add_is_upsert(self, service, app):
        first = service.add_competitor(app.id, "570060128", "Mint", title="Mint: Budget Tracker")
        again = service.add_competitor(app.id, "570060128", "Mint", subtitle="Spending & Bills")
        assert again.id == first.id
        assert again.title == "Mint: Budget Tracker"
        assert again.subtitle == "Spending & Bills"
        assert len(service.list_competitors(app.id)) == 1

    def test_add_for_unknown_app(self, service):
        with pytest.raises(MonitoredAppNotFoundError):
            service.add_competitor(42, "1", "X")

    def test_remove_checks_owner(self, service, app):
        other = service.save_monitored_app("org-1", "570060128", "Other")
        competitor = service.add_competitor(app.id, "1", "X")
        with pytest.raises(MonitoredAppNotFoundError):
            service.remove_competitor(other.id, competitor.id)
        service.remove_competitor(app.id, competitor.id)
        assert service.list_competitors(app.id) == []
