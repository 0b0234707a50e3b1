"""
Metadata agent: mock catalog, manual metadata, iTunes lookup and store-page parsing.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from agents.metadata import (
    AppMetadataAgent,
    ItunesFetcher,
    MetadataFetchError,
    MetadataRequest,
    MockFetcher,
    parse_app_store_html,
)


STORE_PAGE = """
<html><head><meta name="description" content="Fallback description"></head>
<body>
  <h1 class="product-header__title app-header__title">
    Duolingo - Language Lessons
    <span class="badge badge--product-title">4+</span>
  </h1>
  <h2 class="product-header__subtitle app-header__subtitle">Learn Spanish, French &amp; more</h2>
  <h2 class="product-header__identity app-header__identity"><a href="#">Duolingo</a></h2>
  <ul><li><a class="inline-list__item" href="#">Education</a></li></ul>
  <div class="section__description"><p>Learn a new language.</p><p>Free   forever.</p></div>
</body></html>
"""


class FakeLookupResponse:
    def __init__(self, body):
        self.body = body

    def json(self):
        return self.body


# ─── Mock Mode ───────────────────────────────────────────────────────────────

class TestMockFetcher:
    def test_catalog_entry(self):
        metadata = MockFetcher().fetch(MetadataRequest(app_id="570060128"))
        assert metadata.title == "Duolingo - Language Lessons"
        assert metadata.subtitle == "Learn Spanish, French & more"
        assert metadata.category == "Education"
        assert metadata.source == "mock"
        assert metadata.locale == "us"

    def test_unknown_app(self):
        with pytest.raises(MetadataFetchError):
            MockFetcher().fetch(MetadataRequest(app_id="1"))


class TestAppMetadataAgent:
    def test_vertical_from_category(self):
        metadata = AppMetadataAgent().run({"app_id": "1459919596"})
        assert metadata.vertical == "finance"
        assert metadata.name == "Budget Buddy"

    def test_request_vertical_wins(self):
        metadata = AppMetadataAgent().run({"app_id": "570060128", "vertical": "education"})
        assert metadata.vertical == "education"

    def test_batch(self):
        results = AppMetadataAgent(mode="mock").run([
            {"app_id": "570060128"},
            MetadataRequest(app_id="1039455640"),
        ])
        assert [m.name for m in results] == ["Duolingo", "Babbel"]

    def test_manual_mode(self):
        metadata = AppMetadataAgent().run({
            "app_id": "42",
            "mode": "manual",
            "country": "gb",
            "metadata": {"title": "Pocket Budget", "subtitle": None, "category": "Finance"},
        })
        assert metadata.title == "Pocket Budget"
        assert metadata.subtitle == ""
        assert metadata.locale == "gb"
        assert metadata.vertical == "finance"
        assert metadata.source == "manual"

    def test_unknown_mode(self):
        with pytest.raises(MetadataFetchError):
            AppMetadataAgent(mode="carrier-pigeon").run({"app_id": "570060128"})

    def test_execute_wraps_failures(self):
        result = AppMetadataAgent().execute({"app_id": "1"})
        assert not result.success
        assert result.metadata["error_type"] == "MetadataFetchError"


# ─── iTunes Lookup ───────────────────────────────────────────────────────────

class TestItunesFetcher:
    def test_maps_lookup_fields(self):
        fetcher = ItunesFetcher()
        fetcher._get = lambda url, **kwargs: FakeLookupResponse({"results": [{
            "trackId": 570060128,
            "trackName": "Duolingo - Language Lessons",
            "description": "Learn   a  language",
            "artistName": "Duolingo",
            "primaryGenreName": "Education",
            "averageUserRating": 4.7,
            "userRatingCount": 100,
        }]})
        metadata = fetcher.fetch(MetadataRequest(app_id="570060128", mode="itunes"))
        assert metadata.app_id == "570060128"
        assert metadata.subtitle == ""
        assert metadata.description == "Learn a language"
        assert metadata.developer == "Duolingo"
        assert metadata.rating_count == 100
        assert metadata.source == "itunes"

    def test_no_results(self):
        fetcher = ItunesFetcher()
        fetcher._get = lambda url, **kwargs: FakeLookupResponse({"results": []})
        with pytest.raises(MetadataFetchError):
            fetcher.fetch(MetadataRequest(app_id="1", mode="itunes"))


# ─── Store Page ──────────────────────────────────────────────────────────────

class TestStorePage:
    def test_parse(self):
        metadata = parse_app_store_html(STORE_PAGE, MetadataRequest(app_id="570060128"))
        assert metadata.title == "Duolingo - Language Lessons"
        assert metadata.subtitle == "Learn Spanish, French & more"
        assert metadata.developer == "Duolingo"
        assert metadata.category == "Education"
        assert metadata.description.startswith("Learn a new language.")
        assert "Free forever." in metadata.description
        assert metadata.source == "html"

    def test_meta_description_fallback(self):
        html = '<html><head><meta name="description" content="Short pitch"></head><body><h1>Budget</h1></body></html>'
        metadata = parse_app_store_html(html, MetadataRequest(app_id="1"))
        assert metadata.title == "Budget"
        assert metadata.subtitle == ""
        assert metadata.description == "Short pitch"

    def test_missing_title(self):
        with pytest.raises(MetadataFetchError):
            parse_app_store_html("<html><body></body></html>", MetadataRequest(app_id="1"))
