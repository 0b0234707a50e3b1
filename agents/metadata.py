"""
App Metadata Agent
-------------------
Fetches store metadata (title, subtitle, description, category) for an app.

Supported modes:
  - mock    deterministic fixture catalog for development/demo
  - itunes  iTunes lookup API (JSON)
  - html    App Store product page parsed with BeautifulSoup
  - manual  metadata supplied inline by the caller

Architecture:
  AppMetadataAgent.run(request) -> AppMetadata | List[AppMetadata]
"""

import re
import time
import random
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import requests
from bs4 import BeautifulSoup

from agents.base import Agent
from config.settings import settings
from models.schemas import AppMetadata

logger = logging.getLogger(__name__)

# store category -> default ruleset vertical
CATEGORY_VERTICALS = {
    "Education": "language_learning",
    "Finance": "finance",
    "Business": "productivity",
    "Productivity": "productivity",
    "Health & Fitness": "health",
    "Entertainment": "entertainment",
    "Games": "entertainment",
    "Social Networking": "dating",
    "Lifestyle": "rewards",
    "Shopping": "rewards",
}


class MetadataFetchError(Exception):
    pass


@dataclass
class MetadataRequest:
    """One app to resolve."""
    app_id: str
    mode: str = "mock"                  # mock | itunes | html | manual
    country: str = "us"
    platform: str = "ios"
    vertical: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


# ─── Mock Catalog ────────────────────────────────────────────────────────────


MOCK_CATALOG: Dict[str, Dict[str, Any]] = {
    "570060128": {
        "app_name": "Duolingo",
        "title": "Duolingo - Language Lessons",
        "subtitle": "Learn Spanish, French & more",
        "description": (
            "Learn a new language with the world's most downloaded education app! "
            "Duolingo is the fun, free app for learning 40+ languages through quick, bite-sized lessons.\n"
            "• Practice speaking, reading, listening and writing to build vocabulary and grammar skills\n"
            "• Track your progress with streaks and earn rewards as you level up\n"
            "• Learn at your own pace with personalized lessons\n"
            "Download now and start learning today!"
        ),
        "developer": "Duolingo",
        "category": "Education",
        "rating": 4.7,
        "rating_count": 3200000,
    },
    "1039455640": {
        "app_name": "Babbel",
        "title": "Babbel - Language Learning",
        "subtitle": "Speak Spanish, French, German",
        "description": (
            "Babbel helps you speak a new language with confidence. "
            "Short lessons designed by language experts teach you real-life conversations.\n"
            "• Speech recognition to perfect your pronunciation\n"
            "• Review sessions that help vocabulary stick\n"
            "Start your first lesson free today."
        ),
        "developer": "Babbel GmbH",
        "category": "Education",
        "rating": 4.6,
        "rating_count": 540000,
    },
    "1090779584": {
        "app_name": "Busuu",
        "title": "Busuu: Learn Languages",
        "subtitle": "Spanish, French, German & more",
        "description": (
            "Learn languages with Busuu and get feedback from native speakers. "
            "Study grammar and vocabulary with lessons built for fluency.\n"
            "• Practice conversation with a global community\n"
            "• Offline mode to learn anywhere\n"
            "Join millions of learners. Try it free."
        ),
        "developer": "Busuu Limited",
        "category": "Education",
        "rating": 4.7,
        "rating_count": 150000,
    },
    "1260192681": {
        "app_name": "Mondly",
        "title": "Mondly: Learn 41 Languages",
        "subtitle": "Speak Spanish, English, French",
        "description": (
            "Mondly teaches languages through daily lessons and a chatbot that talks back. "
            "Learn vocabulary, grammar and pronunciation fast.\n"
            "• Speech recognition and conversation practice\n"
            "• Daily lessons and weekly quizzes\n"
            "Download Mondly and start speaking today."
        ),
        "developer": "ATi Studios",
        "category": "Education",
        "rating": 4.6,
        "rating_count": 98000,
    },
    "1459919596": {
        "app_name": "Budget Buddy",
        "title": "Budget Buddy: Money Tracker",
        "subtitle": "Save money & track spending",
        "description": (
            "Take control of your money. Budget Buddy tracks spending, builds budgets and helps you save. "
            "Secure bank sync keeps every account in one place.\n"
            "• Smart budgets and spending insights\n"
            "• Bill reminders so you never miss a payment\n"
            "Start saving today."
        ),
        "developer": "Buddy Finance",
        "category": "Finance",
        "rating": 4.5,
        "rating_count": 41000,
    },
}


# ─── Fetchers ────────────────────────────────────────────────────────────────


class MetadataFetcher:
    def __init__(self):
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": settings.USER_AGENT})

    def _get(self, url: str, **kwargs) -> requests.Response:
        """HTTP GET with retry + exponential backoff."""
        for attempt in range(settings.MAX_RETRIES):
            try:
                resp = self.session.get(url, timeout=settings.REQUEST_TIMEOUT, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as e:
                wait = (2 ** attempt) + random.uniform(0, 1)
                logger.warning(f"Attempt {attempt+1} failed for {url}: {e}. Retrying in {wait:.1f}s")
                time.sleep(wait)
        raise MetadataFetchError(f"Failed to fetch {url} after {settings.MAX_RETRIES} attempts")

    @staticmethod
    def _clean_text(text: str) -> str:
        return re.sub(r"[ \t]+", " ", text or "").strip()

    def fetch(self, request: MetadataRequest) -> AppMetadata:
        raise NotImplementedError


class MockFetcher(MetadataFetcher):

    def fetch(self, request: MetadataRequest) -> AppMetadata:
        entry = MOCK_CATALOG.get(request.app_id)
        if entry is None:
            raise MetadataFetchError(f"App {request.app_id} not in mock catalog")
        return AppMetadata(
            app_id=request.app_id,
            platform=request.platform,
            locale=request.country,
            source="mock",
            **entry,
        )


class ItunesFetcher(MetadataFetcher):
    """iTunes lookup API. The lookup has no subtitle field."""

    def fetch(self, request: MetadataRequest) -> AppMetadata:
        resp = self._get(
            settings.ITUNES_LOOKUP_URL,
            params={"id": request.app_id, "country": request.country, "entity": "software"},
        )
        try:
            results = resp.json().get("results", [])
        except ValueError as e:
            raise MetadataFetchError(f"Invalid lookup response for {request.app_id}: {e}")
        if not results:
            raise MetadataFetchError(f"App {request.app_id} not found in {request.country} store")

        item = results[0]
        return AppMetadata(
            app_id=str(item.get("trackId", request.app_id)),
            title=item.get("trackName", ""),
            subtitle="",
            description=self._clean_text(item.get("description", "")),
            platform="ios",
            locale=request.country,
            app_name=item.get("trackName"),
            developer=item.get("artistName"),
            category=item.get("primaryGenreName"),
            rating=item.get("averageUserRating"),
            rating_count=item.get("userRatingCount"),
            icon_url=item.get("artworkUrl100"),
            source="itunes",
        )


class HtmlFetcher(MetadataFetcher):
    """Parses the public App Store product page."""

    def fetch(self, request: MetadataRequest) -> AppMetadata:
        url = settings.APP_STORE_PAGE_URL.format(country=request.country, app_id=request.app_id)
        resp = self._get(url)
        return parse_app_store_html(resp.text, request)


def parse_app_store_html(html: str, request: MetadataRequest) -> AppMetadata:
    soup = BeautifulSoup(html, "html.parser")

    title_el = soup.find("h1", class_=re.compile(r"product-header__title", re.I)) or soup.find("h1")
    if title_el is None:
        raise MetadataFetchError(f"No title found on store page for {request.app_id}")
    # badge spans ("4+") sit inside the h1
    for badge in title_el.find_all("span"):
        badge.decompose()
    title = MetadataFetcher._clean_text(title_el.get_text())

    subtitle_el = soup.find("h2", class_=re.compile(r"product-header__subtitle", re.I))
    subtitle = MetadataFetcher._clean_text(subtitle_el.get_text()) if subtitle_el else ""

    desc_el = soup.find(class_=re.compile(r"section__description", re.I))
    if desc_el is not None:
        description = MetadataFetcher._clean_text(desc_el.get_text("\n"))
    else:
        meta = soup.find("meta", attrs={"name": "description"})
        description = meta["content"] if meta and meta.get("content") else ""

    developer_el = soup.find(class_=re.compile(r"product-header__identity", re.I))
    category_el = soup.find("a", class_=re.compile(r"inline-list__item", re.I))

    return AppMetadata(
        app_id=request.app_id,
        title=title,
        subtitle=subtitle,
        description=description,
        platform="ios",
        locale=request.country,
        app_name=title,
        developer=MetadataFetcher._clean_text(developer_el.get_text()) if developer_el else None,
        category=MetadataFetcher._clean_text(category_el.get_text()) if category_el else None,
        source="html",
    )


_FETCHER_MAP = {
    "mock": MockFetcher,
    "itunes": ItunesFetcher,
    "html": HtmlFetcher,
}


# ─── AppMetadataAgent ────────────────────────────────────────────────────────


class AppMetadataAgent(Agent):
    """
    Input:  MetadataRequest | dict | list of either
    Output: AppMetadata | List[AppMetadata]
    """

    def __init__(self, mode: Optional[str] = None):
        super().__init__("AppMetadataAgent")
        self.mode = mode

    def fetch(self, request: Union[MetadataRequest, Dict[str, Any]]) -> AppMetadata:
        if isinstance(request, dict):
            request = MetadataRequest(**request)
        mode = self.mode or request.mode

        if mode == "manual":
            metadata = AppMetadata.from_dict({
                "app_id": request.app_id,
                "platform": request.platform,
                "locale": request.country,
                **request.metadata,
            })
        else:
            fetcher_cls = _FETCHER_MAP.get(mode)
            if fetcher_cls is None:
                raise MetadataFetchError(f"Unknown metadata mode '{mode}'")
            metadata = fetcher_cls().fetch(request)

        metadata.vertical = request.vertical or metadata.vertical or CATEGORY_VERTICALS.get(metadata.category)
        self.logger.info(f"Fetched '{metadata.title}' ({metadata.app_id}) via {mode}")
        return metadata

    def run(self, data):
        if isinstance(data, list):
            return [self.fetch(r) for r in data]
        return self.fetch(data)
