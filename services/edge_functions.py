"""
Edge Function Client
---------------------
Thin JSON-over-HTTP client for the hosted AI functions (copilot chat,
remote audits, competitive and topic analysis). Payloads and responses
are passed through untouched.
"""

import time
import random
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from config.settings import settings

logger = logging.getLogger(__name__)

CHAT_FUNCTION = "aso-chat"
AUDIT_FUNCTION = "metadata-audit-v2"
COMPETITIVE_FUNCTION = "analyze-competitors"
TOPIC_FUNCTION = "chatgpt-topic-analysis"
FEATURING_FUNCTION = "featuring-submission"
CPP_FUNCTION = "cpp-theme-generator"

ALLOWED_FUNCTIONS = (
    CHAT_FUNCTION,
    "ai-dashboard-chat",
    AUDIT_FUNCTION,
    COMPETITIVE_FUNCTION,
    TOPIC_FUNCTION,
    FEATURING_FUNCTION,
    CPP_FUNCTION,
    "ai-insights-generator",
)


class EdgeFunctionError(Exception):
    def __init__(self, name: str, status: Optional[int], message: str):
        self.name = name
        self.status = status
        self.message = message
        super().__init__(f"Edge function '{name}' failed ({status or 'network'}): {message}")


class EdgeFunctionClient:
    """
    Usage:
        client = EdgeFunctionClient()
        reply = client.chat_completion([{"role": "user", "content": "..."}])
    """

    def __init__(
        self,
        base_url: str = settings.EDGE_FUNCTIONS_URL,
        api_key: Optional[str] = settings.EDGE_FUNCTIONS_KEY,
        timeout: int = settings.EDGE_FUNCTION_TIMEOUT,
        max_retries: int = settings.MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}", "apikey": api_key})

    def invoke(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON with retry + exponential backoff on network errors and 5xx."""
        url = f"{self.base_url}/{name}"
        last_status, last_message = None, "no attempts made"

        for attempt in range(self.max_retries):
            try:
                resp = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.RequestException as e:
                last_status, last_message = None, str(e)
            else:
                if resp.status_code < 400:
                    try:
                        return resp.json()
                    except ValueError:
                        raise EdgeFunctionError(name, resp.status_code, "Response is not valid JSON")
                last_status, last_message = resp.status_code, _error_message(resp)
                if resp.status_code < 500:
                    raise EdgeFunctionError(name, last_status, last_message)

            if attempt < self.max_retries - 1:
                wait = (2 ** attempt) + random.uniform(0, 1)
                logger.warning(
                    f"Attempt {attempt+1} failed for '{name}': {last_message}. Retrying in {wait:.1f}s"
                )
                self._sleep(wait)

        logger.error(f"Edge function '{name}' failed after {self.max_retries} attempts")
        raise EdgeFunctionError(name, last_status, last_message)

    # ─── Convenience Wrappers ────────────────────────────────────────────────

    def chat_completion(self, messages: List[Dict[str, str]], context: Optional[Dict[str, Any]] = None):
        return self.invoke(CHAT_FUNCTION, {"messages": messages, "context": context or {}})

    def metadata_audit(self, app_id: str, metadata: Dict[str, Any], organization_id: Optional[str] = None):
        return self.invoke(AUDIT_FUNCTION, {
            "app_id": app_id,
            "metadata": metadata,
            "organization_id": organization_id,
        })

    def competitive_analysis(self, app: Dict[str, Any], competitors: List[Dict[str, Any]]):
        return self.invoke(COMPETITIVE_FUNCTION, {"app": app, "competitors": competitors})

    def topic_analysis(self, topic: str, organization_id: Optional[str] = None):
        return self.invoke(TOPIC_FUNCTION, {"targetTopic": topic, "organizationId": organization_id})

    def featuring_submission(self, app: Dict[str, Any], notes: str = ""):
        return self.invoke(FEATURING_FUNCTION, {"app": app, "notes": notes})

    def cpp_themes(self, app: Dict[str, Any], count: int = 3):
        return self.invoke(CPP_FUNCTION, {"app": app, "count": count})


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason or "error"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)
