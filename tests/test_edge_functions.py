"""
Edge function client: retries, error mapping and wrapper payloads.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import requests
from services.edge_functions import (
    AUDIT_FUNCTION,
    CHAT_FUNCTION,
    TOPIC_FUNCTION,
    EdgeFunctionClient,
    EdgeFunctionError,
)


class FakeResponse:
    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.reason = "reason"

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def client(*responses, **kwargs):
    session = FakeSession(*responses)
    sleeps = []
    c = EdgeFunctionClient(
        base_url="http://edge.test/functions/v1/",
        api_key=kwargs.pop("api_key", None),
        max_retries=kwargs.pop("max_retries", 3),
        session=session,
        sleep=sleeps.append,
    )
    return c, session, sleeps


class TestInvoke:
    def test_success(self):
        c, session, sleeps = client(FakeResponse(200, {"reply": "hi"}))
        assert c.invoke(CHAT_FUNCTION, {"messages": []}) == {"reply": "hi"}
        assert session.calls[0][0] == "http://edge.test/functions/v1/aso-chat"
        assert sleeps == []

    def test_api_key_headers(self):
        c, session, _ = client(api_key="secret")
        assert session.headers["Authorization"] == "Bearer secret"
        assert session.headers["apikey"] == "secret"

    def test_client_error_is_not_retried(self):
        c, session, sleeps = client(FakeResponse(400, {"error": "bad payload"}))
        with pytest.raises(EdgeFunctionError) as exc:
            c.invoke(CHAT_FUNCTION, {})
        assert exc.value.status == 400
        assert exc.value.message == "bad payload"
        assert len(session.calls) == 1
        assert sleeps == []

    def test_server_errors_retry_then_succeed(self):
        c, session, sleeps = client(
            FakeResponse(503, text="unavailable"),
            requests.ConnectionError("reset"),
            FakeResponse(200, {"ok": True}),
        )
        assert c.invoke(CHAT_FUNCTION, {}) == {"ok": True}
        assert len(session.calls) == 3
        assert len(sleeps) == 2
        assert 1 <= sleeps[0] <= 2
        assert 2 <= sleeps[1] <= 3

    def test_gives_up_after_max_retries(self):
        c, session, sleeps = client(
            FakeResponse(500, {"message": "boom"}),
            FakeResponse(500, {"message": "boom"}),
            max_retries=2,
        )
        with pytest.raises(EdgeFunctionError) as exc:
            c.invoke(CHAT_FUNCTION, {})
        assert exc.value.status == 500
        assert len(sleeps) == 1

    def test_network_failure_has_no_status(self):
        c, _, _ = client(requests.Timeout("slow"), max_retries=1)
        with pytest.raises(EdgeFunctionError) as exc:
            c.invoke(CHAT_FUNCTION, {})
        assert exc.value.status is None

    def test_invalid_json(self):
        c, _, _ = client(FakeResponse(200, None, text="<html>"))
        with pytest.raises(EdgeFunctionError):
            c.invoke(CHAT_FUNCTION, {})


class TestWrappers:
    def test_metadata_audit_payload(self):
        c, session, _ = client(FakeResponse(200, {}))
        c.metadata_audit("570060128", {"title": "Duolingo"}, organization_id="org-1")
        url, payload = session.calls[0]
        assert url.endswith(AUDIT_FUNCTION)
        assert payload == {"app_id": "570060128", "metadata": {"title": "Duolingo"}, "organization_id": "org-1"}

    def test_topic_analysis_payload(self):
        c, session, _ = client(FakeResponse(200, {}))
        c.topic_analysis("budget apps", "org-1")
        url, payload = session.calls[0]
        assert url.endswith(TOPIC_FUNCTION)
        assert payload == {"targetTopic": "budget apps", "organizationId": "org-1"}

    def test_chat_defaults_context(self):
        c, session, _ = client(FakeResponse(200, {}))
        c.chat_completion([{"role": "user", "content": "hi"}])
        assert session.calls[0][1]["context"] == {}
