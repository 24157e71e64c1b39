"""
Tests for the FastAPI admin API.

The app is built with an in-memory store, a config file under tmp_path and
a monitor wired to fakes. The monitor loop is never started.
"""

import inspect
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from threadwatch.api import app as app_module
from threadwatch.api import security
from threadwatch.api.app import create_app
from threadwatch.api.responses import ERROR_STATUS_CODES, raise_api_error
from threadwatch.api.routes import config as config_routes
from threadwatch.api.routes import system as system_routes
from threadwatch.backend.utils.errors import ClassifierError, NotificationError, StorageError
from threadwatch.config import ConfigManager, ProcessSettings
from threadwatch.monitor import ForumMonitor, ThrottlePolicy
from tests.conftest import FakeFeedReader, FakePageFetcher, make_thread

TOKEN = "secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
FEED = "https://lowendtalk.com/categories/offers/feed.rss"

VALID_CONFIG = {
    "urls": [FEED],
    "comment_filter": "all",
    "notice_type": "telegram",
    "telegrambot": "123:abc",
    "chat_id": "42",
}


def settings():
    return ProcessSettings(access_token=TOKEN, monitor_autostart=False)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"config": VALID_CONFIG}), encoding="utf-8")
    return path


@pytest.fixture
def manager(config_path):
    return ConfigManager(str(config_path))


@pytest.fixture
def monitor(manager, memory_store, notifier, clock):
    return ForumMonitor(
        memory_store,
        manager.load(),
        config_manager=manager,
        feed_reader=FakeFeedReader({FEED: [make_thread(1)]}),
        page_fetcher=FakePageFetcher(),
        throttle=ThrottlePolicy.disabled(),
        clock=clock,
        notifier_factory=lambda cfg: notifier,
    )


@pytest.fixture
def client(memory_store, manager, monitor):
    app = create_app(settings=settings(), store=memory_store, config_manager=manager, monitor=monitor)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "threadwatch admin API"}

    def test_health_ok(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["database"] == "ok"
        assert body["monitor"] == "stopped"
        assert body["uptime_seconds"] >= 0

    def test_health_degraded_when_store_fails(self, manager, monitor):
        store = MagicMock()
        store.ping.side_effect = StorageError("disk I/O error")
        app = create_app(settings=settings(), store=store, config_manager=manager, monitor=monitor)

        with TestClient(app) as client:
            body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["database"] == "error"

    def test_unknown_path_uses_error_envelope(self, client):
        response = client.get("/api/nope", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestAuth:
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": TOKEN}])
    def test_config_requires_token(self, client, headers):
        response = client.get("/api/config", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_status_is_public(self, client):
        assert client.get("/api/status").status_code == 200


class TestConfigEndpoints:
    def test_get_config(self, client):
        response = client.get("/api/config", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["config"]["chat_id"] == "42"
        assert body["meta"]["version"] == "1.0"

    def test_post_valid_config_is_saved_and_applied(self, client, monitor, config_path):
        new_config = dict(VALID_CONFIG, frequency=60, extra_urls=["https://lowendtalk.com/discussion/1/x"])

        response = client.post("/api/config", headers=AUTH, json={"config": new_config})

        assert response.status_code == 200
        assert response.json()["data"]["config"]["frequency"] == 60
        assert monitor.config.frequency == 60
        on_disk = json.loads(config_path.read_text(encoding="utf-8"))
        assert on_disk["config"]["extra_urls"] == ["https://lowendtalk.com/discussion/1/x"]

    @pytest.mark.parametrize("bad", [
        dict(VALID_CONFIG, chat_id=""),
        dict(VALID_CONFIG, notice_type="pager"),
        dict(VALID_CONFIG, frequency=3),
        dict(VALID_CONFIG, use_ai_filter=True, ai_provider="openai"),
    ])
    def test_invalid_config_is_rejected_and_old_kept(self, client, monitor, config_path, bad):
        before = config_path.read_text(encoding="utf-8")

        response = client.post("/api/config", headers=AUTH, json={"config": bad})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "CONFIG_ERROR"
        assert monitor.config.chat_id == "42"
        assert monitor.config.frequency == 300
        assert config_path.read_text(encoding="utf-8") == before

    def test_body_without_config_key_is_validation_error(self, client):
        response = client.post("/api/config", headers=AUTH, json={"urls": []})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_reload_applies_file(self, client, monitor, config_path):
        config_path.write_text(json.dumps({"config": dict(VALID_CONFIG, only_extra=True)}), encoding="utf-8")

        response = client.post("/api/reload", headers=AUTH)

        assert response.status_code == 200
        assert monitor.config.only_extra is True

    def test_reload_of_broken_file_keeps_config(self, client, monitor, config_path):
        config_path.write_text("{broken", encoding="utf-8")

        response = client.post("/api/reload", headers=AUTH)

        assert response.status_code == 422
        assert monitor.config.only_extra is False


class TestUnconfiguredStartup:
    """An incomplete config file leaves the API up without a monitor."""

    @pytest.fixture
    def bare_client(self, tmp_path, memory_store):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config": {"urls": [FEED]}}), encoding="utf-8")
        app = create_app(settings=settings(), store=memory_store, config_manager=ConfigManager(str(path)))
        with TestClient(app) as test_client:
            yield test_client

    def test_status_reports_unconfigured(self, bare_client):
        body = bare_client.get("/api/status").json()

        assert body["data"] == {"monitor": "unconfigured", "last_cycle": None}

    def test_first_valid_config_creates_monitor(self, bare_client):
        response = bare_client.post("/api/config", headers=AUTH, json={"config": VALID_CONFIG})

        assert response.status_code == 200
        assert response.json()["data"]["monitor"] == "stopped"
        assert bare_client.app.state.monitor is not None
        assert bare_client.get("/health").json()["monitor"] == "stopped"


class TestStatus:
    def test_last_cycle_report(self, client, monitor):
        assert client.get("/api/status").json()["data"]["last_cycle"] is None

        monitor.run_cycle()
        data = client.get("/api/status").json()["data"]

        assert data["monitor"] == "stopped"
        assert data["last_cycle"]["counters"]["threads_inserted"] == 1
        assert data["last_cycle"]["errors"] == []


class TestBackendChecks:
    def test_ai_openai_success(self, client):
        with patch("openai.OpenAI") as mock_openai:
            mock_response = MagicMock()
            mock_response.choices = [MagicMock()]
            mock_response.choices[0].message.content = "1GB KVM in LA for $12/yr END"
            mock_openai.return_value.chat.completions.create.return_value = mock_response

            response = client.post("/api/test-ai", headers=AUTH, json={
                "provider": "openai",
                "api_url": "https://api.openai.com/v1/chat/completions",
                "api_key": "sk-test",
                "model": "gpt-4o-mini",
            })

        assert response.status_code == 200
        assert response.json()["data"] == {"result": "1GB KVM in LA for $12/yr", "valid": True}

    def test_ai_false_answer_is_not_valid(self, client):
        with patch("threadwatch.api.routes.system.CloudflareClassifier") as mock_cls:
            mock_cls.return_value.filter.return_value = "FALSE"
            mock_cls.return_value.is_valid_result.return_value = False

            response = client.post("/api/test-ai", headers=AUTH, json={
                "provider": "cloudflare", "cf_account_id": "acct", "cf_token": "tok", "model": "m",
            })

        assert response.json()["data"] == {"result": "FALSE", "valid": False}
        mock_cls.assert_called_once_with("acct", "tok", "m")

    def test_ai_failure_is_502(self, client):
        with patch("threadwatch.api.routes.system.CloudflareClassifier") as mock_cls:
            mock_cls.return_value.filter.side_effect = ClassifierError("Authentication error")

            response = client.post("/api/test-ai", headers=AUTH, json={"provider": "cloudflare", "model": "m"})

        assert response.status_code == 502
        assert response.json()["error"] == {"code": "CLASSIFIER_ERROR", "message": "Authentication error"}

    def test_ai_requires_model(self, client):
        response = client.post("/api/test-ai", headers=AUTH, json={"provider": "openai"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_telegram_success(self, client):
        with patch("threadwatch.api.routes.system.TelegramNotifier") as mock_cls:
            response = client.post("/api/test-telegram", headers=AUTH,
                                   json={"bot_token": "123:abc", "chat_id": "42", "message": "ping"})

        assert response.status_code == 200
        assert response.json()["data"] == {"sent": True, "chat_id": "42"}
        mock_cls.assert_called_once_with("123:abc", "42")
        mock_cls.return_value.send.assert_called_once_with("ping")

    def test_telegram_failure_is_502(self, client):
        with patch("threadwatch.api.routes.system.TelegramNotifier") as mock_cls:
            mock_cls.return_value.send.side_effect = NotificationError("telegram returned status 401")

            response = client.post("/api/test-telegram", headers=AUTH,
                                   json={"bot_token": "bad", "chat_id": "42"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "NOTIFICATION_ERROR"

    def test_backend_checks_require_token(self, client):
        response = client.post("/api/test-telegram", json={"bot_token": "t", "chat_id": "c"})

        assert response.status_code == 401


class TestErrorCodes:
    """raise_api_error maps every declared code to its HTTP status."""

    @pytest.mark.parametrize("code,status", list(ERROR_STATUS_CODES.items()))
    def test_declared_codes_map_to_status(self, code, status):
        with pytest.raises(HTTPException) as excinfo:
            raise_api_error(code, "boom")

        assert excinfo.value.status_code == status
        assert excinfo.value.detail == {"code": code, "message": "boom"}

    def test_unknown_code_is_500(self):
        with pytest.raises(HTTPException) as excinfo:
            raise_api_error("SOMETHING_ELSE", "boom")

        assert excinfo.value.status_code == 500

    def test_every_code_is_raised_somewhere(self):
        """Declared codes stay in use by the app or its routes."""
        sources = "".join(
            inspect.getsource(module) for module in (app_module, config_routes, system_routes, security)
        )

        for code in ERROR_STATUS_CODES:
            assert code in sources, f"{code} is declared but never raised"
