"""Tests for the plugin admin REST API and the plugin route dispatcher."""

import json

import pytest
from fastapi.testclient import TestClient

from app import app
from host.dependencies import reset_services, set_plugin_manager
from plugin_sources import THROWING_PLUGIN

WEB_PLUGIN = """
    def hello(request):
        return {"message": "hello from web"}

    async def echo(request):
        return {"echo": await request.json()}

    def boom(request):
        raise RuntimeError("route exploded")

    def init(host):
        host.api.register_route("/hello", hello)
        host.api.register_route("/echo", echo, methods=["POST"])
        host.api.register_route("/boom", boom)

    def destroy():
        pass
"""


@pytest.fixture
def manager(write_plugin, make_manager):
    write_plugin("web", WEB_PLUGIN)
    write_plugin("throws", THROWING_PLUGIN)
    manager = make_manager()
    set_plugin_manager(manager)
    yield manager
    reset_services()


@pytest.fixture
def client(manager):
    # Entering the client runs the startup event, which loads the plugins
    with TestClient(app) as client:
        yield client


class TestPluginAdminAPI:
    """Tests for /api/plugins."""

    def test_root_summary(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["enabled"] == ["web"]

    def test_list_plugins(self, client):
        response = client.get("/api/plugins/")

        assert response.status_code == 200
        plugins = {p["name"]: p for p in response.json()["plugins"]}
        assert set(plugins) == {"throws", "web"}
        assert plugins["web"]["enabled"] is True
        assert plugins["throws"]["enabled"] is False
        assert plugins["web"]["manifest"]["entry"] == "main.py"

    def test_get_plugin(self, client):
        response = client.get("/api/plugins/web")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "enabled"
        assert {r["identifier"] for r in data["resources"]} == {"/hello", "/echo", "/boom"}

    def test_unknown_plugin_is_404(self, client):
        assert client.get("/api/plugins/ghost").status_code == 404
        assert client.post("/api/plugins/ghost/enable").status_code == 404
        assert client.post("/api/plugins/ghost/disable").status_code == 404
        assert client.delete("/api/plugins/ghost").status_code == 404

    def test_disable_and_enable(self, client):
        response = client.post("/api/plugins/web/disable")
        assert response.status_code == 200
        assert response.json()["plugin"]["enabled"] is False
        assert client.get("/p/hello").status_code == 404

        response = client.post("/api/plugins/web/enable")
        assert response.status_code == 200
        assert response.json()["plugin"]["enabled"] is True
        assert client.get("/p/hello").status_code == 200

    def test_failed_enable_is_structured_conflict(self, client):
        response = client.post("/api/plugins/throws/enable")

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["plugin"] == "throws"
        assert error["phase"] == "init"
        assert error["kind"] == "threw"
        assert "boom" in error["message"]

    def test_delete_plugin(self, client, plugins_dir):
        response = client.delete("/api/plugins/web")

        assert response.status_code == 200
        assert not (plugins_dir / "web").exists()
        assert client.get("/api/plugins/web").status_code == 404
        assert client.get("/p/hello").status_code == 404


class TestInstallAPI:
    """Tests for POST /api/plugins/install."""

    def _source(self, tmp_path, manifest):
        source = tmp_path / "incoming" / manifest["name"]
        source.mkdir(parents=True)
        (source / "plugin.json").write_text(json.dumps(manifest), encoding="utf-8")
        (source / "main.py").write_text("def init(host):\n    pass\n\ndef destroy():\n    pass\n", encoding="utf-8")
        return source

    def test_install(self, client, tmp_path):
        source = self._source(tmp_path, {"name": "ext", "entry": "main.py"})

        response = client.post("/api/plugins/install", json={"path": str(source)})
        assert response.status_code == 200
        assert response.json()["plugin"]["enabled"] is True

        again = client.post("/api/plugins/install", json={"path": str(source)})
        assert again.status_code == 409

    def test_install_invalid_manifest(self, client, tmp_path):
        source = self._source(tmp_path, {"name": "ext"})

        response = client.post("/api/plugins/install", json={"path": str(source)})
        assert response.status_code == 400
        assert "entry" in response.json()["detail"]

    def test_install_missing_path(self, client, tmp_path):
        response = client.post("/api/plugins/install", json={"path": str(tmp_path / "nope")})
        assert response.status_code == 400


class TestPluginRouteDispatch:
    """Tests for /p/* routes served on behalf of plugins."""

    def test_sync_route(self, client):
        response = client.get("/p/hello")
        assert response.status_code == 200
        assert response.json() == {"message": "hello from web"}

    def test_async_route(self, client):
        response = client.post("/p/echo", json={"a": 1})
        assert response.status_code == 200
        assert response.json() == {"echo": {"a": 1}}

    def test_method_not_allowed(self, client):
        assert client.post("/p/hello").status_code == 405
        assert client.get("/p/echo").status_code == 405

    def test_unknown_route(self, client):
        assert client.get("/p/nothing-here").status_code == 404

    def test_route_error_does_not_crash_host(self, client):
        response = client.get("/p/boom")
        assert response.status_code == 500
        assert "error" in response.json()

        assert client.get("/p/hello").status_code == 200

    def test_same_path_resolves_by_method(self, client, manager):
        manager.registries.routes.register(
            "/hello", lambda request: {"message": "posted"}, plugin="other", methods=("POST",)
        )

        assert client.get("/p/hello").json() == {"message": "hello from web"}
        assert client.post("/p/hello").json() == {"message": "posted"}
        assert client.put("/p/hello").status_code == 405

    def test_newest_matching_registration_wins(self, client, manager):
        manager.registries.routes.register(
            "/hello", lambda request: {"message": "newer"}, plugin="other", methods=("GET",)
        )

        assert client.get("/p/hello").json() == {"message": "newer"}
