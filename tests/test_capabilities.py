"""Tests for the capability surface handed to plugins."""

import asyncio
import logging

import pytest

from host.errors import CapabilityRevokedError
from host.plugins.api import CAPABILITIES, HostHandle, PluginAPI, build_capabilities
from host.plugins.ownership import ResourceOwnershipTracker
from host.registries import HostRegistries


class FakeController:
    """Records plugin-initiated transitions."""

    def __init__(self):
        self.calls = []

    async def enable_plugin(self, name):
        self.calls.append(("enable", name))
        return name

    async def disable_plugin(self, name):
        self.calls.append(("disable", name))
        return name

    def get_plugins(self):
        return [{"name": "a", "enabled": True}]


@pytest.fixture
def registries():
    return HostRegistries()


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def lease(registries, loop):
    tracker = ResourceOwnershipTracker(registries)
    return build_capabilities("a", tracker, FakeController(), loop=loop)


class TestPluginAPI:
    """Tests for the shape of the host handle."""

    def test_exposes_exactly_the_capabilities(self, lease):
        api = lease.handle.api
        assert isinstance(lease.handle, HostHandle)
        assert isinstance(api, PluginAPI)
        assert len(CAPABILITIES) == 8
        public = {name for name in PluginAPI.__slots__ if name != "plugin_name"}
        assert public == set(CAPABILITIES)
        for name in CAPABILITIES:
            assert callable(getattr(api, name))

    def test_no_route_to_host_internals(self, lease):
        api = lease.handle.api
        assert not hasattr(api, "__dict__")
        assert not hasattr(api, "registries")
        assert not hasattr(api, "tracker")

    def test_handle_is_read_only(self, lease):
        api = lease.handle.api
        with pytest.raises(AttributeError):
            api.register_command = lambda *a: None
        with pytest.raises(AttributeError):
            api.extra = 1
        with pytest.raises(AttributeError):
            del api.get_logger
        with pytest.raises(AttributeError):
            lease.handle.api = None


class TestRegistrationCapabilities:
    """Tests for the register_* capabilities."""

    def test_register_command(self, lease, registries):
        handler = lambda interaction: "pong"  # noqa: E731
        lease.handle.api.register_command("ping", "Reply with pong", handler)

        registration = registries.commands.resolve("ping")
        assert registration.handler is handler
        assert registration.metadata == {"plugin": "a", "description": "Reply with pong"}

    def test_register_route_normalizes_path_and_methods(self, lease, registries):
        lease.handle.api.register_route("status", lambda request: {}, methods=["get", "post"])

        registration = registries.routes.resolve("/status")
        assert registration.metadata["methods"] == ("GET", "POST")

    def test_register_route_accepts_single_method_string(self, lease, registries):
        lease.handle.api.register_route("/submit", lambda request: {}, methods="post")

        assert registries.routes.resolve("/submit").metadata["methods"] == ("POST",)

    def test_register_event_and_page(self, lease, registries):
        lease.handle.api.register_event("saved", lambda payload: None)
        lease.handle.api.register_page("/dashboard", {"title": "Dashboard"})

        assert registries.events.resolve("saved").metadata["plugin"] == "a"
        assert registries.pages.resolve("/dashboard").handler == {"title": "Dashboard"}

    def test_invalid_parameters(self, lease):
        api = lease.handle.api
        with pytest.raises(TypeError, match="register_command"):
            api.register_command("ping", "desc", "not callable")
        with pytest.raises(TypeError, match="register_command"):
            api.register_command(None, "desc", lambda: None)
        with pytest.raises(TypeError, match="register_event"):
            api.register_event("saved", None)
        with pytest.raises(TypeError, match="register_route"):
            api.register_route(42, lambda request: None)
        with pytest.raises(TypeError, match="register_page"):
            api.register_page(None, object())


class TestRevocation:
    """Tests for CapabilityLease.revoke."""

    def test_revoked_handle_refuses_registrations(self, lease, registries):
        lease.revoke()

        assert lease.revoked
        with pytest.raises(CapabilityRevokedError):
            lease.handle.api.register_command("late", "Too late", lambda i: None)
        with pytest.raises(CapabilityRevokedError):
            lease.handle.api.register_route("/late", lambda r: None)
        assert registries.commands.resolve("late") is None

    def test_revoked_handle_refuses_transitions(self, lease):
        lease.revoke()
        with pytest.raises(CapabilityRevokedError):
            lease.handle.api.enable_plugin("b")

    def test_revoke_is_idempotent(self, lease):
        lease.revoke()
        lease.revoke()
        assert lease.revoked

    def test_read_only_capabilities_survive_revocation(self, lease):
        lease.revoke()
        assert lease.handle.api.get_plugins() == [{"name": "a", "enabled": True}]
        assert lease.handle.api.get_logger().name == "plugin.a"


class TestOtherCapabilities:
    """Tests for get_logger and plugin-initiated transitions."""

    def test_get_logger_is_namespaced(self, lease):
        assert lease.handle.api.get_logger().name == "plugin.a"
        assert lease.handle.api.get_logger("db").name == "plugin.a.db"
        assert isinstance(lease.handle.api.get_logger(), logging.Logger)

    def test_enable_and_disable_are_scheduled_on_host_loop(self, registries):
        controller = FakeController()

        async def scenario():
            tracker = ResourceOwnershipTracker(registries)
            lease = build_capabilities("a", tracker, controller)
            enabled = lease.handle.api.enable_plugin("b")
            disabled = lease.handle.api.disable_plugin("c")
            return await asyncio.wrap_future(enabled), await asyncio.wrap_future(disabled)

        assert asyncio.run(scenario()) == ("b", "c")
        assert controller.calls == [("enable", "b"), ("disable", "c")]
