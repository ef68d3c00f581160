"""Plugin sources and helpers shared by the test modules."""

import json
from pathlib import Path


def read_states(state_file: Path) -> dict:
    with open(state_file, encoding="utf-8") as f:
        return json.load(f)


PING_PLUGIN = """
    def ping(interaction):
        return "pong"

    def init(host):
        host.api.register_command("ping", "Reply with pong", ping)

    def destroy():
        pass
"""

STATUS_ROUTE_PLUGIN = """
    def status(request):
        return {{"owner": "{owner}"}}

    def init(host):
        host.api.register_route("/status", status)

    def destroy():
        pass
"""

THROWING_PLUGIN = """
    def init(host):
        raise RuntimeError("boom")

    def destroy():
        pass
"""

HANGING_PLUGIN = """
    import asyncio

    async def init(host):
        await asyncio.sleep(3600)

    def destroy():
        pass
"""
