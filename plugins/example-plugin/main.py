"""Example plugin: registers a chat command, a web route and a page."""

import logging

logger = logging.getLogger(__name__)

_greetings = 0


async def hello(interaction):
    """Reply to the /hello command."""
    global _greetings
    _greetings += 1
    await interaction.reply("Hello, world! This is the example plugin.")


def hello_route(request):
    return {"message": "Hello from the example plugin!", "greetings": _greetings}


async def init(host):
    log = host.api.get_logger()
    host.api.register_command("hello", "Say hello", hello)
    host.api.register_route("/hello", hello_route)
    host.api.register_page("/example", {"title": "Example Plugin", "body": "Rendered by example-plugin"})
    log.info("Example plugin initialized")


async def destroy():
    logger.info("Example plugin destroyed")
