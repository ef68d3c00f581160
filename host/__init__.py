"""Plugin host runtime: discovers, loads and supervises third-party plugins."""

__version__ = "1.0.0"
