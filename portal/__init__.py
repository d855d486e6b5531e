"""Playwright runtime, portal stage definitions and HTTP front door."""

from .config import RunConfig, load_config

__all__ = ["RunConfig", "load_config"]
