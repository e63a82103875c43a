"""Selenium-backed browser layer: launcher, async handles and the BrowserManager."""

from .handles import SeleniumBrowser, SeleniumContext, SeleniumPage
from .launcher import BrowserType, LaunchOptions, launch, parse_browser_type
from .manager import BrowserManager, validate_url

__all__ = [
    "SeleniumBrowser",
    "SeleniumContext",
    "SeleniumPage",
    "BrowserType",
    "LaunchOptions",
    "launch",
    "parse_browser_type",
    "BrowserManager",
    "validate_url",
]
