"""Bot-wall detection and browser launch defaults."""

import os
from typing import Any

DEFAULT_LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--disable-notifications",
    "--disable-popup-blocking",
    "--disable-blink-features=AutomationControlled",
]

CAPTCHA_INDICATORS = [
    "captcha",
    "unusual traffic",
    "verify you are human",
    "are you a robot",
    "security check",
    "press & hold",
]

BOT_DETECTION_INDICATORS = [
    "access denied",
    "request blocked",
    "rate limit",
    "too many requests",
    "automated queries",
    "blocked by",
]

BLOCKING_STATUSES = {403, 429, 503}


class BrowserDetection:
    """Heuristics for recognizing anti-bot pages."""

    @staticmethod
    def detect_captcha_challenge(page_source: str) -> bool:
        """Detect if page contains CAPTCHA challenge.

        Args:
        ----
            page_source: HTML source of the page

        Returns:
        -------
            True if CAPTCHA detected, False otherwise

        """
        page_lower = page_source.lower()
        return any(indicator in page_lower for indicator in CAPTCHA_INDICATORS)

    @staticmethod
    def detect_bot_detection(page_source: str) -> bool:
        """Detect if page contains bot detection mechanisms."""
        page_lower = page_source.lower()
        return any(indicator in page_lower for indicator in BOT_DETECTION_INDICATORS)

    @classmethod
    def is_blocked(cls, status: int, page_source: str = "") -> bool:
        """Whether a response looks like a bot wall rather than real content."""
        if status in BLOCKING_STATUSES:
            return True
        return bool(page_source) and (
            cls.detect_captcha_challenge(page_source)
            or cls.detect_bot_detection(page_source)
        )


def _is_docker_environment() -> bool:
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER", "").lower() == "true"
    )


def get_launch_options(
    headless: bool = True, extra_args: list[str] | None = None
) -> dict[str, Any]:
    """Build Playwright ``launch()`` keyword arguments.

    Args:
    ----
        headless: Run without a visible window
        extra_args: Additional command line switches from configuration

    Returns:
    -------
        Keyword arguments for ``BrowserType.launch``

    """
    args = list(DEFAULT_LAUNCH_ARGS)
    if _is_docker_environment():
        args.extend(["--no-sandbox", "--disable-gpu"])
    for arg in extra_args or []:
        if arg not in args:
            args.append(arg)
    return {"headless": headless, "args": args}
