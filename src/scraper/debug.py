"""Debug capture of raw payloads, page HTML and screenshots."""

import logging
import time
from pathlib import Path

from playwright.async_api import Page

from src.utils import take_screenshot, write_debug_file

logger = logging.getLogger(__name__)


class DebugRecorder:
    """Persists per-attempt artifacts when debug capture is enabled.

    Every method is a no-op when disabled, so strategies call it
    unconditionally.
    """

    def __init__(self, enabled: bool = False, output_dir: Path | None = None):
        self.enabled = enabled
        self.output_dir = output_dir or Path("outputs/debug")

    def _name(self, retailer_key: str, label: str) -> str:
        return f"{retailer_key}-{label}-{int(time.time() * 1000)}"

    def save_response(
        self, retailer_key: str, label: str, body: str, content_type: str = ""
    ) -> Path | None:
        if not self.enabled:
            return None
        suffix = "json" if "json" in content_type.lower() else "txt"
        return write_debug_file(
            self.output_dir, self._name(retailer_key, label), body, suffix
        )

    async def save_page(self, page: Page, retailer_key: str, html: str) -> None:
        if not self.enabled:
            return
        name = self._name(retailer_key, "page")
        write_debug_file(self.output_dir, name, html, "html")
        await take_screenshot(page, self.output_dir, name)
