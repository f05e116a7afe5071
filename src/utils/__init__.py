"""Filesystem and debug-capture helpers."""

import logging
import re
from pathlib import Path

from playwright.async_api import Page

FILENAME_LIMIT = 200

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\s]+')

logger = logging.getLogger(__name__)


def ensure_dirs_exist(path: Path) -> None:
    """Create the directory for ``path``.

    Paths with a suffix are treated as files, so their parent is created.
    Failures are logged, never raised: debug output must not break a search.
    """
    target = path.parent if path.suffix else path
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create directory {target}: {e}")


def sanitize_filename(filename: str) -> str:
    """Turn an arbitrary label into a filesystem-safe name.

    Args:
    ----
        filename: Label such as ``"amazon page: iphone/15"``

    Returns:
    -------
        Underscore-joined name, or ``"file"`` when nothing usable is left

    """
    cleaned = _UNSAFE_CHARS.sub("_", (filename or "").strip())
    cleaned = re.sub(r"_{2,}", "_", cleaned).strip("._")
    return cleaned[:FILENAME_LIMIT] or "file"


def write_debug_file(debug_dir: Path, name: str, content: str, suffix: str) -> Path | None:
    """Write a text artifact (API body, page HTML) to the debug directory.

    Returns the written path, or None when the write failed.
    """
    path = debug_dir / f"{sanitize_filename(name)}.{suffix.lstrip('.')}"
    ensure_dirs_exist(path)
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to write debug file '{path}': {e}")
        return None
    logger.debug(f"Debug file saved: {path}")
    return path


async def take_screenshot(page: Page, debug_dir: Path, name: str) -> Path | None:
    """Save a full-page screenshot under ``<debug_dir>/screenshots``."""
    target = debug_dir / "screenshots" / f"{sanitize_filename(name)}.png"
    ensure_dirs_exist(target)
    try:
        await page.screenshot(path=target, full_page=True)
    except Exception as e:
        # Pages can close mid-capture during teardown
        logger.warning(f"Screenshot '{name}' failed: {e}")
        return None
    logger.debug(f"Screenshot saved: {target}")
    return target
