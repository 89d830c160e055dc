"""
Opening login pages in the system browser.
"""

from __future__ import annotations

import logging
import platform
import subprocess


logger = logging.getLogger(__name__)


def browser_command(url: str, system: str | None = None) -> list[str]:
    """
    Platform-specific argv that opens ``url`` in the default browser.

    Example:
        >>> browser_command("https://example.org/login?a=1&b=2", system="Windows")
        ['cmd', '/c', 'start', '', 'https://example.org/login?a=1^&b=2']
    """
    system = system or platform.system()
    if system == "Windows":
        # cmd treats a bare & as a command separator
        return ["cmd", "/c", "start", "", url.replace("&", "^&")]
    if system == "Darwin":
        return ["open", url]
    return ["xdg-open", url]


def open_browser(url: str, *, timeout: float = 10.0) -> bool:
    """
    Open ``url`` in the system browser.

    Failures are logged and reported as False; the caller keeps waiting for
    the callback since the user can open the URL by hand.
    """
    command = browser_command(url)
    try:
        subprocess.run(command, capture_output=True, text=True, check=True, timeout=timeout)
    except FileNotFoundError:
        logger.warning("browser_launcher_missing", extra={"command": command[0], "url": url})
        return False
    except subprocess.CalledProcessError as e:
        logger.warning(
            "browser_open_failed",
            extra={"command": command[0], "url": url, "stderr": (e.stderr or e.stdout or "").strip()},
        )
        return False
    except subprocess.TimeoutExpired:
        logger.warning("browser_open_timeout", extra={"command": command[0], "url": url})
        return False
    logger.info("browser_opened", extra={"url": url})
    return True
