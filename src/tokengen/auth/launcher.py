"""Best-effort clipboard and browser hand-off for the device code flow."""

import logging
import webbrowser
from typing import Protocol

import pyperclip

logger = logging.getLogger(__name__)


class Launcher(Protocol):
    """Side channels used to help the user finish signing in.

    Implementations never raise; they report success as a bool.
    """

    def copy_to_clipboard(self, text: str) -> bool:
        ...

    def open_browser(self, url: str) -> bool:
        ...


class DesktopLauncher:
    """Uses the system clipboard and default web browser."""

    def __init__(self, clipboard: bool = True, browser: bool = True):
        self.clipboard = clipboard
        self.browser = browser

    def copy_to_clipboard(self, text: str) -> bool:
        if not self.clipboard:
            return False
        try:
            pyperclip.copy(text)
        except Exception as e:
            # PyperclipException when no clipboard mechanism exists
            logger.info(f"Could not copy code to clipboard: {e}")
            return False
        return True

    def open_browser(self, url: str) -> bool:
        if not self.browser:
            return False
        try:
            opened = webbrowser.open(url)
        except (OSError, webbrowser.Error) as e:
            logger.info(f"Could not open browser automatically: {e}")
            return False
        if not opened:
            logger.info("No runnable browser found")
        return bool(opened)


class HeadlessLauncher:
    """Does nothing; the user copies the code and URL by hand."""

    def copy_to_clipboard(self, text: str) -> bool:
        return False

    def open_browser(self, url: str) -> bool:
        return False
