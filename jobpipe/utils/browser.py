"""
Browser utilities - Playwright browser sessions with stealth mode
"""

from typing import Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
)

from jobpipe.utils.config import BrowserConfig
from jobpipe.utils.logger import logger


class SessionOpenError(Exception):
    """Raised when a browser session could not be started"""


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

STEALTH_SCRIPT = """
// Override webdriver property
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});

// Override languages
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en', 'zh-HK'],
});

// Remove automation indicators
window.chrome = { runtime: {} };
"""


class BrowserSession:
    """
    One Playwright browser + context + page, owned by a single extractor run.

    Usage:
        async with BrowserSession(settings.browser) as session:
            await session.page.goto("https://example.com")
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def open(self) -> Page:
        """Start the browser and return a fresh page"""
        try:
            self.playwright = await async_playwright().start()

            launcher = getattr(self.playwright, self.config.type, None) or self.playwright.chromium
            launch_args = self.config.launch_args if self.config.type == "chromium" else []
            self.browser = await launcher.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_mo,
                args=launch_args,
            )

            self.context = await self._create_stealth_context()
            self.page = await self.context.new_page()
        except Exception as e:
            await self.close()
            raise SessionOpenError(str(e)) from e

        logger.debug(f"🌐 Browser session opened ({self.config.type}, headless={self.config.headless})")
        return self.page

    async def _create_stealth_context(self) -> BrowserContext:
        """Create a browser context with anti-detection measures"""
        context = await self.browser.new_context(
            viewport=self.config.viewport,
            user_agent=self.config.user_agent or DEFAULT_USER_AGENT,
            locale="en-US",
            timezone_id="Asia/Hong_Kong",
            extra_http_headers={
                "Accept-Language": "en-US,en;q=0.9,zh-HK;q=0.8",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            }
        )
        await context.add_init_script(STEALTH_SCRIPT)
        return context

    async def close(self) -> None:
        """
        Stop the browser and cleanup. Safe to call more than once.
        Every resource is released even when an earlier one fails to close.
        """
        for name in ("page", "context", "browser", "playwright"):
            resource = getattr(self, name)
            if resource is None:
                continue
            setattr(self, name, None)
            try:
                if name == "playwright":
                    await resource.stop()
                else:
                    await resource.close()
            except Exception as e:
                logger.warning(f"Could not close browser {name}: {e}")

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
