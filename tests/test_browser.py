import asyncio

from jobpipe.utils.browser import BrowserSession


class FakeResource:
    def __init__(self, fail=False):
        self.fail = fail
        self.closed = False

    async def close(self):
        self.closed = True
        if self.fail:
            raise RuntimeError("Target page, context or browser has been closed")

    async def stop(self):
        await self.close()


def test_close_releases_everything_when_page_close_fails():
    session = BrowserSession()
    page, context, browser, driver = FakeResource(fail=True), FakeResource(), FakeResource(), FakeResource()
    session.page, session.context, session.browser, session.playwright = page, context, browser, driver

    asyncio.run(session.close())

    assert page.closed and context.closed and browser.closed and driver.closed
    assert session.page is None and session.playwright is None


def test_close_is_idempotent():
    session = BrowserSession()
    browser = FakeResource()
    session.browser = browser

    asyncio.run(session.close())
    asyncio.run(session.close())

    assert browser.closed
    assert session.browser is None
