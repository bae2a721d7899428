"""Stand-ins for the Playwright objects the extractor touches."""

from typing import Optional

from jobpipe.scrapers.sources import JOBSDB


class FakeNode:
    def __init__(self, text: str = "", attrs: Optional[dict] = None):
        self.text = text
        self.attrs = attrs or {}

    async def text_content(self):
        return self.text

    async def get_attribute(self, name):
        return self.attrs.get(name)


class FakeCard:
    """One listing card: selector -> FakeNode plus attributes on the card itself"""

    def __init__(self, nodes: dict, attrs: Optional[dict] = None, text: str = "", broken: bool = False):
        self.nodes = nodes
        self.attrs = attrs or {}
        self.text = text
        self.broken = broken

    async def query_selector(self, selector):
        if self.broken:
            raise RuntimeError("element is detached from document")
        return self.nodes.get(selector)

    async def get_attribute(self, name):
        return self.attrs.get(name)

    async def text_content(self):
        return self.text


class FakeControl:
    def __init__(self, page: "FakePage", state: str = "enabled"):
        self.page = page
        self.state = state

    async def get_attribute(self, name):
        if name == "aria-disabled" and self.state == "aria-disabled":
            return "true"
        if name == "disabled" and self.state == "disabled":
            return ""
        return None

    async def is_hidden(self):
        return self.state == "hidden"

    async def click(self):
        if self.page.click_failures > 0:
            self.page.click_failures -= 1
            raise TimeoutError("click timed out")
        self.page.index += 1


class FakePage:
    """
    Paginated result pages. next_states[i] is the state of the next control
    on page i: "enabled", "disabled", "aria-disabled", "hidden" or None (absent).
    By default every page but the last has an enabled next control.
    """

    def __init__(
        self,
        pages: list[list],
        next_states: Optional[list] = None,
        title: str = "Jobs in Hong Kong",
        goto_failures: int = 0,
        click_failures: int = 0,
        load_failures: int = 0,
        body: str = "",
        broken_pages: tuple = (),
        next_selector: str = JOBSDB.pagination.next_selector,
    ):
        self.pages = pages
        self.next_states = next_states or ["enabled"] * (len(pages) - 1) + [None]
        self.page_title = title
        self.goto_failures = goto_failures
        self.click_failures = click_failures
        self.load_failures = load_failures
        self.body = body
        self.broken_pages = broken_pages
        self.next_selector = next_selector
        self.index = 0
        self.goto_calls = []
        self.visited = set()

    async def goto(self, url, timeout=None, wait_until=None):
        self.goto_calls.append(url)
        if self.goto_failures > 0:
            self.goto_failures -= 1
            raise TimeoutError(f"Timeout {timeout}ms exceeded navigating to {url}")

    async def title(self):
        return self.page_title

    async def wait_for_selector(self, selector, timeout=None):
        self.visited.add(self.index)
        if self.index in self.broken_pages:
            raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def query_selector_all(self, selector):
        return list(self.pages[self.index])

    async def query_selector(self, selector):
        if selector == self.next_selector:
            state = self.next_states[self.index] if self.index < len(self.next_states) else None
            return FakeControl(self, state) if state else None
        return None

    async def text_content(self, selector):
        return self.body if selector == "body" else None

    async def wait_for_load_state(self, state=None, timeout=None):
        if self.load_failures > 0:
            self.load_failures -= 1
            raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {state}")


class FakeSession:
    """Async context manager handing out a FakePage; records open/close"""

    def __init__(self, page: FakePage, fail_open: bool = False):
        self.page = page
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0

    def __call__(self):
        # Used directly as the session_factory
        return self

    async def __aenter__(self):
        if self.fail_open:
            raise RuntimeError("browser executable not found")
        self.opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed += 1


def jobsdb_card(
    title: Optional[str],
    company: Optional[str] = "Acme Ltd",
    job_id: Optional[str] = None,
    location: str = "Central",
    description: str = "",
    salary: str = "",
    work_type: str = "",
    href: str = "/job/placeholder",
) -> FakeCard:
    sel = JOBSDB.selectors
    nodes = {}
    if title is not None:
        nodes[sel.title] = FakeNode(title, {"href": href})
    if company is not None:
        nodes[sel.organization] = FakeNode(company)
    if location:
        nodes[sel.location] = FakeNode(location)
    if description:
        nodes[sel.description] = FakeNode(description)
    if salary:
        nodes[sel.compensation] = FakeNode(salary)
    if work_type:
        nodes[sel.employment_type] = FakeNode(work_type)
    attrs = {"data-job-id": job_id} if job_id else {}
    return FakeCard(nodes, attrs)
