from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable


def _parts(selector: str) -> list[str]:
    return [p.strip() for p in selector.split(", ") if p.strip()]


class FakeElement:
    """
    Element stub keyed by exact selector strings.

    children maps a CSS selector (as it appears in the selector set) to the
    elements it matches inside this element. Comma-joined selector lists are
    split and matched part by part, in order.
    """

    def __init__(
        self,
        text: str = "",
        *,
        attrs: dict[str, str] | None = None,
        children: dict[str, list["FakeElement"]] | None = None,
        box: dict[str, float] | None = None,
        on_click: Callable[[], None] | None = None,
    ) -> None:
        self.text = text
        self.attrs = dict(attrs or {})
        self.children = dict(children or {})
        self.box = box if box is not None else {"x": 0, "y": 0, "width": 10, "height": 10}
        self.clicks = 0
        self._on_click = on_click

    def query_selector(self, selector: str) -> "FakeElement | None":
        found = self.query_selector_all(selector)
        return found[0] if found else None

    def query_selector_all(self, selector: str) -> list["FakeElement"]:
        out: list[FakeElement] = []
        for part in _parts(selector):
            for el in self.children.get(part, []):
                if el not in out:
                    out.append(el)
        return out

    def inner_text(self) -> str:
        return self.text

    def text_content(self) -> str:
        return self.text

    def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    def bounding_box(self) -> dict[str, float] | None:
        return self.box

    def click(self, timeout: float | None = None) -> None:
        self.clicks += 1
        if self._on_click is not None:
            self._on_click()


@dataclass
class Route:
    status: int | None = 200
    text: str = ""
    children: dict[str, list[FakeElement]] = field(default_factory=dict)
    redirect_to: str | None = None
    error: Exception | None = None


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status


class FakeMouse:
    def __init__(self) -> None:
        self.moves: list[tuple[float, float]] = []
        self.wheels: list[tuple[float, float]] = []

    def move(self, x: float, y: float, steps: int = 1) -> None:
        self.moves.append((x, y))

    def wheel(self, dx: float, dy: float) -> None:
        self.wheels.append((dx, dy))


class FakeKeyboard:
    def __init__(self) -> None:
        self.typed: list[str] = []
        self.pressed: list[str] = []

    def type(self, text: str, delay: float | None = None) -> None:
        self.typed.append(text)

    def press(self, key: str) -> None:
        self.pressed.append(key)


class FakePage(FakeElement):
    """
    Page stub driven by a url -> Route table.

    goto() swaps in the route's DOM and text; unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, Route] | None = None) -> None:
        super().__init__()
        self.routes = dict(routes or {})
        self.url = "about:blank"
        self.visits: list[str] = []
        self.viewport_size = {"width": 1366, "height": 768}
        self.mouse = FakeMouse()
        self.keyboard = FakeKeyboard()
        self.clicked: list[str] = []
        self.filled: list[tuple[str, str]] = []
        self.screenshots: list[str] = []
        self.scroll_height = 2000
        self.on_click: dict[str, Callable[["FakePage"], None]] = {}
        self.closed = False

    def load(self, url: str, route: Route) -> None:
        self.url = route.redirect_to or url
        self.text = route.text
        self.children = dict(route.children)

    def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> FakeResponse | None:
        self.visits.append(url)
        route = self.routes.get(url, Route(status=404))
        if route.error is not None:
            raise route.error
        self.load(url, route)
        if route.status is None:
            return None
        return FakeResponse(route.status)

    def wait_for_load_state(self, state: str, timeout: float | None = None) -> None:
        return None

    def wait_for_selector(self, selector: str, timeout: float | None = None) -> FakeElement:
        found = self.query_selector(selector)
        if found is None:
            raise TimeoutError(f"Timeout waiting for {selector}")
        return found

    def evaluate(self, script: str) -> Any:
        if "scrollTo" in script:
            return None
        if "scrollHeight" in script:
            return self.scroll_height
        if "innerText" in script:
            return self.text
        return None

    def click(self, selector: str | None = None, timeout: float | None = None) -> None:  # type: ignore[override]
        self.clicked.append(selector or "")
        handler = self.on_click.get(selector or "")
        if handler is not None:
            handler(self)

    def fill(self, selector: str, value: str) -> None:
        self.filled.append((selector, value))

    def screenshot(self, path: str, full_page: bool = False) -> None:
        self.screenshots.append(path)

    def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.init_scripts: list[str] = []
        self.options: dict[str, Any] = {}
        self.timeouts: dict[str, float] = {}
        self.closed = False

    def set_default_timeout(self, ms: float) -> None:
        self.timeouts["default"] = ms

    def set_default_navigation_timeout(self, ms: float) -> None:
        self.timeouts["navigation"] = ms

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.context = FakeContext(page)
        self.closed = False

    def new_context(self, **kwargs: Any) -> FakeContext:
        self.context.options = dict(kwargs)
        return self.context

    def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, page: FakePage, *, launch_error: Exception | None = None) -> None:
        self.page = page
        self.launch_error = launch_error
        self.launch_kwargs: dict[str, Any] = {}
        self.browser: FakeBrowser | None = None

    def launch(self, **kwargs: Any) -> FakeBrowser:
        self.launch_kwargs = dict(kwargs)
        if self.launch_error is not None:
            raise self.launch_error
        self.browser = FakeBrowser(self.page)
        return self.browser


class FakePlaywright:
    def __init__(self, page: FakePage | None = None, *, launch_error: Exception | None = None) -> None:
        self.page = page or FakePage()
        self.chromium = FakeChromium(self.page, launch_error=launch_error)
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, float(seconds))


def post_element(
    urn: str,
    caption: str,
    *,
    reactions: str = "0",
    comments: str = "0",
    shares: str = "0",
    image: str | None = None,
    video: str | None = None,
    permalink: str | None = None,
    datetime_attr: str | None = None,
    author: str = "",
) -> FakeElement:
    children: dict[str, list[FakeElement]] = {
        ".attributed-text-segment-list__content": [FakeElement(caption)] if caption else [],
        ".social-counts-reactions__count": [FakeElement(reactions)],
        ".social-counts-comments a": [FakeElement(comments)],
        ".social-counts__count--reposts": [FakeElement(shares)],
    }
    if author:
        children[".update-components-actor__name"] = [FakeElement(author)]
    if image:
        img = FakeElement(attrs={"src": image})
        children[".feed-shared-image img[src]"] = [img]
        children['img[src*="media"]'] = [img]
    if video:
        vid = FakeElement(attrs={"src": video})
        children["video"] = [vid]
    if permalink:
        children["a:has(> time)"] = [FakeElement(attrs={"href": permalink})]
    if datetime_attr:
        children["time[datetime]"] = [FakeElement("1d", attrs={"datetime": datetime_attr})]
    attrs = {"data-urn": urn} if urn else {}
    return FakeElement(attrs=attrs, children=children)


def feed_children(*posts: FakeElement) -> dict[str, list[FakeElement]]:
    return {".feed-shared-update-v2": list(posts)}


def profile_children(
    name: str = "Satya Nadella",
    headline: str = "Chairman and CEO at Microsoft",
    followers: str = "11,234,567 followers",
) -> dict[str, list[FakeElement]]:
    return {
        ".text-heading-xlarge": [FakeElement(name)],
        ".text-body-medium.break-words": [FakeElement(headline)],
        ".follower-count": [FakeElement(followers)],
    }
