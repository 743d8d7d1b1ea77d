"""Shared fixtures: an in-memory site served through a fake fetcher."""

from typing import Dict, List, Optional, Tuple, Union

import pytest

from app_crawler import (
    AppDescriptor,
    ArchiveBuilder,
    CrawlContext,
    FetchedResource,
    Fetcher,
    ResourceNotFoundError,
    Settings,
    charset_of,
)

START = "http://site.example/app"

Entry = Union[Exception, Tuple[str, Union[str, bytes, None]], Tuple[str, Union[str, bytes, None], str]]


class FakeFetcher(Fetcher):
    def __init__(self, pages: Dict[str, Entry]):
        self.pages = pages
        self.calls: List[str] = []
        self.closed = False

    def fetch(self, url: str) -> FetchedResource:
        self.calls.append(url)
        entry = self.pages.get(url)
        if entry is None:
            raise ResourceNotFoundError(f"{url}: HTTP 404")
        if isinstance(entry, Exception):
            raise entry
        content_type, body = entry[0], entry[1]
        final_url = entry[2] if len(entry) > 2 else url
        if isinstance(body, str):
            body = body.encode("utf-8")
        return FetchedResource(
            url=final_url,
            content=body,
            content_type=content_type,
            encoding=charset_of(content_type),
        )

    def close(self) -> None:
        self.closed = True


INDEX_HTML = """<!DOCTYPE html>
<html><head>
<link rel="stylesheet" href="css/main.css">
<link rel="stylesheet" href="http://cdn.example/lib.css">
<link rel="icon" href="favicon.ico">
<script src="phonegap.js"></script>
<script src="js/app.js"></script>
</head><body>
<a href="about.html">About</a>
<a href="http://other.example/">Elsewhere</a>
<a href="mailto:me@site.example">Mail</a>
<a href="about.html#team">Team</a>
<img src="img/logo.png">
</body></html>
"""

ABOUT_HTML = """<html><body>
<a href="about.html">Me</a>
<img src="img/logo.png">
</body></html>
"""

MAIN_CSS = """/* url(ignored.png) */
@import url("reset.css");
body { background: url(../img/bg.png); }
.x:after { content: "url(not-a-ref.png)"; }
@font-face { src: url('../fonts/icon.woff') format('woff'); }
"""

CONFIG_XML = """<?xml version="1.0" encoding="UTF-8"?>
<widget xmlns="http://www.w3.org/ns/widgets" xmlns:gap="http://phonegap.com/ns/1.0">
    <preference name="orientation" value="portrait"/>
    <gap:plugin name="camera"/>
</widget>
"""

PNG = b"\x89PNG\r\n\x1a\nfake"


def site_pages() -> Dict[str, Entry]:
    return {
        # the server redirects the start URL to its directory form
        START: ("text/html; charset=utf-8", INDEX_HTML, START + "/"),
        START + "/about.html": ("text/html", ABOUT_HTML),
        START + "/css/main.css": ("text/css", MAIN_CSS),
        START + "/css/reset.css": ("text/css", "* { margin: 0; }"),
        START + "/img/bg.png": ("image/png", PNG),
        START + "/img/logo.png": ("image/png", PNG),
        START + "/fonts/icon.woff": ("text/css", b"wOFFfont"),
        START + "/js/app.js": ("application/javascript", "console.log('x');"),
        "http://cdn.example/lib.css": ("text/css", ".a { color: red; }"),
        START + "/icon.png": ("image/png", PNG),
        START + "/config.xml": ("application/xml", CONFIG_XML),
    }


@pytest.fixture
def app() -> AppDescriptor:
    return AppDescriptor(
        name="Demo",
        start_url=START,
        package_name="example.site.demo",
        version="1.2.3",
        description="A demo app",
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(site_pages())


def make_context(
    app: AppDescriptor, pages: Optional[Dict[str, Entry]] = None
) -> Tuple[CrawlContext, FakeFetcher]:
    fake = FakeFetcher(pages or {})
    ctx = CrawlContext(
        app=app,
        fetcher=fake,
        settings=Settings(),
        archive=ArchiveBuilder("test"),
    )
    return ctx, fake
