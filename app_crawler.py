#!/usr/bin/env python3
import argparse
import codecs
import logging
import re
import sys
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Set, Union
from urllib.parse import urljoin, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup
from lxml import etree
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# -------------------- Config --------------------

USER_AGENT = "AppCrawler Service"

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

DEFAULT_PORTS = {"http": 80, "https": 443}

# servers tend to deliver web fonts with a wrong mime type
WEBFONT_EXTS = ("eot", "otf", "ttf", "woff")

PASSTHROUGH_PREFIXES = ("mailto:", "tel:", "javascript:", "data:", "blob:")

# Stylesheet scanner: comments > @import > url() > string literals.
CSS_STRING = r"""(?:"(?:\\.|[^\\"])*"|'(?:\\.|[^\\'])*')"""
CSS_URL = r"(?:url\(\s*(?:%s|[^)]*)\s*\))" % CSS_STRING
CSS_IMPORT = r"(?:@import\s+(?:%s|%s))" % (CSS_URL, CSS_STRING)
CSS_TOKEN_RE = re.compile(
    r"/\*[\s\S]*?\*/|(%s)|(%s)|%s" % (CSS_IMPORT, CSS_URL, CSS_STRING),
    re.IGNORECASE,
)
CSS_REF_STRIP_RE = re.compile(r"""^.*?[("']\s*["']?|["')\s]*$""", re.DOTALL)

WIDGETS_NS = "http://www.w3.org/ns/widgets"
GAP_NS = "http://phonegap.com/ns/1.0"
CONFIG_NSMAP = {None: WIDGETS_NS, "gap": GAP_NS}

ARCHIVE_DATE = (1980, 1, 1, 0, 0, 0)

# -------------------- Settings --------------------


@dataclass
class Settings:
    connect_timeout: float = 3.0
    read_timeout: float = 10.0
    retries: int = 0
    user_agent: str = USER_AGENT

    # Well-known site resources
    bootstrap_script: str = "phonegap.js"
    icon: str = "icon.png"
    splash: str = "splash.png"
    config_xml: str = "config.xml"
    index_file: str = "index.html"


@dataclass(frozen=True)
class AppDescriptor:
    name: str
    start_url: str
    package_name: str
    version: str
    description: str = ""

    @property
    def base_url(self) -> str:
        return self.start_url.rstrip("/")


# -------------------- Errors --------------------


class CrawlError(Exception):
    kind = "crawl"


class MalformedURLError(CrawlError):
    kind = "malformed-url"


class ResourceNotFoundError(CrawlError):
    kind = "not-found"


class FetchError(CrawlError):
    kind = "io"


class UnsupportedPathError(ValueError):
    kind = "unsupported-path"


class SessionStateError(RuntimeError):
    pass


@dataclass(frozen=True)
class CrawlOutcome:
    """Result of crawling one reference: a relative path or a recoverable error."""

    path: Optional[str] = None
    error: Optional[CrawlError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# -------------------- Utils --------------------


def can_fetch_url(u: str) -> bool:
    if not u:
        return False
    u = u.strip()
    if u.startswith("#") or u.lower().startswith(PASSTHROUGH_PREFIXES):
        return False
    return True


def starts_with_ignore_case(s: str, prefix: str) -> bool:
    return s.lower().startswith(prefix.lower())


def ensure_parent_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def media_type_of(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def charset_of(content_type: Optional[str]) -> Optional[str]:
    for param in (content_type or "").split(";")[1:]:
        k, _, v = param.partition("=")
        if k.strip().lower() == "charset" and v.strip():
            return v.strip().strip("\"'")
    return None


def text_codec(encoding: Optional[str]) -> str:
    if encoding:
        try:
            return codecs.lookup(encoding).name
        except LookupError:
            logging.debug("unknown charset %s, using utf-8", encoding)
    return "utf-8"


# -------------------- Classifier --------------------


class Category(Enum):
    MARKUP = "markup"
    STYLESHEET = "stylesheet"
    SCRIPT = "script"
    IMAGE = "image"
    OTHER = "other"


TYPE_MAPPINGS: Dict[str, Category] = {
    "text/html": Category.MARKUP,
    "application/xhtml+xml": Category.MARKUP,
    "image/gif": Category.IMAGE,
    "image/jpeg": Category.IMAGE,
    "image/png": Category.IMAGE,
    "image/webp": Category.IMAGE,
    "text/css": Category.STYLESHEET,
    "application/javascript": Category.SCRIPT,
    "application/x-javascript": Category.SCRIPT,
    "text/javascript": Category.SCRIPT,
}


def is_webfont(url_path: str) -> bool:
    return (url_path or "").lower().endswith(WEBFONT_EXTS)


def classify(content_type: Optional[str], url_path: str = "") -> Category:
    if is_webfont(url_path):
        return Category.OTHER
    return TYPE_MAPPINGS.get(media_type_of(content_type), Category.OTHER)


# -------------------- Path mapping --------------------


def remove_dot_segments(path: str) -> str:
    segs = path.split("/")
    out: List[str] = []
    for seg in segs:
        if seg == "..":
            if len(out) > 1:
                out.pop()
        elif seg != ".":
            out.append(seg)
    if segs[-1] in (".", ".."):
        out.append("")
    return "/".join(out)


def canonicalize_url(url: str) -> str:
    try:
        p = urlsplit(url.strip())
        port = p.port
    except ValueError as e:
        raise MalformedURLError(f"{url}: {e}") from e
    scheme = p.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise MalformedURLError(f"unknown protocol: {url}")
    if not p.hostname:
        raise MalformedURLError(f"no host: {url}")
    netloc = p.hostname.lower()
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    return urlunsplit((scheme, netloc, remove_dot_segments(p.path), p.query, ""))


def _clean_segments(path: str) -> str:
    # entries must stay below the bundle root
    segs = ["__" if s == ".." else s for s in path.split("/") if s not in ("", ".")]
    cleaned = "/".join(segs)
    if path.endswith("/") or not cleaned:
        cleaned += "/"
    return cleaned


def bundle_path(url: str, start_url: str, index_file: str = "index.html") -> str:
    """Map a canonical URL to its absolute location inside the bundle."""
    p = urlsplit(url)
    start_path = urlsplit(start_url).path.rstrip("/")

    prefix = ""
    if not starts_with_ignore_case(url, start_url.rstrip("/")):
        host = (p.hostname or "host").replace(".", "-")
        prefix = f"{host}-{p.port or 0}"

    path = p.path
    if start_path and (path == start_path or path.startswith(start_path + "/")):
        path = path[len(start_path):]
    result = prefix + path.replace(":", "/").replace(",", "/")

    last = p.path.rsplit("/", 1)[-1]
    has_ext = "." in last

    # query parameters become directories
    if p.query:
        segs = [s for s in re.split(r"[=&:]", p.query) if s]
        if segs and has_ext:
            # list.php?page=2 -> list.php-q/page/2/list.php, never list.php/...
            head, _, name = result.rpartition("/")
            result = f"{head}/{name}-q/{'/'.join(segs)}/{name}"
        elif segs:
            result = result.rstrip("/") + "/" + "/".join(segs)

    result = _clean_segments(result)
    if not has_ext and not result.endswith("/"):
        result += "/"
    if result.endswith("/"):
        result += index_file

    return "/" + result.lstrip("/")


def relativize(target: str, referrer: str) -> str:
    if target == referrer:
        return ""

    target_segs = target.split("/")
    referrer_dirs = referrer.split("/")[:-1]
    target_dirs = target_segs[:-1]

    common = 0
    for ref_dir, target_dir in zip(referrer_dirs, target_dirs):
        if ref_dir != target_dir:
            break
        common += 1

    if common == 0:
        logging.warning("paths do not have a common base: %s -> %s", target, referrer)
        raise UnsupportedPathError("paths do not have a common base")

    parts = ["../" for seg in referrer_dirs[common:] if seg]
    parts.extend(seg + "/" for seg in target_dirs[common:])
    parts.append(target_segs[-1])

    result = "".join(parts)
    if result.startswith("/"):
        result = result[1:]
    logging.debug("%s -> %s: %s", referrer, target, result)
    return result


# -------------------- HTTP --------------------


@dataclass(frozen=True)
class FetchedResource:
    url: str
    content: Optional[bytes]
    content_type: Optional[str] = None
    encoding: Optional[str] = None


def build_session(settings: Settings) -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=settings.retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(DEFAULT_HEADERS)
    s.headers["User-Agent"] = settings.user_agent
    return s


class Fetcher:
    def fetch(self, url: str) -> FetchedResource:
        raise NotImplementedError

    def close(self) -> None:
        pass


class HttpFetcher(Fetcher):
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_session(settings)

    def fetch(self, url: str) -> FetchedResource:
        timeout = (self.settings.connect_timeout, self.settings.read_timeout)
        try:
            r = self.session.get(url, timeout=timeout)
        except requests.RequestException as e:
            raise FetchError(f"{url}: {e}") from e
        if r.status_code in (404, 410):
            raise ResourceNotFoundError(f"{url}: HTTP {r.status_code}")
        if r.status_code >= 400:
            raise FetchError(f"{url}: HTTP {r.status_code}")
        content_type = r.headers.get("Content-Type")
        return FetchedResource(
            url=r.url or url,
            content=r.content,
            content_type=content_type,
            encoding=charset_of(content_type),
        )

    def close(self) -> None:
        self.session.close()


# -------------------- Archive --------------------


class ArchiveBuilder:
    def __init__(self, comment: str = "", fileobj: Optional[BinaryIO] = None):
        self._buffer = fileobj if fileobj is not None else BytesIO()
        self._in_memory = fileobj is None
        self._zip = zipfile.ZipFile(self._buffer, "w", zipfile.ZIP_DEFLATED)
        self._zip.comment = comment.encode("utf-8")[:65535]
        self._paths: List[str] = []
        self.closed = False

    def __contains__(self, path: str) -> bool:
        return path in self._paths

    @property
    def paths(self) -> List[str]:
        return list(self._paths)

    def add(self, path: str, data: bytes) -> bool:
        if self.closed:
            raise ValueError("archive is closed")
        if path in self._paths:
            logging.warning("duplicate bundle path %s, keeping first entry", path)
            return False
        info = zipfile.ZipInfo(path.lstrip("/"), date_time=ARCHIVE_DATE)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = 0o644 << 16
        self._zip.writestr(info, data)
        self._paths.append(path)
        logging.info("save to %s", path)
        return True

    def close(self) -> Optional[bytes]:
        if not self.closed:
            self._zip.close()
            self.closed = True
        if self._in_memory:
            return self._buffer.getvalue()
        return None


# -------------------- HTML utils --------------------


def bs4_parse(markup: Union[str, bytes], encoding: Optional[str] = None) -> BeautifulSoup:
    from_encoding = encoding if isinstance(markup, bytes) else None
    try:
        return BeautifulSoup(markup, "lxml", from_encoding=from_encoding)
    except Exception:
        return BeautifulSoup(markup, "html.parser", from_encoding=from_encoding)


def effective_base_url(soup: BeautifulSoup, fallback: str) -> str:
    tag = soup.find("base", href=True)
    if tag and tag.get("href"):
        return urljoin(fallback, tag["href"])
    return fallback


def serialize_html(soup: BeautifulSoup) -> str:
    try:
        return soup.decode(formatter="html")
    except Exception:
        return str(soup)


# -------------------- Crawl context --------------------


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    DONE = "done"


ALLOWED_TRANSITIONS = {
    SessionState.IDLE: {SessionState.ACTIVE},
    SessionState.ACTIVE: {SessionState.FINALIZING},
    SessionState.FINALIZING: {SessionState.DONE},
    SessionState.DONE: set(),
}


@dataclass
class CrawlContext:
    app: AppDescriptor
    fetcher: Fetcher
    settings: Settings
    archive: ArchiveBuilder
    visited: Set[str] = field(default_factory=set)
    visit_order: List[str] = field(default_factory=list)
    crawled: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def start_url(self) -> str:
        return self.app.base_url

    @property
    def bundle_root(self) -> str:
        try:
            return canonicalize_url(self.start_url)
        except MalformedURLError:
            return self.start_url

    def bundle_path_of(self, canonical: str) -> str:
        return bundle_path(canonical, self.bundle_root, self.settings.index_file)

    @property
    def root_path(self) -> str:
        return "/" + self.settings.index_file

    def well_known(self, name: str) -> str:
        return f"{self.start_url}/{name}"

    def suppress(self, url: str) -> None:
        canonical = canonicalize_url(url)
        if canonical not in self.visited:
            self.visited.add(canonical)
            self.visit_order.append(canonical)

    def mark_visited(self, canonical: str) -> bool:
        if canonical in self.visited:
            return False
        self.visited.add(canonical)
        self.visit_order.append(canonical)
        self.crawled.append(canonical)
        return True

    def record_error(self, reference: str, error: CrawlError) -> None:
        logging.warning("couldn't crawl %s: %s", reference, error)
        self.errors.append(str(error))


# -------------------- Rewriters --------------------


def resolve_reference(ctx: CrawlContext, base: str, ref: str) -> Optional[str]:
    try:
        return urljoin(base, ref)
    except ValueError as e:
        ctx.record_error(ref, MalformedURLError(f"{ref}: {e}"))
        return None


def crawl_reference(ctx: CrawlContext, target: str, own_path: str) -> Optional[str]:
    outcome = crawl_resource(ctx, target, own_path)
    if outcome.ok:
        return outcome.path
    ctx.record_error(target, outcome.error)
    return None


def rewrite_markup(ctx: CrawlContext, resource: FetchedResource, own_path: str) -> bytes:
    soup = bs4_parse(resource.content or b"", resource.encoding)
    base = effective_base_url(soup, resource.url)

    # navigation stays inside the site
    for a in soup.select("a[href]"):
        href = (a.get("href") or "").strip()
        if not can_fetch_url(href):
            continue
        target = resolve_reference(ctx, base, href)
        if target is None:
            continue
        if not starts_with_ignore_case(target, ctx.start_url):
            a["href"] = target
            continue
        rel = crawl_reference(ctx, target, own_path)
        if rel is None:
            a["href"] = target
            continue
        frag = urlsplit(target).fragment
        a["href"] = f"{rel}#{frag}" if frag else rel

    for link in soup.select("link[href]"):
        rels = {r.lower() for r in (link.get("rel") or [])}
        href = (link.get("href") or "").strip()
        if "stylesheet" not in rels or not can_fetch_url(href):
            continue
        target = resolve_reference(ctx, base, href)
        if target is None:
            continue
        rel = crawl_reference(ctx, target, own_path)
        link["href"] = target if rel is None else rel

    for tag in soup.select("[src]"):
        src = (tag.get("src") or "").strip()
        if not can_fetch_url(src):
            continue
        target = resolve_reference(ctx, base, src)
        if target is None:
            continue
        rel = crawl_reference(ctx, target, own_path)
        tag["src"] = target if rel is None else rel

    return serialize_html(soup).encode("utf-8")


def rewrite_css_text(ctx: CrawlContext, css_text: str, css_url: str, own_path: str) -> str:
    def repl(m: re.Match) -> str:
        matched = m.group(0)
        if m.group(1) is None and m.group(2) is None:
            return matched
        literal = CSS_REF_STRIP_RE.sub("", matched)
        if not can_fetch_url(literal):
            return matched
        target = resolve_reference(ctx, css_url, literal)
        if target is None:
            return matched
        rel = crawl_reference(ctx, target, own_path)
        if rel is None:
            return matched.replace(literal, target, 1)
        if not rel:
            return matched
        return matched.replace(literal, rel, 1)

    return CSS_TOKEN_RE.sub(repl, css_text)


def rewrite_stylesheet(ctx: CrawlContext, resource: FetchedResource, own_path: str) -> bytes:
    codec = text_codec(resource.encoding)
    css = (resource.content or b"").decode(codec, errors="replace")
    return rewrite_css_text(ctx, css, resource.url, own_path).encode(codec, errors="replace")


# -------------------- Crawl --------------------


def fetch_and_archive(ctx: CrawlContext, url: str, path: str) -> None:
    resource = ctx.fetcher.fetch(url)
    if resource.content is None:
        raise ResourceNotFoundError(f"{url}?")

    category = classify(resource.content_type, urlsplit(resource.url).path)
    logging.debug("%s is %s", url, category.value)

    if category is Category.MARKUP:
        data = rewrite_markup(ctx, resource, path)
    elif category is Category.STYLESHEET:
        data = rewrite_stylesheet(ctx, resource, path)
    else:
        # copied, not parsed
        data = resource.content
    ctx.archive.add(path, data)


def crawl_resource(ctx: CrawlContext, url: str, referrer_path: str) -> CrawlOutcome:
    if not can_fetch_url(url):
        return CrawlOutcome(path=url)
    try:
        canonical = canonicalize_url(url)
        path = ctx.bundle_path_of(canonical)
        if ctx.mark_visited(canonical):
            logging.info("start crawling %s", canonical)
            fetch_and_archive(ctx, canonical, path)
            logging.info("finished crawling %s", canonical)
    except CrawlError as e:
        return CrawlOutcome(error=e)
    except UnsupportedPathError:
        raise
    except Exception as e:
        # parser, archive or recursion-depth failures stay local to this reference
        return CrawlOutcome(error=FetchError(f"{url}: {type(e).__name__}: {e}"))
    return CrawlOutcome(path=relativize(path, referrer_path))


@dataclass
class CrawlResult:
    archive: Optional[bytes]
    errors: List[str]
    visited: List[str]
    crawled: List[str]
    paths: List[str]
    has_icon: bool = False
    has_splash: bool = False
    state: SessionState = SessionState.DONE

    @property
    def resource_count(self) -> int:
        return len(self.crawled)


class CrawlSession:
    def __init__(
        self,
        app: AppDescriptor,
        fetcher: Fetcher,
        settings: Optional[Settings] = None,
        fileobj: Optional[BinaryIO] = None,
    ):
        self.app = app
        self.settings = settings or Settings()
        self.state = SessionState.IDLE
        self.has_icon = False
        self.has_splash = False
        self.context = CrawlContext(
            app=app,
            fetcher=fetcher,
            settings=self.settings,
            archive=ArchiveBuilder(f"Content for {app.name}", fileobj),
        )

    def _enter(self, state: SessionState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise SessionStateError(f"cannot go from {self.state.value} to {state.value}")
        logging.debug("session %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self) -> CrawlResult:
        self._enter(SessionState.ACTIVE)
        ctx = self.context
        logging.info("start crawling app %s", self.app.name)
        try:
            self._crawl_all()
        except Exception:
            logging.exception("couldn't crawl %s", self.app.start_url)

        self._enter(SessionState.FINALIZING)
        archive = ctx.archive.close()
        self._enter(SessionState.DONE)

        logging.info(
            "finished crawling app %s. Found %d file/s. %d error/s occurred.",
            self.app.name,
            len(ctx.visited),
            len(ctx.errors),
        )
        return CrawlResult(
            archive=archive,
            errors=list(ctx.errors),
            visited=list(ctx.visit_order),
            crawled=list(ctx.crawled),
            paths=ctx.archive.paths,
            has_icon=self.has_icon,
            has_splash=self.has_splash,
            state=self.state,
        )

    def _crawl_all(self) -> None:
        ctx = self.context
        # supplied by PhoneGap Build, never by the site
        ctx.suppress(ctx.well_known(self.settings.bootstrap_script))

        outcome = crawl_resource(ctx, ctx.start_url, ctx.root_path)
        if not outcome.ok:
            logging.warning("couldn't crawl %s: %s", ctx.start_url, outcome.error)
            return

        self.has_icon = self._crawl_optional(self.settings.icon)
        self.has_splash = self._crawl_optional(self.settings.splash)
        self._add_config()

    def _crawl_optional(self, name: str) -> bool:
        ctx = self.context
        url = ctx.well_known(name)
        try:
            outcome = crawl_resource(ctx, url, ctx.root_path)
            if not outcome.ok:
                logging.debug("could not retrieve %s: %s", url, outcome.error)
                return False
            return ctx.bundle_path_of(canonicalize_url(url)) in ctx.archive
        except Exception as e:
            logging.debug("could not retrieve %s: %s", url, e)
            return False

    def _add_config(self) -> None:
        ctx = self.context
        url = ctx.well_known(self.settings.config_xml)
        extra: Optional[str] = None
        try:
            resource = ctx.fetcher.fetch(url)
            if resource.content:
                extra = extract_config_fragment(resource.content)
        except Exception as e:
            logging.debug("no additional config.xml tags from app: %s", e)
        data = build_config_xml(self.app, extra, self.has_icon, self.has_splash, self.settings)
        ctx.archive.add("/" + self.settings.config_xml, data)


def crawl_app(
    app: AppDescriptor,
    fetcher: Optional[Fetcher] = None,
    settings: Optional[Settings] = None,
    fileobj: Optional[BinaryIO] = None,
) -> CrawlResult:
    settings = settings or Settings()
    own_fetcher = fetcher is None
    if fetcher is None:
        fetcher = HttpFetcher(settings)
    try:
        return CrawlSession(app, fetcher, settings, fileobj).run()
    finally:
        if own_fetcher:
            fetcher.close()


# -------------------- Manifest --------------------


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(recover=True, remove_blank_text=True, resolve_entities=False)


def extract_config_fragment(body: bytes) -> Optional[str]:
    """Return the children of a site's own ``<widget>`` config as raw markup."""
    try:
        root = etree.fromstring(body, parser=_xml_parser())
    except etree.XMLSyntaxError as e:
        logging.warning("config.xml could not be parsed: %s", e)
        return None
    if root is None or etree.QName(root).localname != "widget":
        logging.debug("config.xml has no widget root, ignoring it")
        return None
    text = "".join(etree.tostring(n, encoding="unicode", with_tail=False) for n in root)
    return text.strip() or None


def parse_config_fragment(markup: str) -> List[etree._Element]:
    wrapped = '<more xmlns="%s" xmlns:gap="%s">%s</more>' % (WIDGETS_NS, GAP_NS, markup)
    try:
        more = etree.fromstring(wrapped.encode("utf-8"), parser=_xml_parser())
    except etree.XMLSyntaxError:
        more = None
    if more is None:
        logging.warning("dropping unparsable config fragment")
        return []
    return list(more)


def build_config_xml(
    app: AppDescriptor,
    extra_markup: Optional[str] = None,
    has_icon: bool = False,
    has_splash: bool = False,
    settings: Optional[Settings] = None,
) -> bytes:
    settings = settings or Settings()
    root = etree.Element("{%s}widget" % WIDGETS_NS, nsmap=CONFIG_NSMAP)
    root.set("id", app.package_name)
    root.set("version", app.version)

    etree.SubElement(root, "{%s}name" % WIDGETS_NS).text = app.name
    etree.SubElement(root, "{%s}description" % WIDGETS_NS).text = app.description or ""

    if has_icon:
        etree.SubElement(root, "{%s}icon" % WIDGETS_NS, src=settings.icon)
    if has_splash:
        etree.SubElement(root, "{%s}splash" % GAP_NS, src=settings.splash)

    if extra_markup and extra_markup.strip():
        for node in parse_config_fragment(extra_markup):
            root.append(node)

    etree.indent(root, space="     ")
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Union[str, int, float, bool, List[str]]]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        if sys.version_info >= (3, 11):
            import tomllib
        else:
            import tomli as tomllib
        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise RuntimeError("Top-level YAML must be a mapping")
            return data
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")


# -------------------- CLI --------------------


def default_package_name(url: str) -> str:
    host = urlsplit(url).hostname or "app"
    labels = [re.sub(r"[^A-Za-z0-9_]", "_", lab) for lab in reversed(host.split(".")) if lab]
    return ".".join(labels + ["app"])


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Crawl a web app into a PhoneGap Build ZIP bundle.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument("url", nargs="?", default=None, help="http(s) start URL of the app")
    p.add_argument("-o", "--output", type=str, default="app.zip", help="ZIP file to write")
    p.add_argument("--name", type=str, default=None, help="app display name")
    p.add_argument("--package", type=str, default=None, help="app package id")
    p.add_argument("--app-version", type=str, default="1.0.0", help="app version")
    p.add_argument("--description", type=str, default="", help="app description")

    # http
    p.add_argument(
        "--connect-timeout", type=float, default=3.0, help="connect timeout seconds"
    )
    p.add_argument("--read-timeout", type=float, default=10.0, help="read timeout seconds")
    p.add_argument("--retries", type=int, default=0, help="retries per request")
    p.add_argument("--user-agent", type=str, default=USER_AGENT, help="User-Agent header")

    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        if isinstance(cfg, dict):
            flat = dict(cfg)
            for g in ("app", "crawl", "http", "output", "general"):
                if isinstance(cfg.get(g), dict):
                    flat.update(cfg[g])
            parser.set_defaults(**{k.replace("-", "_"): v for k, v in flat.items()})
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    if not args.url or urlsplit(args.url).scheme not in {"http", "https"}:
        print("Invalid URL. Use http:// or https://")
        sys.exit(1)

    settings = Settings(
        connect_timeout=max(0.1, args.connect_timeout),
        read_timeout=max(0.1, args.read_timeout),
        retries=max(0, args.retries),
        user_agent=args.user_agent,
    )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    app = AppDescriptor(
        name=args.name or urlsplit(args.url).hostname or "app",
        start_url=args.url,
        package_name=args.package or default_package_name(args.url),
        version=str(args.app_version),
        description=args.description or "",
    )

    out = Path(args.output)
    ensure_parent_dir(out)
    with open(out, "wb") as fh:
        result = crawl_app(app, settings=settings, fileobj=fh)

    print("Crawl complete")
    print(f"Resources crawled: {result.resource_count}")
    print(f"Files in bundle: {len(result.paths)}")
    print(f"Errors: {len(result.errors)}")
    for err in result.errors:
        print(f"  {err}")
    print(f"Bundle: {out}")


if __name__ == "__main__":
    main()
