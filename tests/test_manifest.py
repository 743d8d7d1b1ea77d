"""Tests for config.xml generation and the archive builder."""

import io
import zipfile

import pytest
from lxml import etree

from app_crawler import (
    GAP_NS,
    WIDGETS_NS,
    AppDescriptor,
    ArchiveBuilder,
    Settings,
    build_config_xml,
    extract_config_fragment,
)

W = "{%s}" % WIDGETS_NS
G = "{%s}" % GAP_NS


@pytest.fixture
def demo():
    return AppDescriptor(
        name="Demo",
        start_url="http://site.example/app",
        package_name="example.site.demo",
        version="2.0",
        description="Offline demo",
    )


class TestBuildConfigXml:
    def test_minimal(self, demo):
        data = build_config_xml(demo)
        assert data.startswith(b"<?xml")
        root = etree.fromstring(data)

        assert root.tag == W + "widget"
        assert root.nsmap == {None: WIDGETS_NS, "gap": GAP_NS}
        assert root.get("id") == "example.site.demo"
        assert root.get("version") == "2.0"
        assert [child.tag for child in root] == [W + "name", W + "description"]
        assert root.findtext(W + "description") == "Offline demo"

    def test_icon_and_splash(self, demo):
        root = etree.fromstring(build_config_xml(demo, has_icon=True, has_splash=True))
        assert root.find(W + "icon").get("src") == "icon.png"
        assert root.find(G + "splash").get("src") == "splash.png"

    def test_custom_icon_name(self, demo):
        settings = Settings(icon="logo.png")
        root = etree.fromstring(build_config_xml(demo, has_icon=True, settings=settings))
        assert root.find(W + "icon").get("src") == "logo.png"

    def test_extra_fragment_appended_last(self, demo):
        extra = '<preference name="fullscreen" value="true"/><gap:plugin name="geo"/>'
        root = etree.fromstring(build_config_xml(demo, extra, has_icon=True))
        tags = [child.tag for child in root]
        assert tags == [W + "name", W + "description", W + "icon", W + "preference", G + "plugin"]

    def test_output_is_indented(self, demo):
        data = build_config_xml(demo, has_icon=True).decode("utf-8")
        assert "\n     <name>Demo</name>" in data

    def test_unparsable_fragment_still_builds(self, demo):
        root = etree.fromstring(build_config_xml(demo, "<<<not xml"))
        assert root.findtext(W + "name") == "Demo"


class TestExtractConfigFragment:
    def test_widget_children(self):
        body = (
            b'<?xml version="1.0"?>'
            b'<widget xmlns="http://www.w3.org/ns/widgets" '
            b'xmlns:gap="http://phonegap.com/ns/1.0">'
            b'<preference name="orientation" value="portrait"/>'
            b'<gap:plugin name="camera"/></widget>'
        )
        fragment = extract_config_fragment(body)
        assert "preference" in fragment
        assert "plugin" in fragment
        assert "<widget" not in fragment
        assert "</widget>" not in fragment

    def test_not_a_widget(self):
        assert extract_config_fragment(b"<html><body>404</body></html>") is None

    def test_empty_widget(self):
        assert extract_config_fragment(b"<widget/>") is None

    def test_garbage(self):
        assert extract_config_fragment(b"not xml at all") is None


class TestArchiveBuilder:
    def test_entries_and_comment(self):
        builder = ArchiveBuilder("Content for Demo")
        assert builder.add("/index.html", b"<html></html>")
        assert builder.add("/img/a.png", b"png")
        data = builder.close()

        z = zipfile.ZipFile(io.BytesIO(data))
        assert z.namelist() == ["index.html", "img/a.png"]
        assert z.comment == b"Content for Demo"
        assert z.read("img/a.png") == b"png"
        assert "/index.html" in builder

    def test_duplicate_path_keeps_first(self):
        builder = ArchiveBuilder()
        assert builder.add("/a.txt", b"first")
        assert builder.add("/a.txt", b"second") is False
        z = zipfile.ZipFile(io.BytesIO(builder.close()))
        assert z.read("a.txt") == b"first"

    def test_deterministic(self):
        def build():
            b = ArchiveBuilder("c")
            b.add("/x.css", b"x")
            return b.close()

        assert build() == build()

    def test_closed_archive_rejects_entries(self):
        builder = ArchiveBuilder()
        builder.close()
        with pytest.raises(ValueError):
            builder.add("/late.txt", b"")

    def test_file_object_target(self):
        buf = io.BytesIO()
        builder = ArchiveBuilder("c", buf)
        builder.add("/a.txt", b"a")
        assert builder.close() is None
        assert zipfile.ZipFile(buf).read("a.txt") == b"a"
