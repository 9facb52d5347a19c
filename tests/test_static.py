"""Tests for static site file resolution."""

import pytest

from hostly.errors import NotFound
from hostly.static import StaticSiteServer


@pytest.fixture
def server(cfg):
    return StaticSiteServer(cfg.sites_dir)


@pytest.fixture
def site(make_site):
    return make_site(
        "demo",
        files={
            "index.html": "<h1>home</h1>",
            "app.js": "console.log('hi')",
            "docs/index.html": "<h1>docs</h1>",
            "docs/guide.md": "# guide",
            ".env": "SECRET=1",
        },
    )


def test_serves_matching_file(server, site):
    assert server.resolve("demo", "app.js") == (site / "app.js").resolve()


def test_serves_nested_file(server, site):
    assert server.resolve("demo", "docs/guide.md").read_text() == "# guide"


def test_root_serves_index(server, site):
    assert server.resolve("demo", "").read_text() == "<h1>home</h1>"
    assert server.resolve("demo", "/").read_text() == "<h1>home</h1>"


def test_directory_serves_its_index(server, site):
    assert server.resolve("demo", "docs/").read_text() == "<h1>docs</h1>"


def test_missing_file_falls_back_to_index(server, site):
    assert server.resolve("demo", "nonexistent.js").read_text() == "<h1>home</h1>"
    assert server.resolve("demo", "deep/client/route").read_text() == "<h1>home</h1>"


def test_dotfiles_are_not_served(server, site):
    assert server.resolve("demo", ".env").read_text() == "<h1>home</h1>"


def test_missing_file_without_index(server, make_site):
    make_site("bare", files={"style.css": "body {}"})

    with pytest.raises(NotFound, match="File not found"):
        server.resolve("bare", "missing.css")


def test_unknown_site(server):
    with pytest.raises(NotFound, match="Site not found"):
        server.resolve("ghost", "index.html")


@pytest.mark.parametrize("path", ["../other/secret.txt", "docs/../../other/secret.txt", "..\\other\\secret.txt"])
def test_traversal_is_rejected(server, site, make_site, path):
    make_site("other", files={"secret.txt": "top secret"})

    with pytest.raises(NotFound):
        server.resolve("demo", path)


@pytest.mark.parametrize("name", ["", ".", "..", "a/b"])
def test_invalid_site_names(server, name):
    with pytest.raises(NotFound):
        server.resolve(name, "index.html")


def test_symlink_outside_root_is_not_followed(server, site, tmp_path):
    outside = tmp_path / "outside.txt"
    outside.write_text("outside")
    (site / "link.txt").symlink_to(outside)

    assert server.resolve("demo", "link.txt").read_text() == "<h1>home</h1>"


def test_runnable_site_is_not_served(server, make_site):
    make_site(
        "api",
        manifest={"dependencies": {"express": "4"}, "scripts": {"start": "node server.js"}},
        files={"server.js": "require('express')", "index.html": "<h1>api</h1>"},
    )

    with pytest.raises(NotFound):
        server.resolve("api", "server.js")
    with pytest.raises(NotFound):
        server.resolve("api", "")


def test_manifest_without_scripts_is_still_served(server, make_site):
    make_site("lib", manifest={"name": "lib"}, files={"index.html": "<h1>lib</h1>"})

    assert server.resolve("lib", "package.json").name == "package.json"
