"""Tests for project type detection."""

import pytest

from hostly.detector import ProjectType, classify_manifest, detect_project_type


def test_no_manifest_is_static(make_site):
    site = make_site("plain", files={"index.html": "<h1>hi</h1>"})

    detection = detect_project_type(site)

    assert detection.type == ProjectType.STATIC
    assert detection.has_manifest is False
    assert detection.runnable is False


def test_vite_dependency(make_site, vite_manifest):
    detection = detect_project_type(make_site("demo", manifest=vite_manifest))

    assert detection.type == ProjectType.VITE
    assert detection.has_manifest is True
    assert detection.manifest["name"] == "demo"
    assert detection.runnable is True


@pytest.mark.parametrize(
    "manifest, expected",
    [
        ({"scripts": {"dev": "vite --host"}}, ProjectType.VITE),
        ({"devDependencies": {"vite": "5"}, "dependencies": {"next": "14"}}, ProjectType.VITE),
        ({"dependencies": {"next": "14"}, "scripts": {"dev": "next dev"}}, ProjectType.NEXT),
        ({"scripts": {"dev": "next dev"}}, ProjectType.NEXT),
        ({"dependencies": {"express": "4"}}, ProjectType.EXPRESS),
        ({"scripts": {"start": "node server.js"}}, ProjectType.EXPRESS),
        ({"scripts": {"dev": "nodemon app.js"}}, ProjectType.EXPRESS),
        ({"scripts": {"start": "react-scripts start"}}, ProjectType.NODE),
        ({"scripts": {"dev": "webpack serve"}}, ProjectType.NODE),
        ({"scripts": {"build": "tsc"}}, ProjectType.STATIC),
        ({}, ProjectType.STATIC),
    ],
)
def test_classification_order(manifest, expected):
    assert classify_manifest(manifest) == expected


def test_manifest_without_runnable_script(make_site):
    detection = detect_project_type(make_site("lib", manifest={"name": "lib", "scripts": {"test": "jest"}}))

    assert detection.type == ProjectType.STATIC
    assert detection.has_manifest is True
    assert detection.runnable is False


def test_malformed_manifest_degrades_to_static(make_site):
    site = make_site("broken")
    (site / "package.json").write_text("{not json")

    detection = detect_project_type(site)

    assert detection.type == ProjectType.STATIC
    assert detection.has_manifest is False
    assert detection.error


def test_non_object_manifest_degrades_to_static(make_site):
    site = make_site("array")
    (site / "package.json").write_text("[1, 2, 3]")

    detection = detect_project_type(site)

    assert detection.type == ProjectType.STATIC
    assert detection.has_manifest is False


def test_odd_field_types_do_not_raise(make_site):
    manifest = {"scripts": ["dev"], "dependencies": "express", "devDependencies": None}

    detection = detect_project_type(make_site("odd", manifest=manifest))

    assert detection.type == ProjectType.STATIC
    assert detection.has_manifest is True


def test_detection_is_deterministic(make_site, vite_manifest):
    site = make_site("demo", manifest=vite_manifest)

    results = {detect_project_type(site).type for _ in range(5)}

    assert results == {ProjectType.VITE}


def test_merged_dependencies(make_site):
    manifest = {"dependencies": {"express": "4"}, "devDependencies": {"nodemon": "3"}}

    detection = detect_project_type(make_site("api", manifest=manifest))

    assert set(detection.dependencies) == {"express", "nodemon"}
