"""Tests for html_flattener.collaborators."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from conftest import HostedApp, RecordingSession
from html_flattener.collaborators import (
    diagram_title,
    get_current_diagram_snapshot,
    get_stylesheet_text,
    get_third_party_library_text,
    safe_filename,
    serialize_diagram,
)
from html_flattener.errors import AcquisitionError
from html_flattener.sources import ExecutionContext, SourceAcquirer, SourceManifest


def _warm_context(tmp_path: Path, manifest: SourceManifest, *, css: str = "") -> ExecutionContext:
    artifact = tmp_path / "prior.html"
    artifact.write_text(
        "<html><head>"
        f'<style id="__INLINE_CSS__">{css}</style>'
        "</head><body>"
        f'<script id="__SELF_MODULES__" type="application/json">{manifest.to_json()}</script>'
        "</body></html>",
        encoding="utf-8",
    )
    return ExecutionContext.from_artifact(artifact)


def _manifest(*, css: str = "", library: str = "") -> SourceManifest:
    return SourceManifest.from_sources(
        {"a.js": "export {};"},
        entry="a.js",
        virtual_root="__m__",
        stylesheet_text=css,
        library_text=library,
    )


def test_snapshot_defaults_to_empty_diagram() -> None:
    snapshot = get_current_diagram_snapshot(None)

    assert json.loads(snapshot)["nodes"] == []
    assert diagram_title(snapshot) == "Untitled diagram"


def test_snapshot_compact_and_pretty(hosted_app: HostedApp) -> None:
    compact = get_current_diagram_snapshot(hosted_app.diagram)
    pretty = get_current_diagram_snapshot(hosted_app.diagram, pretty=True)

    assert "\n" not in compact
    assert '\n  "version": 1' in pretty
    assert json.loads(compact) == json.loads(pretty)
    assert "Ünïcødé" in compact


def test_snapshot_rejects_invalid_json(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{nodes: [", encoding="utf-8")

    with pytest.raises(AcquisitionError):
        get_current_diagram_snapshot(broken)
    with pytest.raises(AcquisitionError):
        get_current_diagram_snapshot(tmp_path / "missing.json")


@pytest.mark.parametrize(
    "text",
    [
        '{"x": 1e999}',
        '{"y": NaN}',
        '{"z": [1, -Infinity]}',
        '{"w": Infinity}',
    ],
)
def test_snapshot_rejects_non_finite_numbers(text: str) -> None:
    with pytest.raises(AcquisitionError) as excinfo:
        get_current_diagram_snapshot(text)

    assert excinfo.value.path == "diagram snapshot"


def test_serialize_diagram_refuses_non_finite_values() -> None:
    with pytest.raises(AcquisitionError):
        serialize_diagram({"x": float("inf")})


def test_snapshot_keeps_large_finite_numbers() -> None:
    snapshot = get_current_diagram_snapshot('{"x": 1e308, "y": -2.5e-300}')

    assert json.loads(snapshot) == {"x": 1e308, "y": -2.5e-300}


def test_diagram_title_missing_or_blank() -> None:
    assert diagram_title('{"title": "  "}') is None
    assert diagram_title("[1, 2]") is None
    assert diagram_title("not json") is None


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("My Diagram", "my-diagram"),
        ('My <Diagram> & "Co"', "my-diagram-co"),
        ("  release_v1.2  ", "release_v1.2"),
        ("✓✓✓", "diagram"),
        (None, "diagram"),
    ],
)
def test_safe_filename(title: str | None, expected: str) -> None:
    assert safe_filename(title) == expected


def test_stylesheet_cold_is_fetched(hosted_app: HostedApp) -> None:
    acquirer = SourceAcquirer(ExecutionContext.hosted(str(hosted_app.root)))

    text = get_stylesheet_text(acquirer, stylesheet_path="./assets/styles.css")

    assert text == (hosted_app.root / "assets/styles.css").read_text(encoding="utf-8")


def test_stylesheet_cold_failure_is_fatal(hosted_app: HostedApp) -> None:
    acquirer = SourceAcquirer(ExecutionContext.hosted(str(hosted_app.root)))

    with pytest.raises(AcquisitionError):
        get_stylesheet_text(acquirer, stylesheet_path="assets/missing.css")


def test_stylesheet_warm_prefers_manifest_then_inline(tmp_path: Path) -> None:
    from_manifest = SourceAcquirer(_warm_context(tmp_path, _manifest(css="a{}"), css="b{}"))
    from_inline = SourceAcquirer(_warm_context(tmp_path, _manifest(), css="b{}"))
    nothing = SourceAcquirer(_warm_context(tmp_path, _manifest()))

    assert get_stylesheet_text(from_manifest, stylesheet_path="assets/styles.css") == "a{}"
    assert get_stylesheet_text(from_inline, stylesheet_path="assets/styles.css") == "b{}"
    assert get_stylesheet_text(nothing, stylesheet_path="assets/styles.css") == ""


def test_library_from_local_file(tmp_path: Path, hosted_app: HostedApp) -> None:
    lib = tmp_path / "html2canvas.min.js"
    lib.write_text("window.html2canvas = function () {};", encoding="utf-8")
    acquirer = SourceAcquirer(ExecutionContext.hosted(str(hosted_app.root)))

    library = get_third_party_library_text(acquirer, library_url=str(lib))

    assert library.degraded is False
    assert library.text == "window.html2canvas = function () {};"


def test_library_failure_degrades_instead_of_failing(
    hosted_app: HostedApp,
    offline_session: RecordingSession,
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("flattener-tests")
    acquirer = SourceAcquirer(ExecutionContext.hosted(str(hosted_app.root)), session=offline_session)

    with caplog.at_level(logging.WARNING, logger="flattener-tests"):
        library = get_third_party_library_text(
            acquirer,
            library_url="https://cdn.test/html2canvas.min.js",
            logger=logger,
        )

    assert library.degraded is True
    assert library.text == ""
    assert offline_session.requested == ["https://cdn.test/html2canvas.min.js"]
    assert "raster-export" in caplog.text


def test_library_disabled_is_degraded(hosted_app: HostedApp) -> None:
    acquirer = SourceAcquirer(ExecutionContext.hosted(str(hosted_app.root)))

    assert get_third_party_library_text(acquirer, library_url=None).degraded is True


def test_library_warm_comes_from_manifest(tmp_path: Path, offline_session: RecordingSession) -> None:
    embedded = SourceAcquirer(_warm_context(tmp_path, _manifest(library="lib();")), session=offline_session)

    library = get_third_party_library_text(embedded, library_url="https://cdn.test/lib.js")

    assert library.text == "lib();"
    assert library.degraded is False
    assert offline_session.requested == []
