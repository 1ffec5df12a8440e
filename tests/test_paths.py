"""Tests for html_flattener.paths."""

from __future__ import annotations

import pytest

from html_flattener.errors import ResolutionError
from html_flattener.paths import is_relative_specifier, normalize_module_path, resolve, virtual_identifier


def test_resolve_sibling_from_root_module() -> None:
    assert resolve("a.x", "./b.x") == "b.x"


@pytest.mark.parametrize(
    ("from_path", "specifier", "expected"),
    [
        ("src/app.js", "./core/store.js", "src/core/store.js"),
        ("src/ui/Inspector.js", "../core/store.js", "src/core/store.js"),
        ("src/app.js", "./a/./b/../c.js", "src/a/c.js"),
        ("src/services/x.js", "../../lib/y.js", "lib/y.js"),
        ("src/app.js", ".//core//id.js", "src/core/id.js"),
    ],
)
def test_resolve_collapses_segments(from_path: str, specifier: str, expected: str) -> None:
    assert resolve(from_path, specifier) == expected


@pytest.mark.parametrize(
    ("from_path", "specifier"),
    [
        ("a.x", "../b.x"),
        ("src/app.js", "../../outside.js"),
        ("src/app.js", "./../../x.js"),
    ],
)
def test_resolve_refuses_to_ascend_above_root(from_path: str, specifier: str) -> None:
    with pytest.raises(ResolutionError) as excinfo:
        resolve(from_path, specifier)

    assert excinfo.value.path == from_path
    assert excinfo.value.specifier == specifier


@pytest.mark.parametrize("specifier", ["react", "/abs/x.js", "https://cdn.test/x.js", "__m__/src/app.js"])
def test_resolve_rejects_non_relative_specifiers(specifier: str) -> None:
    with pytest.raises(ResolutionError):
        resolve("src/app.js", specifier)


def test_resolve_is_idempotent_for_normalized_paths() -> None:
    path = "src/core/store.js"

    assert resolve(path, "./store.js") == path
    assert normalize_module_path(path) == path
    assert normalize_module_path(normalize_module_path("./src/./core/../core/store.js")) == path


def test_normalize_module_path_rejects_bad_paths() -> None:
    for bad in ["", "   ", "/src/app.js", "../app.js", "src/../.."]:
        with pytest.raises(ResolutionError):
            normalize_module_path(bad)


def test_normalize_module_path_accepts_backslashes() -> None:
    assert normalize_module_path("src\\ui\\Inspector.js") == "src/ui/Inspector.js"


def test_is_relative_specifier() -> None:
    assert is_relative_specifier("./x.js") is True
    assert is_relative_specifier("../x.js") is True
    assert is_relative_specifier(".x.js") is False
    assert is_relative_specifier("x.js") is False


def test_virtual_identifier() -> None:
    assert virtual_identifier("__m__", "src/app.js") == "__m__/src/app.js"
