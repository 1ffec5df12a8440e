"""Tests for html_flattener.rewriter."""

from __future__ import annotations

import pytest

from html_flattener.errors import ResolutionError
from html_flattener.rewriter import (
    SHAPE_DYNAMIC_IMPORT,
    SHAPE_EXPORT_FROM,
    SHAPE_IMPORT_BARE,
    SHAPE_IMPORT_FROM,
    find_imports,
    import_targets,
    rewrite,
)


def _rw(source: str, path: str = "src/app.js") -> str:
    return rewrite(path, source, virtual_root="__m__")


@pytest.mark.parametrize(
    ("source", "expected", "shape"),
    [
        (
            "import { f } from './b.js';",
            "import { f } from '__m__/src/b.js';",
            SHAPE_IMPORT_FROM,
        ),
        (
            "import './side.js';",
            "import '__m__/src/side.js';",
            SHAPE_IMPORT_BARE,
        ),
        (
            'export { a, b as c } from "../lib/x.js";',
            'export { a, b as c } from "__m__/lib/x.js";',
            SHAPE_EXPORT_FROM,
        ),
        (
            "const m = await import('./lazy.js');",
            "const m = await import('__m__/src/lazy.js');",
            SHAPE_DYNAMIC_IMPORT,
        ),
    ],
)
def test_rewrites_each_import_shape(source: str, expected: str, shape: str) -> None:
    sites = find_imports(source)

    assert [s.shape for s in sites] == [shape]
    assert _rw(source) == expected


def test_default_namespace_and_mixed_bindings() -> None:
    source = (
        "import Store from './store.js';\n"
        "import * as ids from './ids.js';\n"
        "import def, { a as b } from './mixed.js';\n"
        "export * from './all.js';\n"
        "export * as ns from './ns.js';\n"
    )

    assert _rw(source) == (
        "import Store from '__m__/src/store.js';\n"
        "import * as ids from '__m__/src/ids.js';\n"
        "import def, { a as b } from '__m__/src/mixed.js';\n"
        "export * from '__m__/src/all.js';\n"
        "export * as ns from '__m__/src/ns.js';\n"
    )


def test_multiline_binding_list() -> None:
    source = "import {\n  alpha,\n  beta,\n} from './multi.js';\n"

    assert _rw(source) == "import {\n  alpha,\n  beta,\n} from '__m__/src/multi.js';\n"


def test_from_inside_specifier_and_bindings() -> None:
    source = "import { from } from './from.js';\nimport x from './from/x.js';\n"

    assert _rw(source) == (
        "import { from } from '__m__/src/from.js';\n"
        "import x from '__m__/src/from/x.js';\n"
    )


def test_preserves_quote_character_and_nested_quotes() -> None:
    source = "import q from \"./it's.js\";\nimport r from './say \"hi\".js';\n"

    assert _rw(source) == (
        "import q from \"__m__/src/it's.js\";\n"
        "import r from '__m__/src/say \"hi\".js';\n"
    )


def test_everything_outside_specifiers_is_byte_for_byte() -> None:
    source = "import   {a}\t from   './x.js'  ;  \r\n// trailing\r\n"

    assert _rw(source) == "import   {a}\t from   '__m__/src/x.js'  ;  \r\n// trailing\r\n"


@pytest.mark.parametrize(
    "source",
    [
        "// import y from './commented.js'\n",
        "/* import('./block.js') */\n",
        "const s = \"import z from './inside-string.js'\";\n",
        "const t = `import('./tpl.js') ${x}`;\n",
        "const re = /import '.\\/x.js'/g;\n",
        "const url = new URL('./asset.png', import.meta.url);\n",
        "loader.import('./method.js');\n",
        "export const answer = 42;\nexport default function main() {}\n",
        "const fn = (x) => x.from;\n",
    ],
)
def test_non_imports_are_untouched(source: str) -> None:
    assert find_imports(source) == []
    assert _rw(source) == source


def test_division_is_not_mistaken_for_regex() -> None:
    source = "const half = total / 2; import './after.js'; const q = a / b;\n"

    assert _rw(source) == "const half = total / 2; import '__m__/src/after.js'; const q = a / b;\n"


def test_rewrite_is_idempotent() -> None:
    source = (
        "import { store } from './core/store.js';\n"
        "import '../shared/polyfill.js';\n"
        "export * from './core/ids.js';\n"
        "const lazy = () => import(\"./services/x.js\");\n"
    )

    once = _rw(source)

    assert _rw(once) == once
    assert "./" not in once


@pytest.mark.parametrize("specifier", ["react", "/abs/x.js", "https://cdn.test/lib.js"])
def test_non_relative_specifier_raises(specifier: str) -> None:
    source = f"import lib from '{specifier}';\n"

    with pytest.raises(ResolutionError) as excinfo:
        _rw(source)

    assert excinfo.value.path == "src/app.js"
    assert excinfo.value.specifier == specifier


def test_escaping_the_root_raises() -> None:
    with pytest.raises(ResolutionError):
        _rw("import '../../outside.js';\n")


def test_import_targets_reads_raw_and_rewritten_sources_alike() -> None:
    source = "import a from './a.js';\nimport './b.js';\nexport * from './a.js';\n"

    raw = import_targets("src/app.js", source, virtual_root="__m__")
    rewritten = import_targets("src/app.js", _rw(source), virtual_root="__m__")

    assert raw == ["src/a.js", "src/b.js"]
    assert rewritten == raw


def test_import_targets_ignores_other_specifiers() -> None:
    source = "import x from 'bare';\nimport y from '__other__/y.js';\n"

    assert import_targets("src/app.js", source, virtual_root="__m__") == []


def test_regex_with_quote_inside_template_expression() -> None:
    source = (
        "const h = (n) => `<b>${n.replace(/'/g, '&#39;')}</b>`;\n"
        "export const load = () => import('./lazy.js');\n"
    )

    assert [s.specifier for s in find_imports(source)] == ["./lazy.js"]
    assert _rw(source) == (
        "const h = (n) => `<b>${n.replace(/'/g, '&#39;')}</b>`;\n"
        "export const load = () => import('__m__/src/lazy.js');\n"
    )


def test_dynamic_import_inside_template_expression() -> None:
    source = "const t = `${await import('./z.js')}`;\n"

    sites = find_imports(source)

    assert [s.shape for s in sites] == [SHAPE_DYNAMIC_IMPORT]
    assert _rw(source) == "const t = `${await import('__m__/src/z.js')}`;\n"


def test_template_expressions_with_braces_and_nesting() -> None:
    source = (
        "const a = `x${ {k: 1}.k }y${`in${import('./deep.js')}`}z`;\n"
        "const b = `${total}` / 2; import './after.js';\n"
    )

    once = _rw(source)

    assert once == (
        "const a = `x${ {k: 1}.k }y${`in${import('__m__/src/deep.js')}`}z`;\n"
        "const b = `${total}` / 2; import '__m__/src/after.js';\n"
    )
    assert _rw(once) == once
