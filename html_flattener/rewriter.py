"""Import specifier rewriting.

Relative specifiers in ES module sources are replaced by fully-qualified
virtual identifiers (``<virtual_root>/<module path>``) so the bundled modules
can be resolved through an import map instead of the network.

This is a text substitution, not a parse/re-emit. A small tokenizer finds the
boundaries of strings, template literals, regular expression literals and
comments, and import detection only looks at significant tokens. Everything
outside the replaced string literals is preserved byte-for-byte.

Exactly four shapes are recognized::

    import <bindings> from './x.js'
    import './x.js'
    export <bindings> from './x.js'
    import('./x.js')
"""

from dataclasses import dataclass
import re

from html_flattener.errors import ResolutionError
from html_flattener.paths import is_relative_specifier, resolve, virtual_identifier


SHAPE_IMPORT_FROM: str = "import-from"
SHAPE_IMPORT_BARE: str = "import-bare"
SHAPE_EXPORT_FROM: str = "export-from"
SHAPE_DYNAMIC_IMPORT: str = "dynamic-import"


@dataclass(frozen=True, slots=True)
class Token:
    """A significant source token.

    :ivar kind: ``ident``, ``punct``, ``string``, ``template``, ``regex``,
        ``number`` or ``invalid`` (an unterminated literal).
    :ivar start: Start offset (inclusive).
    :ivar end: End offset (exclusive).
    :ivar text: Source text of the token.
    """

    kind: str
    start: int
    end: int
    text: str


@dataclass(frozen=True, slots=True)
class ImportSite:
    """One matched import/export specifier.

    :ivar shape: One of the ``SHAPE_*`` constants.
    :ivar specifier: Specifier value without quotes.
    :ivar quote: Quote character used by the literal.
    :ivar start: Offset of the opening quote.
    :ivar end: Offset just past the closing quote.
    """

    shape: str
    specifier: str
    quote: str
    start: int
    end: int


_IDENT_RE: re.Pattern[str] = re.compile(r"[$\w]+")
_NUMBER_RE: re.Pattern[str] = re.compile(r"\d[\w.]*")

# After these keywords a "/" starts a regular expression, not a division.
_EXPR_KEYWORDS: frozenset[str] = frozenset(
    {
        "return",
        "typeof",
        "instanceof",
        "in",
        "of",
        "new",
        "delete",
        "void",
        "throw",
        "case",
        "do",
        "else",
        "yield",
        "await",
    }
)

# Identifiers that cannot appear at the top level of a binding clause.
_CLAUSE_BREAKERS: frozenset[str] = frozenset(
    {
        "import",
        "export",
        "const",
        "let",
        "var",
        "function",
        "class",
        "async",
        "await",
        "return",
        "if",
        "for",
        "while",
    }
)


def _scan_quoted(source: str, i: int) -> tuple[int, bool]:
    """Scan a single- or double-quoted string literal.

    :param source: Source text.
    :param i: Offset of the opening quote.
    :returns: ``(end, terminated)``.
    """

    quote: str = source[i]
    n: int = len(source)
    j: int = i + 1
    while j < n:
        c: str = source[j]
        if c == "\\":
            j += 2
            continue
        if c == quote:
            return (j + 1, True)
        if c == "\n":
            return (j, False)
        j += 1
    return (n, False)


def _scan_template(source: str, i: int, tokens: list[Token]) -> int:
    """Scan a template literal, tokenizing its ``${...}`` expressions.

    Literal text is emitted as ``template`` tokens; a chunk that opens an
    expression ends with ``${`` and the chunk after it starts with ``}``.
    Expression bodies go through the same tokenizer as ordinary code.

    :param source: Source text.
    :param i: Offset of the opening backtick.
    :param tokens: Token list to append to.
    :returns: End offset (exclusive).
    """

    n: int = len(source)
    start: int = i
    j: int = i + 1
    while j < n:
        c: str = source[j]
        if c == "\\":
            j += 2
            continue
        if c == "`":
            tokens.append(Token("template", start, j + 1, source[start : j + 1]))
            return j + 1
        if c == "$" and source.startswith("{", j + 1) is True:
            tokens.append(Token("template", start, j + 2, source[start : j + 2]))
            j = _tokenize_span(source, j + 2, tokens, in_template_expr=True)
            if j >= n:
                return n
            # j is at the "}" that closes the expression
            start = j
            j += 1
            continue
        j += 1
    tokens.append(Token("template", start, n, source[start:n]))
    return n


def _scan_regex(source: str, i: int) -> int | None:
    """Scan a regular expression literal.

    :param source: Source text.
    :param i: Offset of the opening slash.
    :returns: End offset, or ``None`` if this is not a well-formed regex literal.
    """

    n: int = len(source)
    j: int = i + 1
    in_class: bool = False
    while j < n:
        c: str = source[j]
        if c == "\\":
            j += 2
            continue
        if c == "\n":
            return None
        if in_class is True:
            if c == "]":
                in_class = False
        elif c == "[":
            in_class = True
        elif c == "/":
            j += 1
            while j < n and source[j].isalpha() is True:
                j += 1
            return j
        j += 1
    return None


def _regex_allowed(tokens: list[Token]) -> bool:
    """Decide whether a ``/`` at this point starts a regex literal.

    :param tokens: Tokens seen so far.
    :returns: ``True`` if a regex literal may start here.
    """

    if len(tokens) == 0:
        return True
    prev: Token = tokens[-1]
    if prev.kind == "ident":
        return prev.text in _EXPR_KEYWORDS
    if prev.kind == "punct":
        return prev.text not in (")", "]")
    if prev.kind == "template":
        return prev.text.endswith("${")
    return False


def _tokenize_span(source: str, i: int, tokens: list[Token], *, in_template_expr: bool) -> int:
    """Tokenize from ``i`` to the end of the source or of a template expression.

    :param source: Source text.
    :param i: Start offset.
    :param tokens: Token list to append to.
    :param in_template_expr: Stop at the unmatched ``}`` that closes a ``${``.
    :returns: Offset of that closing ``}``, or ``len(source)``.
    """

    n: int = len(source)
    depth: int = 0
    while i < n:
        ch: str = source[i]
        if ch.isspace() is True:
            i += 1
            continue

        if ch == "/":
            nxt: str = source[i + 1] if i + 1 < n else ""
            if nxt == "/":
                nl: int = source.find("\n", i)
                i = n if nl < 0 else nl
                continue
            if nxt == "*":
                close: int = source.find("*/", i + 2)
                i = n if close < 0 else close + 2
                continue
            if _regex_allowed(tokens) is True:
                regex_end: int | None = _scan_regex(source, i)
                if regex_end is not None:
                    tokens.append(Token("regex", i, regex_end, source[i:regex_end]))
                    i = regex_end
                    continue
            tokens.append(Token("punct", i, i + 1, ch))
            i += 1
            continue

        if ch == "'" or ch == '"':
            end, terminated = _scan_quoted(source, i)
            kind: str = "string" if terminated is True else "invalid"
            tokens.append(Token(kind, i, end, source[i:end]))
            i = end
            continue

        if ch == "`":
            i = _scan_template(source, i, tokens)
            continue

        if ch.isdigit() is True:
            m_num = _NUMBER_RE.match(source, i)
            num_end: int = m_num.end() if m_num is not None else i + 1
            tokens.append(Token("number", i, num_end, source[i:num_end]))
            i = num_end
            continue

        m_ident = _IDENT_RE.match(source, i)
        if m_ident is not None:
            tokens.append(Token("ident", i, m_ident.end(), m_ident.group(0)))
            i = m_ident.end()
            continue

        if in_template_expr is True:
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    return i
                depth -= 1
        tokens.append(Token("punct", i, i + 1, ch))
        i += 1
    return n


def tokenize(source: str) -> list[Token]:
    """Split JavaScript source into significant tokens.

    Whitespace and comments are dropped. Punctuators are emitted one character
    at a time, which is all import detection needs. Template literals are
    split around their ``${...}`` expressions, whose contents are tokenized
    like any other code.

    :param source: Module source text.
    :returns: Tokens in source order.
    """

    tokens: list[Token] = []
    _tokenize_span(source, 0, tokens, in_template_expr=False)
    return tokens


def _at(tokens: list[Token], idx: int) -> Token | None:
    if idx < len(tokens):
        return tokens[idx]
    return None


def _is_punct(token: Token | None, text: str) -> bool:
    return token is not None and token.kind == "punct" and token.text == text


def _site(shape: str, token: Token) -> ImportSite:
    return ImportSite(
        shape=shape,
        specifier=token.text[1:-1],
        quote=token.text[0],
        start=token.start,
        end=token.end,
    )


def _match_from_clause(tokens: list[Token], start: int, shape: str) -> ImportSite | None:
    """Match ``<bindings> from '<specifier>'`` beginning at ``tokens[start]``.

    Bindings may be a default name, ``* as ns``, a braced list, or a default
    name followed by one of the others. Anything else is not a match.

    :param tokens: Token list.
    :param start: Index of the first binding token.
    :param shape: Shape recorded on a match.
    :returns: Matched site or ``None``.
    """

    depth: int = 0
    closed_brace: bool = False
    j: int = start
    while j < len(tokens):
        t: Token = tokens[j]
        if t.kind == "ident":
            if depth == 0:
                nt: Token | None = _at(tokens, j + 1)
                if t.text == "from" and j > start and nt is not None and nt.kind == "string":
                    return _site(shape, nt)
                if closed_brace is True or t.text in _CLAUSE_BREAKERS:
                    return None
            j += 1
            continue
        if t.kind == "string" and depth > 0:
            j += 1
            continue
        if t.kind != "punct" or closed_brace is True:
            return None
        if t.text == "{":
            depth += 1
        elif t.text == "}":
            depth -= 1
            if depth < 0:
                return None
            if depth == 0:
                closed_brace = True
        elif t.text != "," and t.text != "*":
            return None
        j += 1
    return None


def _match_import(tokens: list[Token], idx: int) -> ImportSite | None:
    nxt: Token | None = _at(tokens, idx + 1)
    if nxt is None:
        return None
    if nxt.kind == "string":
        return _site(SHAPE_IMPORT_BARE, nxt)
    if _is_punct(nxt, "(") is True:
        arg: Token | None = _at(tokens, idx + 2)
        after: Token | None = _at(tokens, idx + 3)
        if arg is not None and arg.kind == "string":
            if _is_punct(after, ")") is True or _is_punct(after, ",") is True:
                return _site(SHAPE_DYNAMIC_IMPORT, arg)
        return None
    if nxt.kind == "ident" or _is_punct(nxt, "{") is True or _is_punct(nxt, "*") is True:
        return _match_from_clause(tokens, idx + 1, SHAPE_IMPORT_FROM)
    return None


def _match_export(tokens: list[Token], idx: int) -> ImportSite | None:
    nxt: Token | None = _at(tokens, idx + 1)
    if _is_punct(nxt, "{") is True or _is_punct(nxt, "*") is True:
        return _match_from_clause(tokens, idx + 1, SHAPE_EXPORT_FROM)
    return None


def find_imports(source: str) -> list[ImportSite]:
    """Find every import/export specifier literal in a module.

    :param source: Module source text.
    :returns: Matched sites in source order.
    """

    tokens: list[Token] = tokenize(source)
    sites: list[ImportSite] = []
    seen: set[int] = set()
    for idx, tok in enumerate(tokens):
        if tok.kind != "ident" or (tok.text != "import" and tok.text != "export"):
            continue
        if idx > 0 and _is_punct(tokens[idx - 1], ".") is True:
            # obj.import(...) / import.meta style member access
            continue

        site: ImportSite | None
        if tok.text == "import":
            site = _match_import(tokens, idx)
        else:
            site = _match_export(tokens, idx)
        if site is None or site.start in seen:
            continue
        seen.add(site.start)
        sites.append(site)
    return sites


def rewrite(path: str, source: str, *, virtual_root: str) -> str:
    """Rewrite relative specifiers into virtual identifiers.

    :param path: Normalized module path of ``source``.
    :param source: Module source text.
    :param virtual_root: Virtual root prefix.
    :returns: Rewritten source.
    :raises ResolutionError: If a specifier is neither relative nor already virtual,
        or if it escapes the virtual root.
    """

    prefix: str = f"{virtual_root}/"
    pieces: list[str] = []
    last: int = 0
    for site in find_imports(source):
        if site.specifier.startswith(prefix) is True:
            continue
        if is_relative_specifier(site.specifier) is False:
            raise ResolutionError(
                path,
                site.specifier,
                "non-relative specifier; the bundled module set must be closed",
            )
        target: str = resolve(path, site.specifier)
        pieces.append(source[last : site.start])
        pieces.append(f"{site.quote}{virtual_identifier(virtual_root, target)}{site.quote}")
        last = site.end
    pieces.append(source[last:])
    return "".join(pieces)


def import_targets(path: str, source: str, *, virtual_root: str) -> list[str]:
    """List the module paths a source imports.

    Both relative specifiers and already-qualified virtual identifiers count,
    so raw and rewritten sources give the same answer.

    :param path: Normalized module path of ``source``.
    :param source: Module source text.
    :param virtual_root: Virtual root prefix.
    :returns: Module paths, in source order, without duplicates.
    :raises ResolutionError: If a relative specifier escapes the virtual root.
    """

    prefix: str = f"{virtual_root}/"
    targets: list[str] = []
    for site in find_imports(source):
        target: str
        if is_relative_specifier(site.specifier) is True:
            target = resolve(path, site.specifier)
        elif site.specifier.startswith(prefix) is True:
            target = site.specifier[len(prefix) :]
        else:
            continue
        if target not in targets:
            targets.append(target)
    return targets
