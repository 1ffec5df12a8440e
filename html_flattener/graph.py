"""Module graph construction and closure validation."""

from collections.abc import Callable
from dataclasses import dataclass
import logging

from html_flattener.codec import to_data_url
from html_flattener.errors import ResolutionError
from html_flattener.paths import is_relative_specifier, virtual_identifier
from html_flattener.rewriter import find_imports, import_targets, rewrite


@dataclass(frozen=True, slots=True)
class ModuleGraph:
    """A closed set of rewritten modules.

    :ivar module_list: Module paths in registration order.
    :ivar rewritten_sources: Module path to rewritten source.
    :ivar import_mapping: Virtual identifier to inline ``data:`` URL.
    :ivar virtual_root: Virtual identifier prefix used for rewriting.
    :ivar entry: Entry module path.
    """

    module_list: tuple[str, ...]
    rewritten_sources: dict[str, str]
    import_mapping: dict[str, str]
    virtual_root: str
    entry: str

    def identifier(self, path: str) -> str:
        return virtual_identifier(self.virtual_root, path)


def build_module_graph(
    module_list: list[str],
    sources: dict[str, str],
    *,
    virtual_root: str,
    entry: str | None = None,
) -> ModuleGraph:
    """Rewrite every module and register it under its virtual identifier.

    :param module_list: Module paths to include.
    :param sources: Acquired module sources.
    :param virtual_root: Virtual identifier prefix.
    :param entry: Entry module; defaults to the first listed module.
    :returns: Module graph.
    :raises ResolutionError: If a module has no source, a specifier is invalid,
        or the entry is not part of the module list.
    """

    if len(module_list) == 0:
        raise ResolutionError("<entry>", "<none>", "module list is empty")
    entry_path: str = entry if entry is not None else module_list[0]
    if entry_path not in module_list:
        raise ResolutionError(entry_path, entry_path, "entry module is not in the module list")

    rewritten: dict[str, str] = {}
    mapping: dict[str, str] = {}
    for path in module_list:
        source: str | None = sources.get(path)
        if source is None:
            raise ResolutionError(path, path, "listed module has no acquired source")
        code: str = rewrite(path, source, virtual_root=virtual_root)
        rewritten[path] = code
        mapping[virtual_identifier(virtual_root, path)] = to_data_url(code)

    return ModuleGraph(
        module_list=tuple(module_list),
        rewritten_sources=rewritten,
        import_mapping=mapping,
        virtual_root=virtual_root,
        entry=entry_path,
    )


def unresolved_imports(graph: ModuleGraph) -> list[tuple[str, str]]:
    """List import targets that the import mapping does not cover.

    :param graph: Module graph.
    :returns: ``(module path, specifier)`` pairs, in module order.
    """

    missing: list[tuple[str, str]] = []
    for path in graph.module_list:
        for site in find_imports(graph.rewritten_sources[path]):
            if site.specifier not in graph.import_mapping:
                missing.append((path, site.specifier))
    return missing


def validate_closure(graph: ModuleGraph) -> None:
    """Check that every rewritten import resolves inside the import mapping.

    :param graph: Module graph.
    :raises ResolutionError: On the first import that would fail at load time.
    """

    for path, specifier in unresolved_imports(graph):
        if is_relative_specifier(specifier) is True:
            raise ResolutionError(path, specifier, "relative specifier survived rewriting")
        raise ResolutionError(
            path,
            specifier,
            "import target is not in the module list; add it or use --discover",
        )


def discover_module_list(
    entry: str,
    fetch: Callable[[str], str],
    *,
    virtual_root: str,
    logger: logging.Logger | None = None,
) -> tuple[list[str], dict[str, str]]:
    """Walk imports transitively from the entry module.

    :param entry: Normalized entry module path.
    :param fetch: Returns the source for a module path.
    :param virtual_root: Virtual root prefix (for already-rewritten sources).
    :param logger: Optional logger for debug output.
    :returns: ``(module list in discovery order, sources by path)``.
    :raises ResolutionError: If an import escapes the virtual root.
    :raises AcquisitionError: If ``fetch`` fails for a reachable module.
    """

    if logger is None:
        logger = logging.getLogger("html_flattener")

    order: list[str] = []
    sources: dict[str, str] = {}
    queue: list[str] = [entry]
    while len(queue) > 0:
        path: str = queue.pop(0)
        if path in sources:
            continue
        source: str = fetch(path)
        sources[path] = source
        order.append(path)
        for target in import_targets(path, source, virtual_root=virtual_root):
            if target not in sources and target not in queue:
                queue.append(target)
        if logger.isEnabledFor(logging.DEBUG) is True:
            logger.debug(f"html-flattener: discovered {path}")
    return order, sources
