"""Export configuration.

Resolves user-supplied CLI arguments into a frozen :class:`BundleConfig`:

- The module list comes from a plain text file, one module path per line,
  with ``#`` comments (the same shape as a requirements file).
- Every module path is normalized up front so later phases can use paths as
  stable map keys.
"""

from dataclasses import dataclass
import pathlib
import re

from html_flattener.errors import ResolutionError
from html_flattener.paths import normalize_module_path


DEFAULT_VIRTUAL_ROOT: str = "__m__"
DEFAULT_STYLESHEET_PATH: str = "assets/styles.css"
DEFAULT_LIBRARY_URL: str = "https://cdn.jsdelivr.net/npm/html2canvas@1.4.1/dist/html2canvas.min.js"
DEFAULT_STORAGE_KEY: str = "dataFlowDiagram"
DEFAULT_BRAND: str = "Data Flow Designer"


class ConfigError(ValueError):
    """Raised when export arguments cannot be resolved into a valid config."""


@dataclass(frozen=True, slots=True)
class BundleConfig:
    """Export configuration.

    :ivar root: Hosted location of the app (directory path or http(s) URL).
    :ivar module_list: Normalized module paths, entry module first.
    :ivar entry: Entry module path.
    :ivar virtual_root: Prefix for virtual module identifiers.
    :ivar stylesheet_path: Stylesheet path relative to ``root``.
    :ivar library_url: Optional third-party library URL or file path.
    :ivar storage_key: Persisted storage key seeded by the bootstrap.
    :ivar title: Optional title override (otherwise taken from the diagram).
    :ivar brand: Application name shown in the title bar and document title.
    :ivar output: Optional output path; derived from the title when omitted.
    :ivar discover: Discover the module list from the entry's imports.
    :ivar skeleton_path: Optional HTML fragment replacing the built-in DOM skeleton.
    :ivar max_workers: Concurrent fetch limit for cold acquisition.
    """

    root: str
    module_list: tuple[str, ...]
    entry: str
    virtual_root: str = DEFAULT_VIRTUAL_ROOT
    stylesheet_path: str = DEFAULT_STYLESHEET_PATH
    library_url: str | None = DEFAULT_LIBRARY_URL
    storage_key: str = DEFAULT_STORAGE_KEY
    title: str | None = None
    brand: str = DEFAULT_BRAND
    output: pathlib.Path | None = None
    discover: bool = False
    skeleton_path: pathlib.Path | None = None
    max_workers: int = 8


_VIRTUAL_ROOT_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")
_STORAGE_KEY_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_.:-]+$")


def validate_storage_key(storage_key: str) -> str:
    """Check a persisted storage key.

    :param storage_key: Key the bootstrap seeds in browser storage.
    :returns: The key, unchanged.
    :raises ConfigError: If it uses characters outside ``[A-Za-z0-9_.:-]``.
    """

    if _STORAGE_KEY_RE.match(storage_key) is None:
        raise ConfigError(f"invalid storage key {storage_key!r}")
    return storage_key


def read_module_list(path: pathlib.Path) -> list[str]:
    """Read a module list file.

    :param path: Module list file (one path per line, ``#`` comments allowed).
    :returns: Normalized module paths in file order, without duplicates.
    :raises ConfigError: If the file is missing or contains an invalid path.
    """

    if path.is_file() is False:
        raise ConfigError(f"module list file does not exist: {path}")

    modules: list[str] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        text: str = line.split("#", 1)[0].strip()
        if len(text) == 0:
            continue
        try:
            normalized: str = normalize_module_path(text)
        except ResolutionError as e:
            raise ConfigError(f"{path}:{lineno}: invalid module path {text!r}: {e}") from e
        if normalized not in modules:
            modules.append(normalized)
    return modules


def resolve_bundle_config(
    *,
    root: str,
    module_list_path: pathlib.Path | None,
    entry: str | None,
    discover: bool,
    virtual_root: str = DEFAULT_VIRTUAL_ROOT,
    stylesheet_path: str = DEFAULT_STYLESHEET_PATH,
    library_url: str | None = DEFAULT_LIBRARY_URL,
    storage_key: str = DEFAULT_STORAGE_KEY,
    title: str | None = None,
    brand: str = DEFAULT_BRAND,
    output: pathlib.Path | None = None,
    skeleton_path: pathlib.Path | None = None,
    max_workers: int = 8,
) -> BundleConfig:
    """Resolve user-supplied export arguments into a :class:`BundleConfig`.

    :param root: Hosted location (directory or URL).
    :param module_list_path: Optional module list file.
    :param entry: Optional entry module; defaults to the first listed module.
    :param discover: Discover modules from the entry instead of trusting the list.
    :param virtual_root: Virtual identifier prefix.
    :param stylesheet_path: Stylesheet path relative to ``root``.
    :param library_url: Library URL/path, or ``None`` to skip the library.
    :param storage_key: Persisted storage key.
    :param title: Optional title override.
    :param brand: Application name.
    :param output: Optional output path.
    :param skeleton_path: Optional DOM skeleton fragment file.
    :param max_workers: Concurrent fetch limit.
    :returns: Resolved config.
    :raises ConfigError: If the arguments are inconsistent or invalid.
    """

    if len(root.strip()) == 0:
        raise ConfigError("root must name a directory or an http(s) URL")
    if _VIRTUAL_ROOT_RE.match(virtual_root) is None:
        raise ConfigError(f"invalid virtual root {virtual_root!r}; use letters, digits, '_', '.', '-'")
    validate_storage_key(storage_key)
    if max_workers < 1:
        raise ConfigError(f"max_workers must be at least 1 (got {max_workers})")
    if skeleton_path is not None and skeleton_path.is_file() is False:
        raise ConfigError(f"skeleton file does not exist: {skeleton_path}")

    modules: list[str] = []
    if module_list_path is not None:
        modules = read_module_list(module_list_path)

    entry_path: str
    if entry is not None:
        try:
            entry_path = normalize_module_path(entry)
        except ResolutionError as e:
            raise ConfigError(f"invalid entry module {entry!r}: {e}") from e
    elif len(modules) > 0:
        entry_path = modules[0]
    else:
        raise ConfigError("no entry module: pass --entry or a non-empty module list")

    if discover is False and len(modules) == 0:
        raise ConfigError("a module list is required unless --discover is used")

    # The entry always leads the list so it is registered first.
    ordered: list[str] = [entry_path] + [m for m in modules if m != entry_path]

    return BundleConfig(
        root=root,
        module_list=tuple(ordered),
        entry=entry_path,
        virtual_root=virtual_root,
        stylesheet_path=stylesheet_path,
        library_url=library_url,
        storage_key=storage_key,
        title=title,
        brand=brand,
        output=output,
        discover=discover,
        skeleton_path=skeleton_path,
        max_workers=max_workers,
    )
