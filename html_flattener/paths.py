"""Virtual module path helpers.

Module paths are POSIX-style, relative to a virtual root (e.g. ``src/app.js``)
and never contain ``.`` or ``..`` segments once normalized. Nothing here
touches the filesystem.
"""

from html_flattener.errors import ResolutionError


def is_relative_specifier(specifier: str) -> bool:
    """Check if an import specifier is relative (``./`` or ``../``).

    :param specifier: Raw specifier text (without quotes).
    :returns: ``True`` if it is relative.
    """

    return specifier.startswith("./") is True or specifier.startswith("../") is True


def _collapse(*, path: str, origin: str, specifier: str) -> str:
    """Collapse ``.`` and ``..`` segments left-to-right.

    :param path: Joined path to collapse.
    :param origin: Module path used in error messages.
    :param specifier: Specifier used in error messages.
    :returns: Normalized path.
    :raises ResolutionError: If the path ascends above the virtual root.
    """

    parts: list[str] = []
    for seg in path.split("/"):
        if seg == "" or seg == ".":
            continue
        if seg == "..":
            if len(parts) == 0:
                raise ResolutionError(origin, specifier, "ascends above the virtual root")
            parts.pop()
            continue
        parts.append(seg)
    return "/".join(parts)


def _dirname(path: str) -> str:
    i: int = path.rfind("/")
    if i < 0:
        return ""
    return path[0:i]


def resolve(from_path: str, specifier: str) -> str:
    """Resolve a relative specifier against the module that contains it.

    :param from_path: Normalized module path of the importing module.
    :param specifier: Relative specifier (must start with ``./`` or ``../``).
    :returns: Normalized module path of the import target.
    :raises ResolutionError: If the specifier is not relative or escapes the root.
    """

    if is_relative_specifier(specifier) is False:
        raise ResolutionError(from_path, specifier, "not a relative specifier")

    base_dir: str = _dirname(from_path)
    joined: str = f"{base_dir}/{specifier}" if len(base_dir) > 0 else specifier
    resolved: str = _collapse(path=joined, origin=from_path, specifier=specifier)
    if len(resolved) == 0:
        raise ResolutionError(from_path, specifier, "resolves to the virtual root itself")
    return resolved


def normalize_module_path(path: str) -> str:
    """Validate and normalize a configured module path.

    :param path: Module path such as ``src/app.js`` or ``./src/app.js``.
    :returns: Normalized module path.
    :raises ResolutionError: If the path is empty, absolute or escapes the root.
    """

    raw: str = path.strip().replace("\\", "/")
    if len(raw) == 0:
        raise ResolutionError(path, path, "empty module path")
    if raw.startswith("/") is True:
        raise ResolutionError(path, path, "module paths must be relative to the virtual root")

    normalized: str = _collapse(path=raw, origin=path, specifier=path)
    if len(normalized) == 0:
        raise ResolutionError(path, path, "module path names the virtual root itself")
    return normalized


def virtual_identifier(virtual_root: str, path: str) -> str:
    """Build the fully-qualified virtual identifier for a module path.

    :param virtual_root: Virtual root prefix (e.g. ``__m__``).
    :param path: Normalized module path.
    :returns: ``<virtual_root>/<path>``.
    """

    return f"{virtual_root}/{path}"
