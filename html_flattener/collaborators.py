"""Inputs the bundler consumes but does not own.

- the current diagram, as a serialized string
- the page stylesheet text
- the optional third-party rendering library (used for raster export)

Each follows the same rule as module sources: an embedded copy in a prior
artifact wins and nothing is fetched; otherwise the hosted app is asked.
"""

from dataclasses import dataclass
import json
import logging
import math
import pathlib
import re
from urllib.parse import urlparse

from html_flattener.errors import AcquisitionError, BundleError
from html_flattener.paths import normalize_module_path
from html_flattener.sources import SourceAcquirer


RASTER_EXPORT_FEATURE: str = "raster-export"

_EMPTY_DIAGRAM: dict[str, object] = {
    "version": 1,
    "title": "Untitled diagram",
    "nodes": [],
    "edges": [],
}


@dataclass(frozen=True, slots=True)
class LibraryText:
    """Third-party library text plus whether the feature it backs is degraded.

    :ivar text: Library code (empty when unavailable).
    :ivar degraded: ``True`` if the library could not be obtained.
    """

    text: str
    degraded: bool


def _finite_float(text: str) -> float:
    value: float = float(text)
    if math.isfinite(value) is False:
        raise ValueError(f"number out of range: {text}")
    return value


def _reject_constant(name: str) -> float:
    raise ValueError(f"non-finite number: {name}")


def serialize_diagram(diagram: object, *, pretty: bool = False) -> str:
    """Serialize a diagram object as strict JSON.

    :param diagram: Parsed diagram JSON.
    :param pretty: Indent by two spaces instead of the compact form.
    :returns: JSON text.
    :raises AcquisitionError: If the diagram holds a NaN or infinite number.
    """

    try:
        if pretty is True:
            return json.dumps(diagram, indent=2, ensure_ascii=False, allow_nan=False)
        return json.dumps(diagram, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except ValueError as e:
        raise AcquisitionError("diagram snapshot", e) from e


def get_current_diagram_snapshot(source: pathlib.Path | str | None, *, pretty: bool = False) -> str:
    """Return the current diagram as a serialized string.

    :param source: Diagram JSON file, JSON text already in hand, or ``None``
        for an empty diagram.
    :param pretty: Pretty-print instead of the compact form.
    :returns: Serialized diagram.
    :raises AcquisitionError: If the file cannot be read or is not strict JSON.
        ``NaN``, ``Infinity`` and numbers that overflow a float are rejected.
    """

    if source is None:
        return serialize_diagram(_EMPTY_DIAGRAM, pretty=pretty)

    name: str = "diagram snapshot"
    text: str
    if isinstance(source, pathlib.Path) is True:
        name = str(source)
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AcquisitionError(name, e) from e
    else:
        text = str(source)

    try:
        diagram = json.loads(text, parse_float=_finite_float, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise AcquisitionError(name, f"not valid JSON: {e}") from e
    except ValueError as e:
        raise AcquisitionError(name, e) from e
    return serialize_diagram(diagram, pretty=pretty)


def diagram_title(snapshot: str) -> str | None:
    """Extract the diagram title from a serialized snapshot, if it has one."""

    try:
        parsed = json.loads(snapshot)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict) is False:
        return None
    title = parsed.get("title")
    if isinstance(title, str) is False or len(title.strip()) == 0:
        return None
    return title


def safe_filename(title: str | None) -> str:
    """Turn a diagram title into a file stem.

    :param title: Diagram title.
    :returns: Lower-case stem using ``[a-z0-9._-]``, ``diagram`` if nothing is left.
    """

    stem: str = (title or "diagram").strip().lower()
    stem = re.sub(r"[^a-z0-9._-]+", "-", stem)
    stem = stem.strip("-")
    if len(stem) == 0:
        return "diagram"
    return stem


def get_stylesheet_text(acquirer: SourceAcquirer, *, stylesheet_path: str) -> str:
    """Return the page stylesheet text.

    Warm: the manifest copy, then the artifact's inline style element, then
    empty text. Cold: fetched from the hosted location; failure is fatal.

    :param acquirer: Source acquirer for this export.
    :param stylesheet_path: Stylesheet path relative to the hosted root.
    :returns: Stylesheet text.
    :raises AcquisitionError: If a cold fetch fails.
    """

    if acquirer.manifest is not None:
        try:
            embedded: str | None = acquirer.manifest.decode_stylesheet()
        except BundleError as e:
            raise AcquisitionError("stylesheet", e) from e
        if embedded is not None:
            return embedded

    artifact = acquirer.context.artifact
    if artifact is not None:
        inline: str | None = artifact.inline_stylesheet()
        if inline is not None:
            return inline

    if acquirer.is_warm is True or acquirer.context.location is None:
        return ""
    return acquirer.fetch_text(normalize_module_path(stylesheet_path))


def get_third_party_library_text(
    acquirer: SourceAcquirer,
    *,
    library_url: str | None,
    logger: logging.Logger | None = None,
) -> LibraryText:
    """Return the optional raster-export library.

    Failure never aborts the export; it is logged and reported as degraded.

    :param acquirer: Source acquirer for this export.
    :param library_url: ``http(s)`` URL or local file path; ``None`` disables it.
    :param logger: Optional logger for warnings.
    :returns: Library text and degraded flag.
    """

    if logger is None:
        logger = logging.getLogger("html_flattener")

    if acquirer.manifest is not None:
        try:
            embedded: str | None = acquirer.manifest.decode_library()
        except BundleError as e:
            logger.warning(f"html-flattener: embedded library is unreadable; {RASTER_EXPORT_FEATURE} degraded ({e})")
            return LibraryText(text="", degraded=True)
        if embedded is None:
            logger.warning(f"html-flattener: no embedded library; {RASTER_EXPORT_FEATURE} degraded")
            return LibraryText(text="", degraded=True)
        return LibraryText(text=embedded, degraded=False)

    if library_url is None:
        logger.info(f"html-flattener: library disabled; {RASTER_EXPORT_FEATURE} degraded")
        return LibraryText(text="", degraded=True)

    try:
        text: str
        if urlparse(library_url).scheme in ("http", "https"):
            text = acquirer.fetch_url(library_url, name="third-party library")
        else:
            text = acquirer.read_file(pathlib.Path(library_url), name="third-party library")
    except AcquisitionError as e:
        logger.warning(
            f"html-flattener: could not obtain the third-party library; "
            f"{RASTER_EXPORT_FEATURE} will not work offline ({e})"
        )
        return LibraryText(text="", degraded=True)
    return LibraryText(text=text, degraded=False)
