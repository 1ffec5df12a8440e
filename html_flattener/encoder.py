"""Artifact encoding.

Turns a module graph plus the stylesheet, library and diagram snapshot into
text payloads that can be dropped into the HTML template as-is. Nothing here
does I/O.
"""

from dataclasses import dataclass
import json
import re

from html_flattener.codec import escape_for_script
from html_flattener.collaborators import RASTER_EXPORT_FEATURE, LibraryText
from html_flattener.graph import ModuleGraph
from html_flattener.sources import SourceManifest


@dataclass(frozen=True, slots=True)
class EncodedArtifact:
    """Embeddable payloads for one export.

    :ivar import_map_payload: Import map JSON (``{"imports": {...}}``).
    :ivar manifest_payload: Source manifest JSON, escaped for a script element.
    :ivar stylesheet_payload: Stylesheet text for a style element.
    :ivar diagram_payload: Diagram snapshot, escaped for a script element.
    :ivar library_snippet: Library code, escaped for a script element.
    :ivar entry_identifier: Virtual identifier of the entry module.
    :ivar degraded_features: Features the artifact cannot fully provide.
    :ivar manifest: The new manifest (kept for inspection and tests).
    """

    import_map_payload: str
    manifest_payload: str
    stylesheet_payload: str
    diagram_payload: str
    library_snippet: str
    entry_identifier: str
    degraded_features: tuple[str, ...]
    manifest: SourceManifest


_STYLE_CLOSE_RE: re.Pattern[str] = re.compile(r"</(style)", re.IGNORECASE)


def _escape_for_style(text: str) -> str:
    # A literal "</style" would end the element early.
    return _STYLE_CLOSE_RE.sub(r"<\\/\1", text)


def encode_artifact(
    graph: ModuleGraph,
    *,
    diagram_snapshot: str,
    stylesheet_text: str,
    library: LibraryText,
) -> EncodedArtifact:
    """Encode an export's inputs into embeddable payloads.

    :param graph: Closed module graph.
    :param diagram_snapshot: Serialized diagram.
    :param stylesheet_text: Stylesheet text.
    :param library: Third-party library text and degraded flag.
    :returns: Encoded payloads.
    """

    imports: dict[str, str] = {}
    for path in graph.module_list:
        key: str = graph.identifier(path)
        imports[key] = graph.import_mapping[key]
    import_map_payload: str = json.dumps({"imports": imports}, separators=(",", ":"))

    manifest: SourceManifest = SourceManifest.from_sources(
        graph.rewritten_sources,
        entry=graph.entry,
        virtual_root=graph.virtual_root,
        stylesheet_text=stylesheet_text,
        library_text=library.text,
    )

    degraded: list[str] = []
    if library.degraded is True:
        degraded.append(RASTER_EXPORT_FEATURE)

    return EncodedArtifact(
        import_map_payload=escape_for_script(import_map_payload),
        manifest_payload=escape_for_script(manifest.to_json()),
        stylesheet_payload=_escape_for_style(stylesheet_text),
        diagram_payload=escape_for_script(diagram_snapshot),
        library_snippet=escape_for_script(library.text),
        entry_identifier=graph.identifier(graph.entry),
        degraded_features=tuple(degraded),
        manifest=manifest,
    )
