"""Standalone export builder.

This module implements the whole "export as offline HTML" pipeline:

- It acquires module sources, the stylesheet and the optional third-party
  library concurrently, from an embedded manifest (warm) or the hosted app
  (cold).
- It rewrites relative imports into virtual identifiers and checks that the
  resulting import map covers every import.
- It encodes everything into payloads, renders one HTML document and writes it
  atomically to disk.

Fatal errors abort before anything is written; a missing third-party library
only degrades raster export.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import pathlib
import time

import requests

from html_flattener.collaborators import (
    LibraryText,
    diagram_title,
    get_current_diagram_snapshot,
    get_stylesheet_text,
    get_third_party_library_text,
    safe_filename,
)
from html_flattener.config import DEFAULT_STORAGE_KEY, DEFAULT_VIRTUAL_ROOT, BundleConfig, validate_storage_key
from html_flattener.delivery import deliver
from html_flattener.document import assemble_document, load_skeleton
from html_flattener.encoder import EncodedArtifact, encode_artifact
from html_flattener.errors import AcquisitionError, BundleError
from html_flattener.graph import ModuleGraph, build_module_graph, discover_module_list, validate_closure
from html_flattener.sources import ExecutionContext, PriorArtifact, SourceAcquirer, SourceManifest


@dataclass(frozen=True, slots=True)
class AcquiredModules:
    """Module sources for one export.

    :ivar module_list: Module paths in registration order.
    :ivar sources: Module path to raw (or previously rewritten) source.
    :ivar entry: Entry module path.
    :ivar virtual_root: Virtual identifier prefix to rewrite with.
    """

    module_list: list[str]
    sources: dict[str, str]
    entry: str
    virtual_root: str


def _acquire_modules(
    *,
    acquirer: SourceAcquirer,
    config: BundleConfig,
    logger: logging.Logger,
) -> AcquiredModules:
    """Obtain module sources by the fixed list, discovery, or an embedded manifest.

    :param acquirer: Source acquirer.
    :param config: Export config.
    :param logger: Logger for progress output.
    :returns: Acquired modules.
    :raises AcquisitionError: If any required module is unavailable.
    """

    manifest: SourceManifest | None = acquirer.manifest
    if manifest is not None:
        sources: dict[str, str] = acquirer.acquire(list(config.module_list))
        entry: str = manifest.entry
        if len(entry) == 0:
            entry = config.entry if config.entry in sources else manifest.module_list[0]
        virtual_root: str = manifest.virtual_root if len(manifest.virtual_root) > 0 else config.virtual_root
        if config.discover is True:
            def from_manifest(path: str) -> str:
                if path not in sources:
                    raise AcquisitionError(path, "imported but not embedded in the manifest")
                return sources[path]

            order, _ = discover_module_list(entry, from_manifest, virtual_root=virtual_root, logger=logger)
            return AcquiredModules(module_list=order, sources=sources, entry=entry, virtual_root=virtual_root)
        return AcquiredModules(
            module_list=list(manifest.module_list),
            sources=sources,
            entry=entry,
            virtual_root=virtual_root,
        )

    if config.discover is True:
        order2, discovered = discover_module_list(
            config.entry,
            acquirer.fetch_text,
            virtual_root=config.virtual_root,
            logger=logger,
        )
        logger.info(f"html-flattener: discovered {len(order2)} modules from {config.entry}")
        return AcquiredModules(
            module_list=order2,
            sources=discovered,
            entry=config.entry,
            virtual_root=config.virtual_root,
        )

    fetched: dict[str, str] = acquirer.acquire(list(config.module_list))
    return AcquiredModules(
        module_list=list(config.module_list),
        sources=fetched,
        entry=config.entry,
        virtual_root=config.virtual_root,
    )


def export_standalone_html(
    *,
    config: BundleConfig,
    context: ExecutionContext,
    diagram: pathlib.Path | str | None = None,
    logger: logging.Logger | None = None,
    session: requests.Session | None = None,
) -> pathlib.Path:
    """Export the app plus a diagram as one self-contained HTML file.

    :param config: Export configuration.
    :param context: Execution context (hosted app and/or prior artifact).
    :param diagram: Diagram JSON file or text; defaults to the prior artifact's
        embedded diagram, then to an empty diagram.
    :param logger: Optional logger for realtime progress output.
    :param session: Optional HTTP session for cold fetches.
    :returns: Path of the written artifact.
    :raises BundleError: If any fatal phase fails; nothing is written then.
    """

    if logger is None:
        logger = logging.getLogger("html_flattener")

    t_total0: float = time.perf_counter()
    acquirer: SourceAcquirer = SourceAcquirer(
        context,
        session=session,
        max_workers=config.max_workers,
        logger=logger,
    )
    mode: str = "warm (embedded manifest, no network)" if acquirer.is_warm is True else "cold"
    logger.info(f"html-flattener: root={config.root}")
    logger.info(f"html-flattener: acquisition={mode}")

    snapshot_source: pathlib.Path | str | None = diagram
    if snapshot_source is None and context.artifact is not None:
        snapshot_source = context.artifact.diagram_snapshot()
    snapshot: str = get_current_diagram_snapshot(snapshot_source, pretty=False)

    t_acq0: float = time.perf_counter()
    with ThreadPoolExecutor(max_workers=3) as pool:
        f_modules: Future[AcquiredModules] = pool.submit(
            _acquire_modules, acquirer=acquirer, config=config, logger=logger
        )
        f_css: Future[str] = pool.submit(
            get_stylesheet_text, acquirer, stylesheet_path=config.stylesheet_path
        )
        f_lib: Future[LibraryText] = pool.submit(
            get_third_party_library_text, acquirer, library_url=config.library_url, logger=logger
        )
        try:
            modules: AcquiredModules = f_modules.result()
            stylesheet_text: str = f_css.result()
        except BundleError:
            f_css.cancel()
            f_lib.cancel()
            raise
        library: LibraryText = f_lib.result()
    t_acq1: float = time.perf_counter()
    logger.info(
        f"html-flattener: acquired {len(modules.sources)} modules, "
        f"stylesheet ({len(stylesheet_text)} chars), "
        f"library ({'degraded' if library.degraded is True else f'{len(library.text)} chars'}) "
        f"in {t_acq1 - t_acq0:.2f}s"
    )

    graph: ModuleGraph = build_module_graph(
        modules.module_list,
        modules.sources,
        virtual_root=modules.virtual_root,
        entry=modules.entry,
    )
    validate_closure(graph)
    logger.info(f"html-flattener: module graph closed ({len(graph.import_mapping)} import map entries)")

    encoded: EncodedArtifact = encode_artifact(
        graph,
        diagram_snapshot=snapshot,
        stylesheet_text=stylesheet_text,
        library=library,
    )
    if len(encoded.degraded_features) > 0:
        logger.warning(f"html-flattener: degraded features: {', '.join(encoded.degraded_features)}")

    title: str | None = config.title if config.title is not None else diagram_title(snapshot)
    skeleton: str | None = None
    if config.skeleton_path is not None:
        skeleton = load_skeleton(config.skeleton_path)

    document: str = assemble_document(
        title=title,
        artifact=encoded,
        brand=config.brand,
        storage_key=config.storage_key,
        skeleton=skeleton,
    )

    filename: str
    if config.output is not None:
        filename = str(config.output)
    else:
        filename = f"{safe_filename(title)}.html"
    written: pathlib.Path = deliver(document, filename, logger=logger)

    t_total1: float = time.perf_counter()
    logger.info(f"html-flattener: done in {t_total1 - t_total0:.2f}s")
    return written


def rebundle_artifact(
    *,
    artifact_path: pathlib.Path,
    output: pathlib.Path | None = None,
    diagram: pathlib.Path | str | None = None,
    title: str | None = None,
    storage_key: str = DEFAULT_STORAGE_KEY,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Export a new artifact from a prior one without any network access.

    :param artifact_path: Previously exported artifact.
    :param output: Optional output path.
    :param diagram: Optional replacement diagram (defaults to the embedded one).
    :param title: Optional title override.
    :param storage_key: Persisted storage key for the new artifact.
    :param logger: Optional logger.
    :returns: Path of the written artifact.
    :raises AcquisitionError: If the artifact carries no source manifest.
    :raises ConfigError: If ``storage_key`` is invalid.
    """

    validate_storage_key(storage_key)
    context: ExecutionContext = ExecutionContext.from_artifact(artifact_path)
    artifact: PriorArtifact | None = context.artifact
    manifest: SourceManifest | None = artifact.manifest() if artifact is not None else None
    if manifest is None:
        raise AcquisitionError(str(artifact_path), "artifact carries no embedded source manifest")

    entry: str = manifest.entry if len(manifest.entry) > 0 else manifest.module_list[0]
    config: BundleConfig = BundleConfig(
        root=str(artifact_path),
        module_list=tuple(manifest.module_list),
        entry=entry,
        virtual_root=manifest.virtual_root if len(manifest.virtual_root) > 0 else DEFAULT_VIRTUAL_ROOT,
        library_url=None,
        storage_key=storage_key,
        title=title,
        output=output,
    )
    return export_standalone_html(config=config, context=context, diagram=diagram, logger=logger)


def inspect_artifact(
    *,
    artifact_path: pathlib.Path,
    extract_dir: pathlib.Path | None = None,
    logger: logging.Logger | None = None,
) -> SourceManifest:
    """Read an artifact's manifest and optionally write its sources out.

    :param artifact_path: Previously exported artifact.
    :param extract_dir: Optional directory to write decoded module sources to.
    :param logger: Optional logger.
    :returns: The embedded manifest.
    :raises AcquisitionError: If the artifact carries no source manifest.
    """

    if logger is None:
        logger = logging.getLogger("html_flattener")

    manifest: SourceManifest | None = PriorArtifact.load(artifact_path).manifest()
    if manifest is None:
        raise AcquisitionError(str(artifact_path), "artifact carries no embedded source manifest")

    if extract_dir is not None:
        for path, source in manifest.decode_files().items():
            dest: pathlib.Path = extract_dir / pathlib.PurePosixPath(path)
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_text(source, encoding="utf-8")
        logger.info(f"html-flattener: extracted {len(manifest.module_list)} modules to {extract_dir}")
    return manifest
