"""Command line interface for html-flattener."""

import argparse
import logging
import pathlib
import sys

from html_flattener.builder import export_standalone_html, inspect_artifact, rebundle_artifact
from html_flattener.config import (
    DEFAULT_BRAND,
    DEFAULT_LIBRARY_URL,
    DEFAULT_STORAGE_KEY,
    DEFAULT_STYLESHEET_PATH,
    DEFAULT_VIRTUAL_ROOT,
    BundleConfig,
    ConfigError,
    resolve_bundle_config,
)
from html_flattener.errors import BundleError
from html_flattener.sources import ExecutionContext, SourceManifest


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the html-flattener logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("html_flattener")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _add_logging_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="html-flattener",
        description="Bundle a browser app + a diagram into one self-contained, offline .html file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser(
        "build",
        help="Export a standalone .html file from the hosted app.",
    )
    p_build.add_argument(
        "root",
        type=str,
        help="Hosted app root: a directory or an http(s) base URL.",
    )
    p_build.add_argument(
        "-m",
        "--modules",
        type=pathlib.Path,
        default=None,
        help="Module list file (one path per line, relative to root). Required unless --discover.",
    )
    p_build.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        default=None,
        help="Output .html path. Defaults to <diagram-title>.html in the current directory.",
    )
    p_build.add_argument(
        "--diagram",
        type=pathlib.Path,
        default=None,
        help="Diagram JSON to embed. Defaults to an empty diagram.",
    )
    p_build.add_argument(
        "--title",
        type=str,
        default=None,
        help="Document title. Defaults to the diagram's title.",
    )
    p_build.add_argument(
        "--entry",
        type=str,
        default=None,
        help="Entry module path. Defaults to the first module in the list.",
    )
    p_build.add_argument(
        "--discover",
        action="store_true",
        help="Discover the module set by walking imports from the entry instead of trusting the list.",
    )
    p_build.add_argument(
        "--from-artifact",
        type=pathlib.Path,
        default=None,
        help="Re-export from a prior artifact; its embedded sources win over root.",
    )
    p_build.add_argument(
        "--stylesheet",
        type=str,
        default=DEFAULT_STYLESHEET_PATH,
        help=f"Stylesheet path relative to root (default: {DEFAULT_STYLESHEET_PATH}).",
    )
    lib_group = p_build.add_mutually_exclusive_group()
    lib_group.add_argument(
        "--library",
        type=str,
        default=DEFAULT_LIBRARY_URL,
        help="Raster-export library URL or file path (default: html2canvas from jsDelivr).",
    )
    lib_group.add_argument(
        "--no-library",
        action="store_true",
        help="Do not embed the raster-export library (raster export is degraded).",
    )
    p_build.add_argument(
        "--virtual-root",
        type=str,
        default=DEFAULT_VIRTUAL_ROOT,
        help=f"Prefix for virtual module identifiers (default: {DEFAULT_VIRTUAL_ROOT}).",
    )
    p_build.add_argument(
        "--storage-key",
        type=str,
        default=DEFAULT_STORAGE_KEY,
        help=f"localStorage key seeded on first load (default: {DEFAULT_STORAGE_KEY}).",
    )
    p_build.add_argument(
        "--brand",
        type=str,
        default=DEFAULT_BRAND,
        help="Application name shown in the title bar.",
    )
    p_build.add_argument(
        "--skeleton",
        type=pathlib.Path,
        default=None,
        help="HTML fragment replacing the built-in DOM skeleton.",
    )
    p_build.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=8,
        help="Concurrent fetches during cold acquisition (default: 8).",
    )
    _add_logging_flags(p_build)

    p_rebundle = subparsers.add_parser(
        "rebundle",
        help="Export a new standalone .html from a prior one, without network access.",
    )
    p_rebundle.add_argument("artifact", type=pathlib.Path, help="Previously exported .html file.")
    p_rebundle.add_argument("-o", "--output", type=pathlib.Path, default=None, help="Output .html path.")
    p_rebundle.add_argument(
        "--diagram",
        type=pathlib.Path,
        default=None,
        help="Replacement diagram JSON. Defaults to the artifact's embedded diagram.",
    )
    p_rebundle.add_argument("--title", type=str, default=None, help="Document title override.")
    p_rebundle.add_argument(
        "--storage-key",
        type=str,
        default=DEFAULT_STORAGE_KEY,
        help=f"localStorage key seeded on first load (default: {DEFAULT_STORAGE_KEY}).",
    )
    _add_logging_flags(p_rebundle)

    p_inspect = subparsers.add_parser(
        "inspect",
        help="List the sources embedded in an exported .html file.",
    )
    p_inspect.add_argument("artifact", type=pathlib.Path, help="Previously exported .html file.")
    p_inspect.add_argument(
        "--extract",
        type=pathlib.Path,
        default=None,
        help="Write the embedded module sources into this directory.",
    )
    _add_logging_flags(p_inspect)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the html-flattener CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)
    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)

    try:
        if ns.command == "build":
            config: BundleConfig = resolve_bundle_config(
                root=ns.root,
                module_list_path=ns.modules,
                entry=ns.entry,
                discover=ns.discover,
                virtual_root=ns.virtual_root,
                stylesheet_path=ns.stylesheet,
                library_url=None if ns.no_library is True else ns.library,
                storage_key=ns.storage_key,
                title=ns.title,
                brand=ns.brand,
                output=ns.output,
                skeleton_path=ns.skeleton,
                max_workers=ns.jobs,
            )
            context: ExecutionContext
            if ns.from_artifact is not None:
                context = ExecutionContext.from_artifact(ns.from_artifact, root=ns.root)
            else:
                context = ExecutionContext.hosted(ns.root)
            export_standalone_html(config=config, context=context, diagram=ns.diagram, logger=logger)
            return 0

        if ns.command == "rebundle":
            rebundle_artifact(
                artifact_path=ns.artifact,
                output=ns.output,
                diagram=ns.diagram,
                title=ns.title,
                storage_key=ns.storage_key,
                logger=logger,
            )
            return 0

        if ns.command == "inspect":
            manifest: SourceManifest = inspect_artifact(
                artifact_path=ns.artifact,
                extract_dir=ns.extract,
                logger=logger,
            )
            for path in manifest.module_list:
                marker: str = " (entry)" if path == manifest.entry else ""
                sys.stdout.write(f"{path}{marker}\n")
            return 0
    except (BundleError, ConfigError) as e:
        logger.error(f"html-flattener: error: {e}")
        return 2

    raise AssertionError(f"Unhandled command: {ns.command}")


if __name__ == "__main__":
    raise SystemExit(main())
