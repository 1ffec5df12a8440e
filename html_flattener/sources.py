"""Source acquisition.

Module sources come from one of two places:

- **warm**: a source manifest embedded in a previously exported artifact. When
  one is present it is used exclusively and nothing is fetched.
- **cold**: the hosted app, either a local directory or an ``http(s)`` base
  URL. Modules are fetched concurrently; a single failure aborts the whole
  acquisition.

A prior artifact is an immutable input here. A new export always produces a
new manifest and never edits the old one.
"""

from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import json
import logging
import pathlib
from types import MappingProxyType
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
import requests

from html_flattener import __version__
from html_flattener.codec import decode_text, encode_text
from html_flattener.errors import AcquisitionError, BundleError
from html_flattener.paths import normalize_module_path


MANIFEST_ELEMENT_ID: str = "__SELF_MODULES__"
INLINE_CSS_ELEMENT_ID: str = "__INLINE_CSS__"
DIAGRAM_ELEMENT_ID: str = "initial-diagram"

DEFAULT_TIMEOUT: float = 30.0


@dataclass(frozen=True, slots=True)
class SourceManifest:
    """Self-describing record of an artifact's inputs.

    :ivar files: Module path to base64 (UTF-8) module text, held as a
        read-only mapping.
    :ivar module_list: Ordered module paths.
    :ivar library_encoded: Base64 third-party library text, empty if absent.
    :ivar stylesheet_encoded: Base64 stylesheet text, empty if absent.
    :ivar entry: Entry module path, empty if the artifact did not record one.
    :ivar virtual_root: Prefix the embedded sources were rewritten with, empty
        if the artifact did not record one.
    """

    files: Mapping[str, str]
    module_list: tuple[str, ...]
    library_encoded: str = ""
    stylesheet_encoded: str = ""
    entry: str = ""
    virtual_root: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))
        object.__setattr__(self, "module_list", tuple(self.module_list))

    def __hash__(self) -> int:
        return hash(
            (
                tuple(sorted(self.files.items())),
                self.module_list,
                self.library_encoded,
                self.stylesheet_encoded,
                self.entry,
                self.virtual_root,
            )
        )

    @classmethod
    def from_sources(
        cls,
        sources: dict[str, str],
        *,
        entry: str,
        virtual_root: str,
        stylesheet_text: str,
        library_text: str,
    ) -> "SourceManifest":
        """Encode a set of module sources into a new manifest.

        :param sources: Module path to source text.
        :param entry: Entry module path.
        :param virtual_root: Virtual identifier prefix used by ``sources``.
        :param stylesheet_text: Stylesheet text (may be empty).
        :param library_text: Third-party library text (may be empty).
        :returns: New manifest with a sorted module list.
        """

        module_list: list[str] = sorted(sources)
        files: dict[str, str] = {p: encode_text(sources[p]) for p in module_list}
        return cls(
            files=files,
            module_list=tuple(module_list),
            library_encoded=encode_text(library_text) if len(library_text) > 0 else "",
            stylesheet_encoded=encode_text(stylesheet_text) if len(stylesheet_text) > 0 else "",
            entry=entry,
            virtual_root=virtual_root,
        )

    def to_json(self) -> str:
        """Serialize to the embedded wire format.

        :returns: Compact JSON text.
        """

        payload: dict[str, object] = {
            "filesBase64": {p: self.files[p] for p in self.module_list},
            "list": list(self.module_list),
            "html2canvasBase64": self.library_encoded,
            "cssBase64": self.stylesheet_encoded,
        }
        if len(self.entry) > 0:
            payload["entry"] = self.entry
        if len(self.virtual_root) > 0:
            payload["virtualRoot"] = self.virtual_root
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "SourceManifest":
        """Parse the embedded wire format.

        :param text: Manifest JSON text.
        :returns: Parsed manifest.
        :raises AcquisitionError: If the manifest is malformed.
        """

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise AcquisitionError(MANIFEST_ELEMENT_ID, f"manifest is not valid JSON: {e}") from e

        if isinstance(parsed, dict) is False:
            raise AcquisitionError(MANIFEST_ELEMENT_ID, "manifest is not a JSON object")
        files = parsed.get("filesBase64")
        listed = parsed.get("list")
        if isinstance(files, dict) is False or isinstance(listed, list) is False:
            raise AcquisitionError(MANIFEST_ELEMENT_ID, "manifest lacks 'filesBase64'/'list'")

        module_list: list[str] = []
        normalized_files: dict[str, str] = {}
        for listed_path in listed:
            if isinstance(listed_path, str) is False:
                raise AcquisitionError(MANIFEST_ELEMENT_ID, f"non-string module path {listed_path!r}")
            path: str = normalize_module_path(listed_path)
            encoded = files.get(listed_path)
            if isinstance(encoded, str) is False:
                raise AcquisitionError(path, "listed in the manifest but has no embedded source")
            module_list.append(path)
            normalized_files[path] = encoded

        library = parsed.get("html2canvasBase64") or ""
        stylesheet = parsed.get("cssBase64") or ""
        entry = parsed.get("entry") or ""
        virtual_root = parsed.get("virtualRoot") or ""
        for value in (library, stylesheet, entry, virtual_root):
            if isinstance(value, str) is False:
                raise AcquisitionError(MANIFEST_ELEMENT_ID, f"manifest field has non-string value {value!r}")
        if len(entry) > 0:
            entry = normalize_module_path(entry)
            if entry not in normalized_files:
                raise AcquisitionError(entry, "manifest entry module has no embedded source")

        return cls(
            files=normalized_files,
            module_list=tuple(module_list),
            library_encoded=library,
            stylesheet_encoded=stylesheet,
            entry=entry,
            virtual_root=virtual_root,
        )

    def decode_files(self) -> dict[str, str]:
        """Decode every module source.

        :returns: Module path to source text, in manifest order.
        """

        return {p: decode_text(self.files[p]) for p in self.module_list}

    def decode_stylesheet(self) -> str | None:
        if len(self.stylesheet_encoded) == 0:
            return None
        return decode_text(self.stylesheet_encoded)

    def decode_library(self) -> str | None:
        if len(self.library_encoded) == 0:
            return None
        return decode_text(self.library_encoded)


class PriorArtifact:
    """Read-only view of a previously exported document."""

    def __init__(self, html: str) -> None:
        self._soup: BeautifulSoup = BeautifulSoup(html, "html.parser")

    @classmethod
    def load(cls, path: pathlib.Path) -> "PriorArtifact":
        """Load an artifact from disk.

        :param path: Artifact HTML file.
        :returns: Parsed artifact.
        :raises AcquisitionError: If the file cannot be read.
        """

        try:
            html: str = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AcquisitionError(str(path), e) from e
        return cls(html)

    def _element_text(self, element_id: str) -> str | None:
        tag = self._soup.find(id=element_id)
        if tag is None:
            return None
        return str(tag.string or "")

    def manifest(self) -> SourceManifest | None:
        """Return the embedded source manifest, if any.

        :raises AcquisitionError: If a manifest element exists but is malformed.
        """

        text: str | None = self._element_text(MANIFEST_ELEMENT_ID)
        if text is None:
            return None
        return SourceManifest.from_json(text)

    def inline_stylesheet(self) -> str | None:
        text: str | None = self._element_text(INLINE_CSS_ELEMENT_ID)
        if text is None or len(text.strip()) == 0:
            return None
        return text

    def diagram_snapshot(self) -> str | None:
        text: str | None = self._element_text(DIAGRAM_ELEMENT_ID)
        if text is None or len(text.strip()) == 0:
            return None
        return text


def discover_manifest(html: str) -> SourceManifest | None:
    """Find the source manifest embedded in an HTML document.

    :param html: Document text.
    :returns: Manifest, or ``None`` if the document carries none.
    """

    return PriorArtifact(html).manifest()


@dataclass(frozen=True, slots=True)
class HostedLocation:
    """Where the hosted app lives: a directory or an ``http(s)`` base URL.

    :ivar base: Directory path or base URL.
    """

    base: str

    @property
    def is_remote(self) -> bool:
        return urlparse(self.base).scheme in ("http", "https")

    def url_for(self, relpath: str) -> str:
        base: str = self.base if self.base.endswith("/") is True else self.base + "/"
        return urljoin(base, relpath)

    def path_for(self, relpath: str) -> pathlib.Path:
        return pathlib.Path(self.base) / pathlib.PurePosixPath(relpath)

    def describe(self, relpath: str) -> str:
        if self.is_remote is True:
            return self.url_for(relpath)
        return str(self.path_for(relpath))


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """The environment an export runs in.

    :ivar location: Hosted app location used by cold acquisition.
    :ivar artifact: Prior artifact being re-exported (warm acquisition).
    """

    location: HostedLocation | None
    artifact: PriorArtifact | None = field(default=None)

    @classmethod
    def hosted(cls, root: str) -> "ExecutionContext":
        return cls(location=HostedLocation(root), artifact=None)

    @classmethod
    def from_artifact(cls, path: pathlib.Path, *, root: str | None = None) -> "ExecutionContext":
        location: HostedLocation | None = HostedLocation(root) if root is not None else None
        return cls(location=location, artifact=PriorArtifact.load(path))


def build_session() -> requests.Session:
    """Create the HTTP session used for cold fetches.

    No retry policy is mounted; failures surface to the caller as they happen.
    """

    s: requests.Session = requests.Session()
    s.headers.update({"User-Agent": f"html-flattener/{__version__}"})
    return s


class SourceAcquirer:
    """Obtain module, stylesheet and library text for one export.

    :param context: Execution context (decides warm vs. cold).
    :param session: Optional HTTP session (created lazily for remote fetches).
    :param max_workers: Concurrent fetch limit.
    :param timeout: Per-request timeout in seconds.
    :param logger: Optional logger for progress output.
    """

    def __init__(
        self,
        context: ExecutionContext,
        *,
        session: requests.Session | None = None,
        max_workers: int = 8,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        if logger is None:
            logger = logging.getLogger("html_flattener")
        self._logger: logging.Logger = logger
        self.context: ExecutionContext = context
        self.manifest: SourceManifest | None = None
        if context.artifact is not None:
            self.manifest = context.artifact.manifest()
        self._session: requests.Session | None = session
        self._max_workers: int = max_workers
        self._timeout: float = timeout

    @property
    def is_warm(self) -> bool:
        return self.manifest is not None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session()
        return self._session

    def fetch_url(self, url: str, *, name: str) -> str:
        """Fetch text from an absolute ``http(s)`` URL.

        :param url: URL to fetch.
        :param name: Name used in error messages.
        :returns: Response body decoded as UTF-8.
        :raises AcquisitionError: On any transport, status or decoding failure.
        """

        try:
            resp: requests.Response = self._get_session().get(url, timeout=self._timeout)
            resp.raise_for_status()
            return resp.content.decode("utf-8")
        except (requests.RequestException, UnicodeDecodeError) as e:
            raise AcquisitionError(name, e) from e

    def read_file(self, path: pathlib.Path, *, name: str) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AcquisitionError(name, e) from e

    def fetch_text(self, relpath: str) -> str:
        """Fetch one file from the hosted location (cold strategy).

        :param relpath: Path relative to the hosted root.
        :returns: File text.
        :raises AcquisitionError: If there is no hosted location or the fetch fails.
        """

        location: HostedLocation | None = self.context.location
        if location is None:
            raise AcquisitionError(relpath, "no hosted location to fetch from")
        if self._logger.isEnabledFor(logging.DEBUG) is True:
            self._logger.debug(f"html-flattener: fetching {location.describe(relpath)}")
        if location.is_remote is True:
            return self.fetch_url(location.url_for(relpath), name=relpath)
        return self.read_file(location.path_for(relpath), name=relpath)

    def acquire(self, module_list: list[str]) -> dict[str, str]:
        """Obtain the raw text of every module.

        With a manifest present the manifest's own module list is used and no
        fetch is attempted.

        :param module_list: Configured module paths.
        :returns: Module path to source text.
        :raises AcquisitionError: If any module cannot be obtained.
        """

        if self.manifest is not None:
            return self._acquire_warm(self.manifest, module_list)
        return self._acquire_cold(module_list)

    def _acquire_warm(self, manifest: SourceManifest, module_list: list[str]) -> dict[str, str]:
        missing: list[str] = sorted(set(module_list) - set(manifest.module_list))
        if len(missing) > 0:
            self._logger.warning(
                "html-flattener: embedded manifest wins over the configured module list; "
                f"not embedded: {', '.join(missing)}"
            )
        try:
            sources: dict[str, str] = manifest.decode_files()
        except BundleError as e:
            raise AcquisitionError(MANIFEST_ELEMENT_ID, e) from e
        self._logger.info(f"html-flattener: warm acquisition ({len(sources)} modules from manifest)")
        return sources

    def _acquire_cold(self, module_list: list[str]) -> dict[str, str]:
        if len(module_list) == 0:
            return {}

        fetched: dict[str, str] = {}
        workers: int = min(self._max_workers, len(module_list))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            future_map: dict[Future[str], str] = {
                pool.submit(self.fetch_text, p): p for p in module_list
            }
            try:
                for fut in as_completed(future_map):
                    fetched[future_map[fut]] = fut.result()
            except AcquisitionError:
                for pending in future_map:
                    pending.cancel()
                raise

        self._logger.info(f"html-flattener: cold acquisition ({len(fetched)} modules fetched)")
        return {p: fetched[p] for p in module_list}
