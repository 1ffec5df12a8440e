"""Standalone HTML document assembly.

The document is rendered from :data:`_DOCUMENT_TEMPLATE` by a single pass over
its ``__HTMLFLAT_*__`` placeholders, so payload text that happens to contain a
placeholder name is never substituted a second time.
"""

import json
import pathlib
import re
import textwrap

from html_flattener.codec import escape_html
from html_flattener.config import DEFAULT_BRAND, DEFAULT_STORAGE_KEY
from html_flattener.encoder import EncodedArtifact
from html_flattener.errors import BundleError


_PLACEHOLDER_RE: re.Pattern[str] = re.compile(r"__HTMLFLAT_([A-Z_]+)__")


def load_skeleton(path: pathlib.Path) -> str:
    """Read a DOM skeleton fragment.

    :param path: HTML fragment file.
    :returns: Fragment text.
    :raises BundleError: If the file cannot be read.
    """

    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BundleError(f"cannot read skeleton {path}: {e}") from e


def default_skeleton(*, brand: str) -> str:
    """Render the built-in DOM skeleton (same ids as the hosted app's page).

    :param brand: Application name shown in the title bar.
    :returns: HTML fragment.
    """

    return _SKELETON_TEMPLATE.replace("__HTMLFLAT_BRAND__", escape_html(brand))


def _bootstrap_script(*, storage_key: str, entry_identifier: str) -> str:
    return (
        _BOOTSTRAP_TEMPLATE.replace("__HTMLFLAT_STORAGE_KEY__", json.dumps(storage_key))
        .replace("__HTMLFLAT_ENTRY__", json.dumps(entry_identifier))
    )


def assemble_document(
    *,
    title: str | None,
    artifact: EncodedArtifact,
    brand: str = DEFAULT_BRAND,
    storage_key: str = DEFAULT_STORAGE_KEY,
    skeleton: str | None = None,
) -> str:
    """Assemble the final single-file document.

    :param title: Diagram title (escaped here; ``None`` means untitled).
    :param artifact: Encoded payloads.
    :param brand: Application name.
    :param storage_key: Persisted storage key seeded by the bootstrap.
    :param skeleton: Optional DOM skeleton fragment replacing the built-in one.
    :returns: HTML document text.
    :raises BundleError: If the template references an unknown placeholder.
    """

    safe_title: str = escape_html(title if title is not None and len(title) > 0 else "Untitled diagram")
    safe_brand: str = escape_html(brand)

    degraded_meta: str = ""
    degraded_attr: str = ""
    if len(artifact.degraded_features) > 0:
        joined: str = escape_html(" ".join(artifact.degraded_features))
        degraded_meta = f'\n    <meta name="html-flattener:degraded" content="{joined}" />'
        degraded_attr = f' data-degraded="{joined}"'

    values: dict[str, str] = {
        "DEGRADED_ATTR": degraded_attr,
        "DEGRADED_META": degraded_meta,
        "TITLE": safe_title,
        "BRAND": safe_brand,
        "STYLESHEET": artifact.stylesheet_payload,
        "SKELETON": skeleton if skeleton is not None else default_skeleton(brand=brand),
        "DIAGRAM": artifact.diagram_payload,
        "MANIFEST": artifact.manifest_payload,
        "IMPORT_MAP": artifact.import_map_payload,
        "LIBRARY": artifact.library_snippet,
        "BOOTSTRAP": _bootstrap_script(
            storage_key=storage_key,
            entry_identifier=artifact.entry_identifier,
        ),
    }

    def substitute(m: re.Match[str]) -> str:
        name: str = m.group(1)
        if name not in values:
            raise BundleError(f"Internal error: document template has unknown placeholder {name!r}.")
        return values[name]

    return _PLACEHOLDER_RE.sub(substitute, _DOCUMENT_TEMPLATE)


_SKELETON_TEMPLATE: str = textwrap.dedent(
    """
    <div id="app">
      <header class="topbar">
        <div class="brand">__HTMLFLAT_BRAND__</div>
        <button id="btnAbout" title="About" aria-label="About">&#9432;</button>
        <div class="diagram-title-container">
          <input type="text" id="diagramTitle" class="diagram-title" placeholder="Untitled diagram" />
        </div>
        <div class="actions">
          <button id="btnNewApi" title="Add API endpoint">+ API</button>
          <button id="btnNewTable" title="Add Postgres table">+ Table</button>
          <button id="btnNewModule" title="Add Module">+ Module</button>
          <span class="sep"></span>
          <button id="btnNewDiagram" title="Start a new blank diagram">New</button>
          <button id="btnImport" title="Import diagram JSON">Import</button>
          <span class="sep"></span>
          <button id="btnExport" title="Export diagram to JSON">Export</button>
          <button id="btnExportPng" title="Export visible canvas to PNG">Export PNG</button>
          <button id="btnExportHtml" title="Export as Offline HTML">Export HTML</button>
        </div>
      </header>

      <div class="main">
        <div class="canvas-wrap">
          <div id="canvas" class="canvas">
            <div id="content" class="content" data-width="4000" data-height="3000">
              <svg id="edges" class="edges" width="4000" height="3000" viewBox="0 0 4000 3000" xmlns="http://www.w3.org/2000/svg" aria-hidden="true"></svg>
              <div id="nodes" class="nodes" role="region" aria-label="Nodes"></div>
              <svg id="edgesOverlay" class="edges-overlay" width="4000" height="3000" viewBox="0 0 4000 3000" xmlns="http://www.w3.org/2000/svg" aria-hidden="true"></svg>
            </div>
          </div>
        </div>

        <aside class="inspector" id="inspector">
          <div id="inspectorBody">
            <p>Select a node, variable, or edge to edit details.</p>
          </div>
          <div id="inspectorFooter" class="inspector-footer">
            <label class="inspector-toggle">
              <input type="checkbox" id="toggleShowTypes" checked />
              <span>Show variable types</span>
            </label>
          </div>
        </aside>
      </div>
    </div>

    <input type="file" id="fileInput" accept="application/json" style="display:none" />

    <div id="aboutDialog" class="about-dialog hidden" role="dialog" aria-modal="true" aria-labelledby="aboutTitle">
      <div class="dialog-overlay">
        <div class="dialog-content" role="document">
          <h3 id="aboutTitle">About __HTMLFLAT_BRAND__</h3>
          <p style="margin: 0 0 12px 0;">Visual tool for building and sharing data flow diagrams.</p>
          <div class="dialog-actions">
            <button id="aboutCloseBtn" class="primary">Close</button>
          </div>
        </div>
      </div>
    </div>
    """
).strip()


# Seeds persisted storage only when it is empty, then starts the entry module.
_BOOTSTRAP_TEMPLATE: str = textwrap.dedent(
    """
    (function() {
      try {
        const key = __HTMLFLAT_STORAGE_KEY__;
        if (!localStorage.getItem(key)) {
          const el = document.getElementById('initial-diagram');
          if (el && el.textContent) {
            localStorage.setItem(key, el.textContent);
            localStorage.setItem(key + '_timestamp', Date.now().toString());
          }
        }
      } catch (e) {
        console.warn('Failed to seed localStorage from embedded diagram:', e);
      }
      import(__HTMLFLAT_ENTRY__);
    })();
    """
).strip()


_DOCUMENT_TEMPLATE: str = textwrap.dedent(
    """
    <!doctype html>
    <html lang="en"__HTMLFLAT_DEGRADED_ATTR__>
      <head>
        <meta charset="utf-8" />
        <title>__HTMLFLAT_TITLE__ - __HTMLFLAT_BRAND__</title>
        <meta name="viewport" content="width=device-width, initial-scale=1" />
        <meta name="html-flattener:title" content="__HTMLFLAT_TITLE__" />__HTMLFLAT_DEGRADED_META__
        <style id="__INLINE_CSS__">
    __HTMLFLAT_STYLESHEET__
        </style>
      </head>
      <body>
    __HTMLFLAT_SKELETON__

        <script id="initial-diagram" type="application/json">__HTMLFLAT_DIAGRAM__</script>

        <script id="__SELF_MODULES__" type="application/json">__HTMLFLAT_MANIFEST__</script>

        <script type="importmap">
    __HTMLFLAT_IMPORT_MAP__
        </script>

        <script>
    __HTMLFLAT_LIBRARY__
    //# sourceURL=html2canvas.inline.js
        </script>

        <script type="module">
    __HTMLFLAT_BOOTSTRAP__
        </script>
      </body>
    </html>
    """
).lstrip()
