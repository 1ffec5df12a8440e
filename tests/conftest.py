from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
import requests


APP_JS = """\
import { store } from './core/store.js';
import './core/eventBus.js';
// import { gone } from './missing.js';
export { store };

const lazy = () => import('./services/exporters.js');
console.log("</script> is just text in a module");
"""

STORE_JS = """\
import { eventBus } from './eventBus.js';

export const store = { title: 'Ünïcødé ✓ 😀', bus: eventBus };
"""

EVENT_BUS_JS = """\
export const eventBus = { listeners: new Map() };
"""

EXPORTERS_JS = """\
export * from '../core/store.js';
export const format = `import('./not-a-module.js')`;
"""

STYLES_CSS = """\
body { font-family: "Noto Sans", sans-serif; } /* ✓ */
"""

MODULES_TXT = """\
# entry first
src/app.js
src/core/store.js
src/core/eventBus.js
src/services/exporters.js
"""

DIAGRAM_JSON = """\
{
  "version": 1,
  "title": "My <Diagram> & \\"Co\\"",
  "nodes": [{"id": "n1", "label": "Ünïcødé"}],
  "edges": []
}
"""


@dataclass
class HostedApp:
    """A minimal hosted app laid out on disk."""

    root: Path
    modules: Path
    diagram: Path

    def write(self, relpath: str, text: str) -> Path:
        path = self.root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path


@pytest.fixture
def hosted_app(tmp_path: Path) -> HostedApp:
    """Provide a four-module app with a stylesheet, module list and diagram."""
    root = tmp_path / "app"
    app = HostedApp(root=root, modules=root / "modules.txt", diagram=tmp_path / "diagram.json")
    app.write("src/app.js", APP_JS)
    app.write("src/core/store.js", STORE_JS)
    app.write("src/core/eventBus.js", EVENT_BUS_JS)
    app.write("src/services/exporters.js", EXPORTERS_JS)
    app.write("assets/styles.css", STYLES_CSS)
    app.write("modules.txt", MODULES_TXT)
    app.diagram.write_text(DIAGRAM_JSON, encoding="utf-8")
    return app


class FakeResponse:
    def __init__(self, url: str, text: str | None) -> None:
        self.url = url
        self.status_code = 200 if text is not None else 404
        self.content = (text or "").encode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error for url: {self.url}")


class RecordingSession:
    """Stands in for ``requests.Session``; serves canned bodies and records URLs."""

    def __init__(self, pages: dict[str, str] | None = None, *, offline: bool = False) -> None:
        self.pages = pages or {}
        self.offline = offline
        self.requested: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.requested.append(url)
        if self.offline is True:
            raise requests.ConnectionError(f"network disabled: {url}")
        return FakeResponse(url, self.pages.get(url))


@pytest.fixture
def offline_session() -> RecordingSession:
    """A session that fails every request (and records that it was asked)."""
    return RecordingSession(offline=True)
