"""Page composition: pages + layouts + partials + helpers + data via Jinja2.

Layouts, partials, helpers and data are loaded once and kept until
`PageComposer.refresh()` is called; edits in between are not picked up.

``{{ value }}`` is HTML-escaped. Helpers that return markup should wrap it in
`markupsafe.Markup`, and templates can use ``|safe``.
"""

from __future__ import annotations

import importlib.util
import json
import threading
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional

import frontmatter
import yaml
from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PrefixLoader, select_autoescape
from markupsafe import Markup

from .logging import get_logger


logger = get_logger("assetpipe.templates")

class PageComposer:
    def __init__(
        self,
        root: Path,
        layouts: Path,
        partials: Path,
        helpers: Path,
        data: Path,
        default_layout: str = "default",
    ):
        self.root = Path(root)
        self.layouts = Path(layouts)
        self.partials = Path(partials)
        self.helpers = Path(helpers)
        self.data = Path(data)
        self.default_layout = default_layout
        self._env: Optional[Environment] = None
        self._lock = threading.Lock()

    def refresh(self) -> None:
        """Forget cached layouts, partials, helpers and data."""
        with self._lock:
            self._env = None
        logger.info("Cleared page composer cache")

    @property
    def env(self) -> Environment:
        with self._lock:
            if self._env is None:
                self._env = self._build_env()
            return self._env

    def _build_env(self) -> Environment:
        env = Environment(
            loader=ChoiceLoader(
                [
                    FileSystemLoader(str(self.partials)),
                    PrefixLoader({"layouts": FileSystemLoader(str(self.layouts))}),
                ]
            ),
            autoescape=select_autoescape(["html"], default_for_string=True),
            auto_reload=False,
            keep_trailing_newline=True,
        )
        for name, fn in self._load_helpers().items():
            env.globals[name] = fn
            env.filters[name] = fn
        env.globals.update(self._load_data())
        return env

    def _load_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if not self.data.is_dir():
            return data
        for p in sorted(self.data.iterdir()):
            if p.suffix in (".yml", ".yaml"):
                data[p.stem] = yaml.safe_load(p.read_text(encoding="utf-8"))
            elif p.suffix == ".json":
                data[p.stem] = json.loads(p.read_text(encoding="utf-8"))
        return data

    def _load_helpers(self) -> Dict[str, Any]:
        """Each ``helpers/<name>.py`` must define a callable called ``<name>``."""
        helpers: Dict[str, Any] = {}
        if not self.helpers.is_dir():
            return helpers
        for p in sorted(self.helpers.glob("*.py")):
            if p.name.startswith("_"):
                continue
            spec = importlib.util.spec_from_file_location(f"_page_helpers.{p.stem}", p)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            fn = getattr(module, p.stem, None)
            if not callable(fn):
                raise ValueError(f"Helper {p} does not define a callable '{p.stem}'")
            helpers[p.stem] = fn
        return helpers

    def render(self, text: str, rel: PurePosixPath) -> str:
        """Render one page; ``rel`` is its path below the pages root."""
        env = self.env
        post = frontmatter.loads(text)
        meta, body = post.metadata, post.content
        context = {
            **meta,
            "page": rel.stem,
            "root": "../" * (len(rel.parts) - 1),
        }
        html = env.from_string(body).render(context)
        layout = meta.get("layout", self.default_layout)
        if not layout or layout == "none":
            return html
        return env.get_template(f"layouts/{layout}.html").render(context, body=Markup(html))
