from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cache import ContentCache
from .config import BuildConfig
from .core import Registry
from .server import DevServer
from .templates import PageComposer


@dataclass
class BuildContext:
    """Everything a task may touch, built once per process.

    `server` is None until a dev server is started; reload notifications
    are dropped without one.
    """

    root: Path
    config: BuildConfig
    composer: PageComposer
    image_cache: ContentCache
    registry: Optional[Registry] = None
    server: Optional[DevServer] = None
    stop_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def create(cls, config: BuildConfig, root: Path | str = ".") -> "BuildContext":
        root = Path(root).resolve()
        pages = config.pages
        composer = PageComposer(
            root=root / pages.pages,
            layouts=root / pages.layouts,
            partials=root / pages.partials,
            helpers=root / pages.helpers,
            data=root / pages.data,
            default_layout=pages.default_layout,
        )
        return cls(
            root=root,
            config=config,
            composer=composer,
            image_cache=ContentCache(root / config.paths.cache / "images"),
        )

    def path(self, rel: str) -> Path:
        return self.root / rel

    @property
    def dist(self) -> Path:
        return self.root / self.config.paths.dist

    def notify(self, kind: str, path: str = "") -> None:
        if self.server is not None:
            self.server.hub.notify(kind, path)
