"""Watch/serve loop.

Changes are handled on a single thread. Events arriving while a re-run is in
flight are collected by watchfiles and delivered as the next batch, so a task
never runs twice at once and a burst of saves costs one rebuild. Within a
batch every task runs at most once.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from watchfiles import watch

from .config import WatchRule
from .core import Runner, TaskFailed
from .logging import get_logger
from .server import DevServer
from .utils import glob_base, matches


logger = get_logger("assetpipe.watch")


def watch_roots(root: Path, rules: Iterable[WatchRule]) -> List[Path]:
    """Existing directories to watch, with nested ones folded into their parent."""
    candidates = sorted(
        {(root / glob_base(pat)).resolve() for rule in rules for pat in rule.patterns}
    )
    roots: List[Path] = []
    for c in candidates:
        if not c.is_dir():
            continue
        if any(c == r or r in c.parents for r in roots):
            continue
        roots.append(c)
    return roots


class WatchLoop:
    def __init__(self, ctx, rules: Iterable[WatchRule]):
        self.ctx = ctx
        self.rules = list(rules)

    def _relative(self, path: str) -> Optional[str]:
        try:
            return Path(path).resolve().relative_to(self.ctx.root).as_posix()
        except ValueError:
            return None

    def matched(self, paths: Iterable[str]) -> List[Tuple[WatchRule, str]]:
        """Rules hit by a batch of changed paths, each with its first matching file."""
        rels = [r for r in (self._relative(p) for p in paths) if r is not None]
        hits: List[Tuple[WatchRule, str]] = []
        for rule in self.rules:
            for rel in rels:
                if matches(rel, rule.patterns):
                    hits.append((rule, rel))
                    break
        return hits

    def handle(self, changes: Iterable[Tuple[object, str]]) -> bool:
        """Re-run tasks for one batch of changes; True when every rule succeeded."""
        hits = self.matched(path for _, path in changes)
        if not hits:
            return True
        runner = Runner(self.ctx.registry, self.ctx, name="watch")
        ok = True
        for rule, rel in hits:
            logger.info("Changed: %s → %s", rel, ", ".join(rule.tasks))
            try:
                for name in rule.tasks:
                    runner.run(name)
            except TaskFailed as e:
                ok = False
                logger.error("%s; still watching", e)
                continue
            if rule.reload:
                self.ctx.notify(rule.reload, rel)
        return ok

    def run(self) -> None:
        roots = watch_roots(self.ctx.root, self.rules)
        if not roots:
            logger.warning("Nothing to watch: no watched directory exists")
            self.ctx.stop_event.wait()
            return
        logger.info("Watching for changes in %s", ", ".join(str(r) for r in roots))
        for changes in watch(
            *roots,
            debounce=self.ctx.config.watch.debounce_ms,
            stop_event=self.ctx.stop_event,
        ):
            self.handle(changes)


def serve_and_watch(ctx, root: Path, port: int, rules: Iterable[WatchRule]) -> None:
    """Serve ``root`` with live reload and rebuild on change until stopped."""
    server = DevServer(root, host=ctx.config.server.host, port=port)
    server.start()
    ctx.server = server
    try:
        WatchLoop(ctx, rules).run()
    finally:
        ctx.server = None
        server.stop()
