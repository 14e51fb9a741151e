"""File pipeline primitive: glob -> stages -> destination.

Error policy, shared by every task: a stage failure drops that file, the
remaining files still go through, and the task then fails with a
`PipelineError` naming every failed file. The failed file's previous output
is removed so a stale artifact never passes for a fresh one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional

from .cache import atomic_write
from .logging import get_logger
from .utils import expand_globs


@dataclass
class Asset:
    source: Path
    rel: PurePosixPath
    data: bytes
    sourcemap: Optional[dict] = None

    def text(self) -> str:
        return self.data.decode("utf-8")

    def evolve(self, **changes) -> "Asset":
        if isinstance(changes.get("data"), str):
            changes["data"] = changes["data"].encode("utf-8")
        return replace(self, **changes)


class StageError(RuntimeError):
    def __init__(self, stage: str, source: Path, message: str):
        self.stage = stage
        self.source = source
        super().__init__(f"[{stage}] {source}: {message}")


class PipelineError(RuntimeError):
    def __init__(self, name: str, failures: Dict[Path, BaseException]):
        self.name = name
        self.failures = failures
        files = ", ".join(str(p) for p in failures)
        super().__init__(f"{name}: {len(failures)} file(s) failed: {files}")


# A stage maps one asset to zero, one or several assets. Stages flagged with
# ``batch = True`` receive the whole list instead (e.g. concatenation).
Stage = Callable[..., object]


def _outputs(result) -> List[Asset]:
    if result is None:
        return []
    if isinstance(result, Asset):
        return [result]
    return list(result)


def _comment(rel: PurePosixPath, map_name: str) -> bytes:
    if rel.suffix == ".css":
        return f"\n/*# sourceMappingURL={map_name} */\n".encode("utf-8")
    return f"\n//# sourceMappingURL={map_name}\n".encode("utf-8")


class FilePipeline:
    def __init__(
        self,
        name: str,
        sources: Iterable[str],
        dest: str,
        stages: Iterable[Stage] = (),
    ):
        self.name = name
        self.sources = list(sources)
        self.dest = dest
        self.stages = list(stages)
        self.logger = get_logger(f"assetpipe.files.{name}")

    def _final_rels(self, rel: PurePosixPath, start: int = 0) -> List[PurePosixPath]:
        """Every output path ``rel`` would have produced from stage ``start`` on."""
        rels = [rel]
        for stage in self.stages[start:]:
            fan_out = getattr(stage, "output_names", None)
            rename = getattr(stage, "output_name", None)
            if fan_out is not None:
                rels = [r for prev in rels for r in fan_out(prev)]
            elif rename is not None:
                rels = [rename(r) for r in rels]
        return rels

    def run(self, ctx) -> List[Path]:
        matched = expand_globs(self.sources, ctx.root)
        if not matched:
            self.logger.warning("No files matched %s", ", ".join(self.sources))
        dest = ctx.path(self.dest)
        failures: Dict[Path, BaseException] = {}
        failed_rels: List[PurePosixPath] = []

        assets: List[Asset] = []
        for path, base in matched:
            rel = PurePosixPath(path.relative_to(base).as_posix())
            try:
                assets.append(Asset(source=path, rel=rel, data=path.read_bytes()))
            except OSError as e:
                self.logger.error("Cannot read %s: %s", path, e)
                failures[path] = e
                failed_rels.extend(self._final_rels(rel))

        for index, stage in enumerate(self.stages):
            if getattr(stage, "batch", False):
                assets = _outputs(stage(assets, ctx))
                continue
            survivors: List[Asset] = []
            for asset in assets:
                try:
                    survivors.extend(_outputs(stage(asset, ctx)))
                except Exception as e:  # noqa: BLE001
                    self.logger.error("%s", e if isinstance(e, StageError) else f"{asset.source}: {e}")
                    failures[asset.source] = e
                    failed_rels.extend(self._final_rels(asset.rel, index))
            assets = survivors

        written = [self._write(asset, dest, ctx.config.sourcemaps) for asset in assets]

        # a batch output built from the surviving files is fresh, not stale
        fresh = {asset.rel for asset in assets}
        for rel in dict.fromkeys(failed_rels):
            if rel in fresh:
                continue
            for stale in (dest / rel, dest / f"{rel}.map"):
                if stale.exists():
                    stale.unlink()
                    self.logger.info("Removed stale output %s", stale)

        if failures:
            raise PipelineError(self.name, failures)
        self.logger.info("Wrote %d file(s) to %s", len(written), self.dest)
        return written

    def _write(self, asset: Asset, dest: Path, sourcemaps: bool) -> Path:
        out = dest / asset.rel
        data = asset.data
        if sourcemaps and asset.sourcemap is not None:
            map_name = f"{asset.rel.name}.map"
            smap = dict(asset.sourcemap)
            smap["file"] = asset.rel.name
            atomic_write(out.parent / map_name, json.dumps(smap).encode("utf-8"))
            data = data.rstrip(b"\n") + _comment(asset.rel, map_name)
        atomic_write(out, data)
        return out
