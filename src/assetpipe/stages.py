"""Transform stages for `FilePipeline`.

Each stage wraps one engine and passes its options through untouched;
invalid options surface as the engine's own error on the first file.
"""

from __future__ import annotations

import io
import json
import subprocess
from pathlib import PurePosixPath
from typing import List, Optional

import rjsmin
import sass
from PIL import Image

from .cache import compute_key
from .files import Asset, StageError
from .logging import get_logger


logger = get_logger("assetpipe.stages")


class SassCompile:
    """Compile ``.scss`` with libsass. Partials (``_name.scss``) are skipped.

    Minification is ``output_style="compressed"`` so the map libsass emits
    describes the bytes that ship.
    """

    def __init__(
        self,
        output_style: str = "nested",
        source_comments: bool = False,
        include_paths: Optional[List[str]] = None,
    ):
        self.output_style = output_style
        self.source_comments = source_comments
        self.include_paths = list(include_paths or [])

    def output_name(self, rel: PurePosixPath) -> PurePosixPath:
        return rel.with_suffix(".css")

    def __call__(self, asset: Asset, ctx) -> Optional[Asset]:
        if asset.rel.name.startswith("_"):
            return None
        include = [str(asset.source.parent)] + [str(ctx.path(p)) for p in self.include_paths]
        try:
            css, smap = sass.compile(
                filename=str(asset.source),
                output_style=self.output_style,
                source_comments=self.source_comments,
                include_paths=include,
                source_map_filename=str(asset.source.with_suffix(".css.map")),
                source_map_contents=True,
                omit_source_map_url=True,
            )
        except sass.CompileError as e:
            raise StageError("sass", asset.source, str(e)) from e
        return asset.evolve(
            rel=self.output_name(asset.rel), data=css, sourcemap=json.loads(smap)
        )


class Autoprefix:
    """Pipe CSS through an external PostCSS/autoprefixer command.

    With no command configured the stage passes files through.
    """

    def __init__(self, command: Optional[List[str]] = None):
        self.command = list(command or [])

    def __call__(self, asset: Asset, ctx) -> Asset:
        if not self.command:
            return asset
        try:
            proc = subprocess.run(
                self.command,
                input=asset.data,
                capture_output=True,
                cwd=ctx.root,
                check=False,
            )
        except FileNotFoundError as e:
            raise StageError("autoprefix", asset.source, f"command not found: {self.command[0]}") from e
        if proc.returncode != 0:
            raise StageError(
                "autoprefix", asset.source, proc.stderr.decode("utf-8", "replace").strip()
            )
        # the command rewrote the CSS; the compiler's map no longer applies
        return asset.evolve(data=proc.stdout, sourcemap=None)


def _line_count(data: bytes) -> int:
    return data.rstrip(b"\n").count(b"\n") + 1


def identity_map(asset: Asset) -> dict:
    """Line-for-line source map of an unchanged file onto itself."""
    lines = _line_count(asset.data)
    return {
        "version": 3,
        "file": asset.rel.name,
        "sources": [asset.rel.name],
        "sourcesContent": [asset.text()],
        "names": [],
        "mappings": "AAAA" + ";AACA" * (lines - 1),
    }


class SourceMapJS:
    """Attach an identity map so concatenated scripts still point at their sources."""

    def __call__(self, asset: Asset, ctx) -> Asset:
        return asset.evolve(sourcemap=identity_map(asset))


class MinifyJS:
    """Emit a minified ``<name>-min.js`` next to (or instead of) the source."""

    def __init__(self, min_suffix: str = "-min.js", keep_source: bool = True):
        self.min_suffix = min_suffix
        self.keep_source = keep_source

    def output_names(self, rel: PurePosixPath) -> List[PurePosixPath]:
        minified = rel.with_name(rel.stem + self.min_suffix)
        return [rel, minified] if self.keep_source else [minified]

    def __call__(self, asset: Asset, ctx) -> List[Asset]:
        # rjsmin cannot produce a map, so only the unminified copy keeps one
        minified = asset.evolve(
            rel=self.output_names(asset.rel)[-1],
            data=rjsmin.jsmin(asset.text()),
            sourcemap=None,
        )
        return [asset, minified] if self.keep_source else [minified]


class Concat:
    batch = True

    def __init__(self, name: str, separator: str = "\n"):
        self.name = name
        self.separator = separator.encode("utf-8")

    def output_name(self, rel: PurePosixPath) -> PurePosixPath:
        return rel.with_name(self.name)

    def __call__(self, assets: List[Asset], ctx) -> List[Asset]:
        if not assets:
            return []
        first = assets[0]
        parts = [a.data.rstrip(b"\n") for a in assets]
        sourcemap = None
        if all(a.sourcemap is not None for a in assets):
            # index map: each input keeps its own map at its line offset
            sections, line = [], 0
            for a, part in zip(assets, parts):
                sections.append({"offset": {"line": line, "column": 0}, "map": a.sourcemap})
                line += _line_count(part) - 1 + self.separator.count(b"\n")
            sourcemap = {"version": 3, "file": self.name, "sections": sections}
        return [
            Asset(
                source=first.source,
                rel=self.output_name(first.rel),
                data=self.separator.join(parts) + b"\n",
                sourcemap=sourcemap,
            )
        ]


_IMAGE_FORMATS = {".png": "PNG", ".jpg": "JPEG", ".jpeg": "JPEG", ".gif": "GIF"}


def optimize_image(data: bytes, suffix: str, options: dict) -> bytes:
    """Losslessly recompress PNG, JPEG and GIF with Pillow.

    Other formats (SVG) pass through. The original bytes win when recompression
    does not make the file smaller.
    """
    fmt = _IMAGE_FORMATS.get(suffix.lower())
    if fmt is None:
        return data
    out = io.BytesIO()
    with Image.open(io.BytesIO(data)) as img:
        if fmt == "PNG":
            img.save(out, "PNG", optimize=True, compress_level=options["png_compress_level"])
        elif fmt == "JPEG":
            img.save(
                out, "JPEG", quality="keep", optimize=True,
                progressive=options["jpeg_progressive"],
            )
        else:
            img.save(
                out, "GIF", save_all=getattr(img, "is_animated", False),
                optimize=True, interlace=options["gif_interlace"],
            )
    result = out.getvalue()
    return result if len(result) < len(data) else data


class OptimizeImage:
    """Cached image optimisation; unchanged files never reach Pillow twice."""

    def __init__(self, options: dict, use_cache: bool = True):
        self.options = dict(options)
        self.use_cache = use_cache

    def __call__(self, asset: Asset, ctx) -> Asset:
        suffix = asset.rel.suffix.lower()
        key = compute_key(asset.data, {**self.options, "suffix": suffix})
        if self.use_cache:
            cached = ctx.image_cache.get(key)
            if cached is not None:
                logger.debug("Cache hit: %s", asset.rel)
                return asset.evolve(data=cached)
        try:
            data = optimize_image(asset.data, suffix, self.options)
        except (OSError, ValueError) as e:
            raise StageError("images", asset.source, str(e)) from e
        if self.use_cache:
            ctx.image_cache.put(key, data)
        if len(data) < len(asset.data):
            logger.debug(
                "Optimized %s: %d -> %d bytes", asset.rel, len(asset.data), len(data)
            )
        return asset.evolve(data=data)


class ComposePage:
    """Render a page through the shared `PageComposer`."""

    def __call__(self, asset: Asset, ctx) -> Asset:
        return asset.evolve(data=ctx.composer.render(asset.text(), asset.rel))
