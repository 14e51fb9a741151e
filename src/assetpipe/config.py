"""Build configuration.

One `BuildConfig` is loaded at process start from a YAML file and handed to
every task through the `BuildContext`. Missing keys fall back to the stock
project layout (``src`` -> ``dist``, ``static`` and ``styleguide`` beside them).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .utils import _get, as_list


DEFAULT_CONFIG = "configs/base.yaml"
RELOAD_KINDS = ("css", "page", "reload")


@dataclass
class Paths:
    src: str = "src"
    dist: str = "dist"
    static: str = "static"
    styleguide: str = "styleguide"
    cache: str = ".assetpipe-cache"


@dataclass
class StyleOptions:
    sources: List[str] = field(default_factory=lambda: ["src/assets/scss/*.scss"])
    dest: str = "dist/assets/css"
    output_style: str = "nested"
    source_comments: bool = False
    include_paths: List[str] = field(default_factory=list)
    minify: bool = True
    # e.g. ["npx", "postcss", "--use", "autoprefixer"]; empty disables the stage
    autoprefix_command: List[str] = field(default_factory=list)


@dataclass
class ScriptOptions:
    sources: List[str] = field(default_factory=lambda: ["src/assets/js/app.js"])
    dest: str = "dist/assets/js"
    concat: Optional[str] = None
    min_suffix: str = "-min.js"
    keep_source: bool = True


@dataclass
class ImageOptions:
    sources: List[str] = field(
        default_factory=lambda: [
            f"src/assets/img/**/*.{ext}" for ext in ("png", "jpg", "jpeg", "gif", "svg")
        ]
    )
    dest: str = "dist/assets/img"
    cache: bool = True
    png_compress_level: int = 9
    jpeg_progressive: bool = True
    gif_interlace: bool = True


@dataclass
class CopyOptions:
    sources: List[str]
    dest: str


@dataclass
class PageOptions:
    pages: str = "src/pages"
    layouts: str = "src/layouts"
    partials: str = "src/partials"
    helpers: str = "src/helpers"
    data: str = "src/data"
    dest: str = "dist"
    default_layout: str = "default"


@dataclass
class ServerOptions:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class WatchRule:
    patterns: List[str]
    tasks: List[str]
    reload: Optional[str] = None


def _default_watch_rules() -> List[WatchRule]:
    return [
        WatchRule(["src/assets/js/**/*.js"], ["scripts"], "reload"),
        WatchRule(["src/assets/scss/**/*"], ["styles"], "css"),
        WatchRule(["src/assets/img/**/*"], ["images"], "reload"),
        WatchRule(["src/assets/video/**/*"], ["media"], "reload"),
        WatchRule(["src/**/*.html"], ["reset-pages", "pages"], "page"),
    ]


@dataclass
class WatchOptions:
    debounce_ms: int = 100
    rules: List[WatchRule] = field(default_factory=_default_watch_rules)


@dataclass
class StyleguideOptions:
    title: str = "Shippy Styleguide"
    sources: List[str] = field(default_factory=lambda: ["src/**/scss/**/*.scss"])
    apply_styles: List[str] = field(
        default_factory=lambda: ["src/assets/scss/app.scss", "src/assets/scss/styleguide.scss"]
    )
    overview: str = "README.md"
    extra_head: List[str] = field(
        default_factory=lambda: ['<script src="{app_root}/static/js/app.js"></script>']
    )
    show_reference_numbers: bool = True
    frozen: bool = False
    frozen_app_root: str = "/styleguide"
    port: int = 3001

    @property
    def app_root(self) -> str:
        return self.frozen_app_root.rstrip("/") if self.frozen else ""


@dataclass
class BuildConfig:
    paths: Paths = field(default_factory=Paths)
    styles: StyleOptions = field(default_factory=StyleOptions)
    scripts: ScriptOptions = field(default_factory=ScriptOptions)
    images: ImageOptions = field(default_factory=ImageOptions)
    fonts: CopyOptions = field(
        default_factory=lambda: CopyOptions(
            sources=[f"src/assets/fonts/*.{ext}" for ext in ("eot", "woff", "woff2", "ttf", "otf")],
            dest="dist/assets/fonts",
        )
    )
    media: CopyOptions = field(
        default_factory=lambda: CopyOptions(
            sources=["src/assets/video/**/*"], dest="dist/assets/video"
        )
    )
    pages: PageOptions = field(default_factory=PageOptions)
    server: ServerOptions = field(default_factory=ServerOptions)
    watch: WatchOptions = field(default_factory=WatchOptions)
    styleguide: StyleguideOptions = field(default_factory=StyleguideOptions)
    sourcemaps: bool = True
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BuildConfig":
        cfg = cls()
        _apply(cfg.paths, _get(raw, "paths", default={}))
        _apply(cfg.styles, _get(raw, "styles", default={}))
        _apply(cfg.scripts, _get(raw, "scripts", default={}))
        _apply(cfg.images, _get(raw, "images", default={}))
        _apply(cfg.fonts, _get(raw, "fonts", default={}))
        _apply(cfg.media, _get(raw, "media", default={}))
        _apply(cfg.pages, _get(raw, "pages", default={}))
        _apply(cfg.server, _get(raw, "server", default={}))
        _apply(cfg.styleguide, _get(raw, "styleguide", default={}))

        watch = _get(raw, "watch", default={})
        if "debounce_ms" in watch:
            cfg.watch.debounce_ms = int(watch["debounce_ms"])
        if "rules" in watch:
            cfg.watch.rules = [
                WatchRule(
                    patterns=as_list(r.get("patterns")),
                    tasks=as_list(r.get("tasks")),
                    reload=r.get("reload"),
                )
                for r in watch["rules"] or []
            ]
            for rule in cfg.watch.rules:
                if rule.reload is not None and rule.reload not in RELOAD_KINDS:
                    raise ValueError(f"Unknown reload kind in watch rule: {rule.reload!r}")

        if "sourcemaps" in raw:
            cfg.sourcemaps = bool(raw["sourcemaps"])
        if raw.get("log_file"):
            cfg.log_file = str(raw["log_file"])

        return cfg


def _apply(section: Any, values: Dict[str, Any]) -> None:
    if not isinstance(values, dict):
        raise ValueError(
            f"Config section for {type(section).__name__} must be a mapping, got {values!r}"
        )
    for key, value in values.items():
        if not hasattr(section, key):
            raise ValueError(f"Unknown config key: {type(section).__name__}.{key}")
        current = getattr(section, key)
        if isinstance(current, list):
            value = as_list(value)
        setattr(section, key, value)


def load_config(path: str | Path, required: bool = True) -> BuildConfig:
    """Load the YAML config. An optional file that is missing yields the stock layout."""
    p = Path(path)
    if p.exists():
        with open(p, "r", encoding="utf-8") as f:
            cfg = BuildConfig.from_dict(yaml.safe_load(f) or {})
    elif required:
        raise FileNotFoundError(f"Config file not found: {p}")
    else:
        cfg = BuildConfig()
    if os.getenv("ASSETPIPE_PROD", "").strip().lower() in ("1", "true", "yes"):
        cfg.styleguide.frozen = True
    return cfg
