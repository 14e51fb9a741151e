"""Style guide: documentation pages from KSS comments plus the styles they show."""

from __future__ import annotations

from assetpipe import task
from assetpipe import kss
from assetpipe.cache import atomic_write
from assetpipe.config import WatchRule
from assetpipe.files import FilePipeline
from assetpipe.logging import get_logger
from assetpipe.stages import Concat, SassCompile
from assetpipe.utils import expand_globs
from assetpipe.watch import serve_and_watch


logger = get_logger("site_tasks.styleguide")


@task(name="styleguide:generate")
def generate(ctx):
    """Build the style guide pages from documented SCSS."""
    opts = ctx.config.styleguide
    out = ctx.path(ctx.config.paths.styleguide)
    files = [p for p, _ in expand_globs(opts.sources, ctx.root)]
    sections = kss.collect(files, ctx.root)
    overview_path = ctx.path(opts.overview)
    overview = overview_path.read_text(encoding="utf-8") if overview_path.is_file() else ""
    pages = kss.render(
        sections,
        title=opts.title,
        app_root=opts.app_root,
        overview=overview,
        extra_head=opts.extra_head,
        show_reference_numbers=opts.show_reference_numbers,
    )
    for rel, html in pages.items():
        atomic_write(out / rel, html.encode("utf-8"))
    logger.info(
        "Style guide: %d section(s) from %d file(s) → %s (%s)",
        len(sections), len(files), out, "frozen" if opts.frozen else "preview",
    )


@task(name="styleguide:apply-styles")
def apply_styles(ctx):
    """Compile the site styles the style guide examples render with."""
    opts = ctx.config
    FilePipeline(
        "styleguide-styles",
        opts.styleguide.apply_styles,
        opts.paths.styleguide,
        [SassCompile(include_paths=opts.styles.include_paths), Concat("styleguide-app.css")],
    ).run(ctx)


def _copy(ctx, name: str, sub: str):
    static = ctx.config.paths.static
    dest = f"{ctx.config.paths.styleguide}/static/{sub}"
    FilePipeline(name, [f"{static}/{sub}/*"], dest).run(ctx)


@task(name="styleguide:images")
def images(ctx):
    """Copy static images into the style guide."""
    _copy(ctx, "styleguide-images", "img")


@task(name="styleguide:js")
def scripts(ctx):
    """Copy static scripts into the style guide."""
    _copy(ctx, "styleguide-js", "js")


@task(
    name="styleguide",
    deps=["styleguide:generate", "styleguide:apply-styles", "styleguide:images", "styleguide:js"],
)
def styleguide(ctx):
    """Generate the complete style guide."""


@task(name="styleguide:watch", deps=["styleguide"])
def watch(ctx):
    """Preview the style guide and regenerate it when SCSS changes."""
    opts = ctx.config.styleguide
    rules = [WatchRule(patterns=opts.sources, tasks=["styleguide"], reload="page")]
    serve_and_watch(ctx, ctx.path(ctx.config.paths.styleguide), opts.port, rules)
