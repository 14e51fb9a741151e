"""Pages composed from layouts, partials, helpers and data."""

from __future__ import annotations

from assetpipe import task
from assetpipe.files import FilePipeline
from assetpipe.stages import ComposePage


@task(name="pages")
def pages(ctx):
    """Compose pages into HTML."""
    opts = ctx.config.pages
    FilePipeline("pages", [f"{opts.pages}/**/*.html"], opts.dest, [ComposePage()]).run(ctx)


@task(name="reset-pages")
def reset_pages(ctx):
    """Clear cached layouts, partials, helpers and data."""
    ctx.composer.refresh()
