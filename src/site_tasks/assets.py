"""Assets copied unmodified: fonts and video."""

from __future__ import annotations

from assetpipe import task
from assetpipe.files import FilePipeline


@task(name="fonts")
def fonts(ctx):
    """Copy font files to the output tree."""
    opts = ctx.config.fonts
    FilePipeline("fonts", opts.sources, opts.dest).run(ctx)


@task(name="media")
def media(ctx):
    """Copy video assets to the output tree."""
    opts = ctx.config.media
    FilePipeline("media", opts.sources, opts.dest).run(ctx)
