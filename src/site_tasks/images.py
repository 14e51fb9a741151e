"""Image optimisation, cached across runs."""

from __future__ import annotations

from assetpipe import task
from assetpipe.files import FilePipeline
from assetpipe.stages import OptimizeImage


@task(name="images")
def images(ctx):
    """Optimise images into the output tree."""
    opts = ctx.config.images
    stage = OptimizeImage(
        {
            "png_compress_level": opts.png_compress_level,
            "jpeg_progressive": opts.jpeg_progressive,
            "gif_interlace": opts.gif_interlace,
        },
        use_cache=opts.cache,
    )
    FilePipeline("images", opts.sources, opts.dest, [stage]).run(ctx)
