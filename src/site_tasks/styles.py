"""Sass → CSS with autoprefixing, minification and source maps."""

from __future__ import annotations

from assetpipe import task
from assetpipe.files import FilePipeline
from assetpipe.stages import Autoprefix, SassCompile


def style_pipeline(ctx) -> FilePipeline:
    opts = ctx.config.styles
    stages = [
        SassCompile(
            output_style="compressed" if opts.minify else opts.output_style,
            source_comments=opts.source_comments,
            include_paths=opts.include_paths,
        ),
        Autoprefix(opts.autoprefix_command),
    ]
    return FilePipeline("styles", opts.sources, opts.dest, stages)


@task(name="styles")
def styles(ctx):
    """Compile Sass into CSS."""
    style_pipeline(ctx).run(ctx)
