"""JavaScript: optional concatenation, then minification."""

from __future__ import annotations

from assetpipe import task
from assetpipe.files import FilePipeline
from assetpipe.stages import Concat, MinifyJS, SourceMapJS


@task(name="scripts")
def scripts(ctx):
    """Minify scripts into the output tree."""
    opts = ctx.config.scripts
    stages = [SourceMapJS()]
    if opts.concat:
        stages.append(Concat(opts.concat))
    stages.append(MinifyJS(min_suffix=opts.min_suffix, keep_source=opts.keep_source))
    FilePipeline("scripts", opts.sources, opts.dest, stages).run(ctx)
