"""Dev server + watcher over the build output."""

from __future__ import annotations

from assetpipe import task
from assetpipe.watch import serve_and_watch


@task(name="watch", deps=["styles"])
def watch(ctx):
    """Serve the output with live reload and rebuild on change. Runs until interrupted."""
    serve_and_watch(ctx, ctx.dist, ctx.config.server.port, ctx.config.watch.rules)
