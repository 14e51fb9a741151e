"""Output cleanup tasks."""

from __future__ import annotations

import shutil

from assetpipe import task
from assetpipe.logging import get_logger


logger = get_logger("site_tasks.clean")


@task(name="clean")
def clean(ctx):
    """Remove the build output directory."""
    dist = ctx.dist
    if dist.exists():
        logger.info("Removing old files from %s", dist)
        shutil.rmtree(dist)


@task(name="cache:clear")
def clear_cache(ctx):
    """Drop cached optimised images."""
    removed = ctx.image_cache.clear()
    logger.info("Removed %d cached image(s)", removed)
