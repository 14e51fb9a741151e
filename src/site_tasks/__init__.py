"""Task modules live here.

Each module declares tasks with `@assetpipe.task(name=..., deps=[...])`; the
CLI imports every module in this package and collects them, together with the
module-level `Sequence` objects in `sequences.py`.

Keep shared helpers out of this file; one concern per module.
"""
