"""Asset pipeline for a static site.

Provides Task and Sequence primitives, a file pipeline with transform stages,
a live-reload dev server with a watch loop, and a Typer CLI. The concrete
tasks live in the `site_tasks` package.
"""

from .core import Registry, Runner, Sequence, TaskSpec, sequence, task  # re-export for convenience

__all__ = ["Registry", "Runner", "Sequence", "TaskSpec", "sequence", "task"]
