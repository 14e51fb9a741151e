from __future__ import annotations

import json
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence as Seq, Tuple, Union

from .logging import get_logger


Step = Union[str, Tuple[str, ...]]


class GraphError(ValueError):
    """The task graph is malformed (unknown name, cycle)."""


class TaskFailed(RuntimeError):
    def __init__(self, name: str, cause: BaseException | None = None):
        self.name = name
        self.cause = cause
        msg = f"Task '{name}' failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


@dataclass
class TaskSpec:
    name: str
    deps: List[str]
    fn: Callable[..., None]
    help: str = ""


@dataclass
class Sequence:
    name: str
    steps: List[Step]

    def describe(self) -> str:
        return " → ".join(s if isinstance(s, str) else "{" + ", ".join(s) + "}" for s in self.steps)


def task(name: str, deps: Iterable[str] = ()):
    """Decorator to declare a task on a function.

    The wrapped function receives the `BuildContext` and signals completion by
    returning; raising marks the task failed.
    """

    def deco(fn: Callable[..., None]):
        doc = (fn.__doc__ or "").strip().splitlines()
        spec = TaskSpec(name=name, deps=list(deps), fn=fn, help=doc[0] if doc else "")
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


def sequence(name: str, *steps: Step) -> Sequence:
    return Sequence(name=name, steps=[tuple(s) if isinstance(s, (list, tuple)) else s for s in steps])


def topo_sort(nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> list[str]:
    nodes = list(nodes)
    incoming = {n: set() for n in nodes}
    outgoing = {n: set() for n in nodes}
    for u, v in edges:
        if u not in incoming or v not in incoming:
            raise GraphError(f"Edge references unknown node: {(u, v)}")
        outgoing[u].add(v)
        incoming[v].add(u)
    ordered: list[str] = []
    roots = [n for n in reversed(nodes) if not incoming[n]]
    while roots:
        n = roots.pop()
        ordered.append(n)
        for m in sorted(outgoing[n]):
            incoming[m].discard(n)
            outgoing[n].discard(m)
            if not incoming[m]:
                roots.append(m)
    cyclic = [n for n in nodes if incoming[n]]
    if cyclic:
        raise GraphError(f"Cycle detected in task graph: {', '.join(sorted(cyclic))}")
    return ordered


class Registry:
    def __init__(self, tasks: Iterable[TaskSpec] = (), sequences: Iterable[Sequence] = ()):
        self.tasks: dict[str, TaskSpec] = {}
        self.sequences: dict[str, Sequence] = {}
        for spec in tasks:
            self.register(spec)
        for seq in sequences:
            self.add_sequence(seq)

    def register(self, spec: TaskSpec) -> None:
        if spec.name in self.tasks or spec.name in self.sequences:
            raise GraphError(f"Duplicate task name: {spec.name}")
        self.tasks[spec.name] = spec

    def add_sequence(self, seq: Sequence) -> None:
        if seq.name in self.tasks or seq.name in self.sequences:
            raise GraphError(f"Duplicate task name: {seq.name}")
        self.sequences[seq.name] = seq

    def __contains__(self, name: str) -> bool:
        return name in self.tasks or name in self.sequences

    def edges(self) -> list[tuple[str, str]]:
        return [(dep, spec.name) for spec in self.tasks.values() for dep in spec.deps]

    def validate(self) -> list[str]:
        """Check names and cycles before anything runs; returns a topological order."""
        for spec in self.tasks.values():
            for dep in spec.deps:
                if dep not in self.tasks:
                    raise GraphError(f"Task '{spec.name}' depends on unknown task '{dep}'")
        for seq in self.sequences.values():
            for step in seq.steps:
                for name in (step,) if isinstance(step, str) else step:
                    if name not in self.tasks:
                        raise GraphError(
                            f"Sequence '{seq.name}' references unknown task '{name}'"
                        )
        return topo_sort(self.tasks.keys(), self.edges())


@dataclass
class RunReport:
    target: str
    started: float = field(default_factory=time.time)
    steps: list[dict] = field(default_factory=list)

    def record(self, name: str, status: str, seconds: float, error: str | None = None) -> None:
        entry = {"name": name, "status": status, "seconds": round(seconds, 3)}
        if error:
            entry["error"] = error
        self.steps.append(entry)

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                {"target": self.target, "started": self.started, "steps": self.steps},
                f,
                indent=2,
            )


class Runner:
    """One run session over a validated registry.

    Each task gets a single completion future per session: the first caller
    executes it, later callers (including concurrent ones) wait on the result.
    A task whose prerequisite failed is never started.
    """

    def __init__(self, registry: Registry, ctx, name: str = "run"):
        self.registry = registry
        self.ctx = ctx
        self.logger = get_logger(f"assetpipe.{name}")
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()
        self.report = RunReport(target=name)

    def run(self, name: str) -> None:
        if name in self.registry.sequences:
            self.run_sequence(name)
            return
        self._execute(name)

    def run_sequence(self, name: str) -> None:
        seq = self.registry.sequences[name]
        self.logger.info("Sequence %s: %s", name, seq.describe())
        for step in seq.steps:
            if isinstance(step, str):
                self._execute(step)
            else:
                self._execute_group(step)

    def _execute_group(self, names: Seq[str]) -> None:
        # Every started member is awaited before a failure is reported.
        with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="task") as pool:
            futures = {pool.submit(self._execute, n): n for n in names}
            wait(futures)
        for fut, n in futures.items():
            exc = fut.exception()
            if exc is not None:
                raise exc

    def _execute(self, name: str) -> None:
        if name not in self.registry.tasks:
            raise GraphError(f"Unknown task: {name}")
        with self._lock:
            fut = self._futures.get(name)
            owner = fut is None
            if owner:
                fut = Future()
                self._futures[name] = fut
        if not owner:
            fut.result()
            return

        spec = self.registry.tasks[name]
        try:
            for dep in spec.deps:
                self._execute(dep)
        except TaskFailed as e:
            self.logger.error("Skip %s: prerequisite '%s' failed", name, e.name)
            self.report.record(name, "skipped", 0.0, error=str(e))
            fut.set_exception(e)
            raise

        step_logger = get_logger(f"assetpipe.task.{name}")
        step_logger.info("Starting '%s'", name)
        t0 = time.monotonic()
        try:
            spec.fn(self.ctx)
        except Exception as e:  # noqa: BLE001
            elapsed = time.monotonic() - t0
            step_logger.error("'%s' errored after %.2fs: %s", name, elapsed, e)
            self.report.record(name, "error", elapsed, error=str(e))
            failure = TaskFailed(name, e)
            failure.__cause__ = e
            fut.set_exception(failure)
            raise failure from e
        elapsed = time.monotonic() - t0
        step_logger.info("Finished '%s' after %.2fs", name, elapsed)
        self.report.record(name, "ok", elapsed)
        fut.set_result(None)
