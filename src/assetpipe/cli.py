from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path
from typing import Optional, Tuple

import typer
from dotenv import load_dotenv

from .config import DEFAULT_CONFIG, load_config
from .context import BuildContext
from .core import GraphError, Registry, Runner, Sequence, TaskFailed, TaskSpec
from .logging import attach_log_file, get_logger


app = typer.Typer(add_completion=False, help="Static-site asset pipeline")
log = get_logger("assetpipe.cli")

TASKS_PACKAGE = "site_tasks"

ConfigOption = typer.Option(
    None, "--config", envvar="ASSETPIPE_CONFIG", help=f"Path to YAML config [default: {DEFAULT_CONFIG}]"
)
RootOption = typer.Option(".", "--root", help="Project root the config paths are relative to")


def discover_tasks(package: str = TASKS_PACKAGE) -> Registry:
    """Import all modules in the tasks package and collect tasks and sequences."""
    registry = Registry()
    try:
        pkg = importlib.import_module(package)
    except ModuleNotFoundError:
        log.warning("No tasks package found: %s", package)
        return registry
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{package}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = getattr(obj, "_task_spec", None)
            if isinstance(spec, TaskSpec) and registry.tasks.get(spec.name) is not spec:
                registry.register(spec)
            elif isinstance(obj, Sequence) and registry.sequences.get(obj.name) is not obj:
                registry.add_sequence(obj)
    return registry


def bootstrap(config: Optional[str], root: str) -> Tuple[Registry, BuildContext]:
    load_dotenv()
    root_path = Path(root).resolve()
    cfg_path = Path(config or DEFAULT_CONFIG)
    if not cfg_path.is_absolute():
        cfg_path = root_path / cfg_path
    cfg = load_config(cfg_path, required=config is not None)
    attach_log_file(root_path / cfg.log_file if cfg.log_file else None)

    registry = discover_tasks()
    try:
        registry.validate()
        for rule in cfg.watch.rules:
            for name in rule.tasks:
                if name not in registry.tasks:
                    raise GraphError(f"Watch rule {rule.patterns} names unknown task '{name}'")
    except GraphError as e:
        typer.echo(f"Invalid task graph: {e}", err=True)
        raise typer.Exit(code=2)
    ctx = BuildContext.create(cfg, root_path)
    ctx.registry = registry
    return registry, ctx


def execute(target: str, config: Optional[str], root: str) -> int:
    registry, ctx = bootstrap(config, root)
    if target not in registry:
        typer.echo(f"Task not found: {target}", err=True)
        return 1
    runner = Runner(registry, ctx, name=target)
    code = 0
    try:
        runner.run(target)
    except TaskFailed as e:
        log.error("%s", e)
        code = 1
    except KeyboardInterrupt:
        ctx.stop_event.set()
        log.info("Interrupted, shutting down")
    finally:
        runner.report.write(ctx.root / ctx.config.paths.cache / "runs" / "last-run.json")
    failed = [s["name"] for s in runner.report.steps if s["status"] != "ok"]
    if failed:
        log.error("'%s' failed (%s)", target, ", ".join(failed))
    elif code == 0:
        log.info("'%s' finished: %d task(s)", target, len(runner.report.steps))
    return code


@app.command("list")
def list_tasks(config: Optional[str] = ConfigOption, root: str = RootOption):
    """List tasks with their prerequisites, and the sequences."""
    registry, _ = bootstrap(config, root)
    typer.echo("Tasks:")
    for name in sorted(registry.tasks):
        spec = registry.tasks[name]
        deps = f" [after: {', '.join(spec.deps)}]" if spec.deps else ""
        typer.echo(f"- {name}{deps}  {spec.help}".rstrip())
    typer.echo("Sequences:")
    for name in sorted(registry.sequences):
        typer.echo(f"- {name}: {registry.sequences[name].describe()}")


@app.command()
def run(
    name: str = typer.Argument("default", help="Task or sequence to run"),
    config: Optional[str] = ConfigOption,
    root: str = RootOption,
):
    """Run a task or sequence. Without a name, starts the dev server and watcher."""
    raise typer.Exit(code=execute(name, config, root))


@app.command()
def build(config: Optional[str] = ConfigOption, root: str = RootOption):
    """Produce production assets and exit."""
    raise typer.Exit(code=execute("build", config, root))


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
