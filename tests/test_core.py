import threading
import time

import pytest

from assetpipe.core import GraphError, Registry, Runner, TaskFailed, TaskSpec, sequence, topo_sort


def _spec(name, deps=(), fn=None):
    return TaskSpec(name=name, deps=list(deps), fn=fn or (lambda ctx: None))


def _recording(log, name, delay=0.0, fail=False):
    def fn(ctx):
        if delay:
            time.sleep(delay)
        if fail:
            raise RuntimeError(f"{name} broke")
        log.append(name)

    return fn


def test_topo_sort_orders_prerequisites_first():
    order = topo_sort(["c", "b", "a"], [("a", "b"), ("b", "c")])
    assert order == ["a", "b", "c"]


def test_validate_rejects_unknown_prerequisite():
    reg = Registry([_spec("pages", deps=["missing"])])
    with pytest.raises(GraphError, match="unknown task 'missing'"):
        reg.validate()


def test_validate_detects_cycle_before_anything_runs():
    calls = []
    reg = Registry(
        [
            _spec("a", deps=["c"], fn=_recording(calls, "a")),
            _spec("b", deps=["a"], fn=_recording(calls, "b")),
            _spec("c", deps=["b"], fn=_recording(calls, "c")),
        ]
    )
    with pytest.raises(GraphError, match="Cycle detected"):
        reg.validate()
    assert calls == []


def test_validate_rejects_unknown_sequence_step():
    reg = Registry([_spec("clean")], [sequence("build", "clean", ("styles", "clean"))])
    with pytest.raises(GraphError, match="unknown task 'styles'"):
        reg.validate()


def test_duplicate_names_are_rejected():
    reg = Registry([_spec("clean")])
    with pytest.raises(GraphError, match="Duplicate"):
        reg.add_sequence(sequence("clean", "clean"))


def test_prerequisites_run_first_and_once():
    log = []
    reg = Registry(
        [
            _spec("base", fn=_recording(log, "base")),
            _spec("left", deps=["base"], fn=_recording(log, "left")),
            _spec("right", deps=["base"], fn=_recording(log, "right")),
            _spec("top", deps=["left", "right"], fn=_recording(log, "top")),
        ]
    )
    reg.validate()
    Runner(reg, ctx=None).run("top")
    assert log == ["base", "left", "right", "top"]


def test_failed_prerequisite_blocks_dependants():
    log = []
    reg = Registry(
        [
            _spec("styles", fn=_recording(log, "styles", fail=True)),
            _spec("watch", deps=["styles"], fn=_recording(log, "watch")),
        ]
    )
    runner = Runner(reg, ctx=None)
    with pytest.raises(TaskFailed) as info:
        runner.run("watch")
    assert info.value.name == "styles"
    assert isinstance(info.value.cause, RuntimeError)
    assert log == []
    statuses = {s["name"]: s["status"] for s in runner.report.steps}
    assert statuses == {"styles": "error", "watch": "skipped"}


def test_sequence_step_finishes_before_group_starts():
    log = []
    reg = Registry(
        [
            _spec("clean", fn=_recording(log, "clean")),
            _spec("styles", fn=_recording(log, "styles", delay=0.1)),
            _spec("scripts", fn=_recording(log, "scripts")),
            _spec("images", fn=_recording(log, "images")),
        ],
        [sequence("build", "clean", "styles", ("scripts", "images"))],
    )
    reg.validate()
    Runner(reg, ctx=None).run("build")
    assert log[:2] == ["clean", "styles"]
    assert sorted(log[2:]) == ["images", "scripts"]


def test_group_waits_for_every_member_before_failing():
    log = []
    reg = Registry(
        [
            _spec("fast", fn=_recording(log, "fast", fail=True)),
            _spec("slow", fn=_recording(log, "slow", delay=0.2)),
            _spec("after", fn=_recording(log, "after")),
        ],
        [sequence("build", ("fast", "slow"), "after")],
    )
    with pytest.raises(TaskFailed, match="fast"):
        Runner(reg, ctx=None).run("build")
    assert log == ["slow"]


def test_shared_prerequisite_runs_once_across_group():
    count = {"n": 0}
    lock = threading.Lock()

    def base(ctx):
        time.sleep(0.05)
        with lock:
            count["n"] += 1

    reg = Registry(
        [
            _spec("base", fn=base),
            _spec("a", deps=["base"]),
            _spec("b", deps=["base"]),
            _spec("c", deps=["base"]),
        ],
        [sequence("all", ("a", "b", "c"))],
    )
    Runner(reg, ctx=None).run("all")
    assert count["n"] == 1


def test_task_receives_context():
    seen = []
    reg = Registry([_spec("probe", fn=seen.append)])
    marker = object()
    Runner(reg, ctx=marker).run("probe")
    assert seen == [marker]


def test_report_is_written(tmp_path):
    reg = Registry([_spec("clean")])
    runner = Runner(reg, ctx=None, name="clean")
    runner.run("clean")
    out = tmp_path / "runs" / "last-run.json"
    runner.report.write(out)
    text = out.read_text()
    assert '"target": "clean"' in text
    assert '"status": "ok"' in text
