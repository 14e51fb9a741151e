import threading
import time
import urllib.request

from watchfiles import Change

from assetpipe.config import WatchRule
from assetpipe.core import Registry, Runner, TaskSpec
from assetpipe.server import ReloadHub
from assetpipe.watch import WatchLoop, watch_roots


class FakeServer:
    def __init__(self):
        self.hub = ReloadHub()


def _loop(ctx, counts, failing=()):
    def make(name):
        def fn(_ctx):
            counts[name] = counts.get(name, 0) + 1
            if name in failing:
                raise RuntimeError(f"{name} broke")

        return fn

    names = ["styles", "scripts", "reset-pages", "pages"]
    ctx.registry = Registry([TaskSpec(n, [], make(n)) for n in names])
    ctx.server = FakeServer()
    rules = [
        WatchRule(["src/assets/js/**/*.js"], ["scripts"], "reload"),
        WatchRule(["src/assets/scss/**/*"], ["styles"], "css"),
        WatchRule(["src/**/*.html"], ["reset-pages", "pages"], "page"),
    ]
    return WatchLoop(ctx, rules)


def _changes(ctx, *rels):
    return {(Change.modified, str(ctx.root / rel)) for rel in rels}


def test_batch_runs_each_task_once_and_reloads(ctx):
    counts = {}
    loop = _loop(ctx, counts)
    q = ctx.server.hub.subscribe()

    ok = loop.handle(
        _changes(
            ctx,
            "src/assets/scss/app.scss",
            "src/assets/scss/_base.scss",
            "src/partials/header.html",
            "src/pages/index.html",
        )
    )

    assert ok
    assert counts == {"styles": 1, "reset-pages": 1, "pages": 1}
    kinds = [q.get_nowait(), q.get_nowait()]
    assert ['"css"' in k for k in kinds] == [True, False]
    assert '"page"' in kinds[1]
    assert q.empty()


def test_failed_rerun_is_logged_and_skips_reload(ctx, caplog):
    counts = {}
    loop = _loop(ctx, counts, failing=("styles",))
    q = ctx.server.hub.subscribe()

    ok = loop.handle(_changes(ctx, "src/assets/scss/app.scss", "src/assets/js/app.js"))

    assert ok is False
    assert counts == {"scripts": 1, "styles": 1}
    assert '"reload"' in q.get_nowait()
    assert q.empty()
    assert "still watching" in caplog.text


def test_unrelated_and_outside_changes_are_ignored(ctx, tmp_path):
    counts = {}
    loop = _loop(ctx, counts)
    assert loop.handle({(Change.added, str(ctx.root / "notes.txt"))})
    assert loop.handle({(Change.added, str(tmp_path / "elsewhere.scss"))})
    assert counts == {}


def test_watch_roots_fold_nested_directories(ctx):
    rules = [
        WatchRule(["src/assets/js/**/*.js"], ["scripts"]),
        WatchRule(["src/**/*.html"], ["pages"]),
        WatchRule(["missing/**/*"], ["pages"]),
    ]
    assert watch_roots(ctx.root, rules) == [ctx.root / "src"]


def test_watch_serves_and_keeps_running_until_stopped(ctx, project):
    ctx.config.server.port = 0
    ctx.config.watch.debounce_ms = 50
    errors = []

    def target():
        try:
            Runner(ctx.registry, ctx).run("watch")
        except BaseException as e:  # noqa: BLE001
            errors.append(e)

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    deadline = time.monotonic() + 30
    while ctx.server is None and time.monotonic() < deadline:
        time.sleep(0.05)
    assert ctx.server is not None, errors

    url = ctx.server.url
    with urllib.request.urlopen(url + "/assets/css/app.css", timeout=5) as resp:
        assert resp.status == 200

    time.sleep(0.5)
    assert thread.is_alive()

    ctx.stop_event.set()
    thread.join(timeout=15)
    assert not thread.is_alive()
    assert errors == []
    assert ctx.server is None
