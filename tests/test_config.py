import pytest

from assetpipe.config import BuildConfig, load_config


def test_defaults_follow_stock_layout():
    cfg = BuildConfig()
    assert cfg.paths.dist == "dist"
    assert cfg.styles.sources == ["src/assets/scss/*.scss"]
    assert cfg.sourcemaps is True
    assert [r.tasks for r in cfg.watch.rules][-1] == ["reset-pages", "pages"]
    assert cfg.styleguide.app_root == ""


def test_yaml_overrides(tmp_path):
    p = tmp_path / "base.yaml"
    p.write_text(
        "sourcemaps: false\n"
        "styles:\n  output_style: compressed\n  include_paths: vendor\n"
        "server:\n  port: 4000\n"
        "watch:\n  debounce_ms: 10\n  rules:\n    - {patterns: 'src/**/*.md', tasks: pages, reload: page}\n"
    )
    cfg = load_config(p)
    assert cfg.sourcemaps is False
    assert cfg.styles.output_style == "compressed"
    assert cfg.styles.include_paths == ["vendor"]
    assert cfg.server.port == 4000
    assert cfg.watch.debounce_ms == 10
    assert len(cfg.watch.rules) == 1
    assert cfg.watch.rules[0].patterns == ["src/**/*.md"]
    assert cfg.watch.rules[0].tasks == ["pages"]


def test_unknown_key_is_rejected(tmp_path):
    p = tmp_path / "base.yaml"
    p.write_text("styles:\n  outputStyle: nested\n")
    with pytest.raises(ValueError, match="StyleOptions.outputStyle"):
        load_config(p)


def test_missing_optional_config_uses_defaults(tmp_path):
    assert load_config(tmp_path / "absent.yaml", required=False) == BuildConfig()


def test_missing_required_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_prod_env_freezes_styleguide(tmp_path, monkeypatch):
    monkeypatch.setenv("ASSETPIPE_PROD", "1")
    cfg = load_config(tmp_path / "absent.yaml", required=False)
    assert cfg.styleguide.frozen is True
    assert cfg.styleguide.app_root == "/styleguide"
