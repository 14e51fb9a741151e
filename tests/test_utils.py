import pytest

from assetpipe.utils import _get, expand_globs, glob_base, glob_match


@pytest.mark.parametrize(
    "pattern,base",
    [
        ("src/assets/img/**/*.png", "src/assets/img"),
        ("src/assets/scss/*.scss", "src/assets/scss"),
        ("src/**/scss/**/*.scss", "src"),
        ("src/assets/js/app.js", "src/assets/js"),
        ("*.html", "."),
    ],
)
def test_glob_base(pattern, base):
    assert glob_base(pattern) == base


def test_double_star_matches_zero_or_more_directories():
    assert glob_match("src/assets/img/logo.png", "src/assets/img/**/*.png")
    assert glob_match("src/assets/img/a/b/logo.png", "src/assets/img/**/*.png")
    assert not glob_match("src/assets/img/logo.jpg", "src/assets/img/**/*.png")


def test_single_star_stays_within_a_directory():
    assert glob_match("src/assets/scss/app.scss", "src/assets/scss/*.scss")
    assert not glob_match("src/assets/scss/vendor/x.scss", "src/assets/scss/*.scss")


def test_expand_globs_keeps_base_and_is_fresh(tmp_path):
    (tmp_path / "src/img/icons").mkdir(parents=True)
    (tmp_path / "src/img/a.png").write_bytes(b"a")
    (tmp_path / "src/img/icons/b.png").write_bytes(b"b")

    found = expand_globs(["src/img/**/*.png", "src/img/a.png"], tmp_path)
    rels = [p.relative_to(base).as_posix() for p, base in found]
    assert rels == ["a.png", "icons/b.png"]

    (tmp_path / "src/img/c.png").write_bytes(b"c")
    assert len(expand_globs(["src/img/**/*.png"], tmp_path)) == 3


def test_expand_globs_missing_base_is_empty(tmp_path):
    assert expand_globs(["nowhere/**/*"], tmp_path) == []


def test_nested_get():
    d = {"a": {"b": {"c": 1}}}
    assert _get(d, "a", "b", "c") == 1
    assert _get(d, "a", "x", default=5) == 5
