from pathlib import Path

import pytest
from PIL import Image

from assetpipe.cli import discover_tasks
from assetpipe.config import BuildConfig
from assetpipe.context import BuildContext


SITE_FILES = {
    "src/assets/scss/app.scss": "@import 'base';\n$ink: #333;\n.btn { color: $ink; .icon { display: block; } }\n",
    "src/assets/scss/_base.scss": "body { margin: 0; }\n",
    "src/assets/js/app.js": "function add(a, b) {\n  // sum two numbers\n  return a + b;\n}\n",
    "src/assets/fonts/site.woff": "wOFF",
    "src/assets/video/intro/clip.mp4": "not really a video",
    "src/layouts/default.html": "<html><body>{{ body }}</body></html>\n",
    "src/partials/header.html": "<header>Header v1</header>\n",
    "src/pages/index.html": "---\ntitle: Home\n---\n{% include 'header.html' %}<h1>{{ title }}</h1>\n",
    "src/pages/about/team.html": "<p>{{ site.name|shout }}</p><a href=\"{{ root }}index.html\">home</a>\n",
    "src/data/site.yml": "name: Shippy\n",
    "src/helpers/shout.py": "def shout(text):\n    return text.upper()\n",
}


def write_files(root: Path, files: dict) -> None:
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content, encoding="utf-8")


@pytest.fixture
def project(tmp_path) -> Path:
    root = tmp_path / "site"
    write_files(root, SITE_FILES)
    img = root / "src/assets/img"
    (img / "icons").mkdir(parents=True)
    Image.new("RGB", (48, 48), (200, 30, 30)).save(img / "logo.png")
    Image.new("P", (16, 16), 3).save(img / "icons/dot.gif")
    (img / "mark.svg").write_text('<svg xmlns="http://www.w3.org/2000/svg"/>\n', encoding="utf-8")
    return root


@pytest.fixture
def registry():
    reg = discover_tasks()
    reg.validate()
    return reg


@pytest.fixture
def ctx(project, registry) -> BuildContext:
    c = BuildContext.create(BuildConfig(), project)
    c.registry = registry
    return c
