"""Style guide generation from KSS comment blocks.

A documented rule looks like::

    // Buttons
    //
    // Standard button.
    //
    // Markup: <button class="btn {{modifier_class}}">Go</button>
    //
    // .btn-primary - Primary action
    // :hover       - Highlight on hover
    //
    // Styleguide 1.2

Blocks without a trailing ``Styleguide <ref>`` line are ordinary comments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import markdown
from jinja2 import DictLoader, Environment, select_autoescape
from markupsafe import Markup

from .logging import get_logger


logger = get_logger("assetpipe.kss")

_REFERENCE = re.compile(r"^style\s*guide\s*:?\s+([\w.-]+?)\.?$", re.IGNORECASE)
_MODIFIER = re.compile(r"^([.:][\w-]+|[\w-]+)\s+-\s+(.+)$")
_MARKUP = re.compile(r"^markup:\s*(.*)$", re.IGNORECASE | re.DOTALL)


@dataclass
class Modifier:
    name: str
    description: str

    @property
    def class_name(self) -> str:
        if self.name.startswith(":"):
            return "pseudo-class-" + self.name[1:]
        return self.name.lstrip(".")


@dataclass
class Section:
    reference: str
    title: str
    description: List[str] = field(default_factory=list)
    markup: Optional[str] = None
    modifiers: List[Modifier] = field(default_factory=list)
    source: str = ""
    line: int = 0

    @property
    def depth(self) -> int:
        return self.reference.count(".") + 1

    @property
    def top(self) -> str:
        return self.reference.split(".")[0]

    @property
    def sort_key(self) -> Tuple:
        return tuple(
            (0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.reference.split(".")
        )

    def example(self, modifier: Optional[Modifier] = None) -> str:
        markup = self.markup or ""
        cls = modifier.class_name if modifier else ""
        return markup.replace("{{modifier_class}}", cls).replace("{$modifiers}", cls)


def _comment_blocks(text: str) -> Iterable[Tuple[int, List[str]]]:
    """Yield ``(first_line, lines)`` for each ``//`` run or ``/* */`` block."""
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        stripped = lines[i].strip()
        if stripped.startswith("//"):
            start = i
            block = []
            while i < len(lines) and lines[i].strip().startswith("//"):
                block.append(re.sub(r"^\s*//+ ?", "", lines[i]))
                i += 1
            yield start + 1, block
            continue
        if stripped.startswith("/*"):
            start = i
            block = []
            while i < len(lines):
                line = lines[i]
                end = "*/" in line
                line = re.sub(r"^\s*/\*+ ?", "", line)
                line = re.sub(r"\s*\*+/\s*$", "", line)
                line = re.sub(r"^\s*\* ?", "", line)
                block.append(line)
                i += 1
                if end:
                    break
            yield start + 1, block
            continue
        i += 1


def _paragraphs(lines: List[str]) -> List[str]:
    paras: List[str] = []
    current: List[str] = []
    for line in lines:
        if line.strip():
            current.append(line.rstrip())
        elif current:
            paras.append("\n".join(current))
            current = []
    if current:
        paras.append("\n".join(current))
    return paras


def parse(text: str, source: str = "") -> List[Section]:
    sections: List[Section] = []
    for line_no, block in _comment_blocks(text):
        paras = _paragraphs(block)
        if len(paras) < 2:
            continue
        ref = _REFERENCE.match(paras[-1].strip())
        if not ref:
            continue
        section = Section(
            reference=ref.group(1),
            title=paras[0].strip(),
            source=source,
            line=line_no,
        )
        for para in paras[1:-1]:
            m = _MARKUP.match(para)
            if m:
                section.markup = m.group(1).strip()
                continue
            lines = para.splitlines()
            mods = [_MODIFIER.match(ln.strip()) for ln in lines]
            if all(mods):
                section.modifiers.extend(Modifier(m.group(1), m.group(2).strip()) for m in mods)
            else:
                section.description.append(para)
        sections.append(section)
    return sections


def collect(files: Iterable[Path], root: Path) -> List[Section]:
    """Parse every file; a repeated reference keeps the last definition."""
    by_ref: Dict[str, Section] = {}
    for path in files:
        rel = path.relative_to(root).as_posix()
        for section in parse(path.read_text(encoding="utf-8"), source=rel):
            if section.reference in by_ref:
                prev = by_ref[section.reference]
                logger.warning(
                    "Duplicate styleguide reference %s in %s:%d (first in %s:%d)",
                    section.reference, rel, section.line, prev.source, prev.line,
                )
            by_ref[section.reference] = section
    return sorted(by_ref.values(), key=lambda s: s.sort_key)


_LAYOUT = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{% block title %}{{ title }}{% endblock %}</title>
<link rel="stylesheet" href="{{ app_root }}/styleguide-app.css">
{% for line in extra_head %}{{ line|safe }}
{% endfor %}</head>
<body class="sg">
<nav class="sg-nav">
<a class="sg-home" href="{{ app_root }}/index.html">{{ title }}</a>
<ul>
{% for top in tops %}<li><a href="{{ app_root }}/section-{{ top.reference }}.html">{% if show_refs %}{{ top.reference }} {% endif %}{{ top.title }}</a></li>
{% endfor %}</ul>
</nav>
<main class="sg-main">
{% block content %}{% endblock %}
</main>
</body>
</html>
"""

_INDEX = """{% extends "layout.html" %}
{% block content %}<article class="sg-overview">{{ overview }}</article>{% endblock %}
"""

_SECTION = """{% extends "layout.html" %}
{% block title %}{{ section.title }} · {{ title }}{% endblock %}
{% block content %}
{% for s in sections %}
<section class="sg-section sg-depth-{{ s.depth }}" id="section-{{ s.reference }}">
<h{{ [s.depth, 6]|min }}>{% if show_refs %}<span class="sg-ref">{{ s.reference }}</span> {% endif %}{{ s.title }}</h{{ [s.depth, 6]|min }}>
{% for para in s.description %}{{ para|markdown }}
{% endfor %}{% if s.markup %}
<div class="sg-example">{{ s.example()|safe }}</div>
{% for m in s.modifiers %}<div class="sg-modifier"><p class="sg-modifier-name">{{ m.name }} - {{ m.description }}</p>
<div class="sg-example">{{ s.example(m)|safe }}</div></div>
{% endfor %}<pre class="sg-code"><code>{{ s.markup }}</code></pre>
{% endif %}<p class="sg-source">{{ s.source }}:{{ s.line }}</p>
</section>
{% endfor %}
{% endblock %}
"""


def _markdown(text: str) -> Markup:
    return Markup(markdown.markdown(text))


def _environment() -> Environment:
    env = Environment(
        loader=DictLoader({"layout.html": _LAYOUT, "index.html": _INDEX, "section.html": _SECTION}),
        autoescape=select_autoescape(default=True),
    )
    env.filters["markdown"] = _markdown
    return env


def render(
    sections: List[Section],
    title: str,
    app_root: str = "",
    overview: str = "",
    extra_head: Iterable[str] = (),
    show_reference_numbers: bool = True,
) -> Dict[str, str]:
    """Return ``{relative path: html}`` for the index and every top-level section."""
    env = _environment()
    tops: Dict[str, Section] = {}
    for s in sections:
        if s.depth == 1:
            tops[s.top] = s
        elif s.top not in tops:
            # a child documented without its parent still gets a page
            tops[s.top] = Section(reference=s.top, title=f"Section {s.top}")
    common = {
        "title": title,
        "app_root": app_root,
        "extra_head": [line.replace("{app_root}", app_root) for line in extra_head],
        "show_refs": show_reference_numbers,
        "tops": sorted(tops.values(), key=lambda s: s.sort_key),
    }
    pages = {
        "index.html": env.get_template("index.html").render(
            overview=_markdown(overview) if overview else "", **common
        )
    }
    for ref, top in tops.items():
        members = [s for s in sections if s.top == ref]
        pages[f"section-{ref}.html"] = env.get_template("section.html").render(
            section=top, sections=members, **common
        )
    return pages
