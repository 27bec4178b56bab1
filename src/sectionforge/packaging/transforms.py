"""Asset transforms applied before packaging: minification and README."""

from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import Any

from sectionforge.packaging.schemas import ModuleFiles, PackageOptions

_CSS_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_JS_LINE_COMMENT = re.compile(r"(?<![:\"'])//.*$", re.MULTILINE)
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_WHITESPACE = re.compile(r"\s+")


def minify_css(css: str) -> str:
    """Strip comments and collapse whitespace."""
    out = _CSS_COMMENT.sub("", css)
    out = _WHITESPACE.sub(" ", out)
    out = re.sub(r"\s*([{}:;,])\s*", r"\1", out)
    out = out.replace(";}", "}")
    return out.strip()


def minify_js(js: str) -> str:
    """Conservative JS minification: comments and whitespace only."""
    out = _CSS_COMMENT.sub("", js)
    out = _JS_LINE_COMMENT.sub("", out)
    return _WHITESPACE.sub(" ", out).strip()


def minify_html(html: str) -> str:
    out = _HTML_COMMENT.sub("", html)
    out = _WHITESPACE.sub(" ", out)
    out = re.sub(r">\s+<", "><", out)
    return out.strip()


def _load(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def generate_documentation(files: ModuleFiles) -> str:
    """Markdown README describing the module and its editable fields."""
    meta = _load(files.meta_json)
    fields = _load(files.fields_json)

    lines: list[str] = ["# Module Documentation", ""]
    if isinstance(meta, dict) and meta.get("label"):
        lines += [f"## {meta['label']}", ""]
        description = meta.get("help_text") or meta.get("description")
        if description:
            lines += [str(description), ""]
    else:
        lines += ["## Custom Module", ""]

    if isinstance(fields, list) and fields:
        lines += ["## Editable Fields", ""]
        for f in fields:
            if not isinstance(f, dict):
                continue
            lines.append(
                f"- **{f.get('label', f.get('name', 'field'))}**"
                f" ({f.get('type', 'text')}):"
                f" {f.get('help_text') or 'No description'}"
            )
        lines.append("")

    lines += [
        "## Installation",
        "",
        "1. Upload this module to your CMS design manager",
        "2. Use the module in your templates or pages",
        "3. Configure the editable fields as needed",
        "",
    ]
    return "\n".join(lines)


def apply_transforms(
    files: ModuleFiles, options: PackageOptions
) -> ModuleFiles:
    """Return a new ModuleFiles with minification and README applied."""
    out = files
    if options.minify_assets:
        out = replace(
            out,
            module_html=(
                minify_html(out.module_html)
                if out.module_html
                else out.module_html
            ),
            module_css=(
                minify_css(out.module_css)
                if out.module_css
                else out.module_css
            ),
            module_js=(
                minify_js(out.module_js) if out.module_js else out.module_js
            ),
        )
    if options.include_documentation and not out.readme:
        out = replace(out, readme=generate_documentation(out))
    return out
