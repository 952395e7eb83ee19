"""SVG markup as a JSX module.

An SVG imported with the ``?jsx`` directive becomes a module whose default
export is an element tree. The markup is parsed with :mod:`xml.dom.minidom`
and written back as JSX: ``style`` attributes become style objects, and
text follows JSX whitespace rules. The bundler then transpiles the JSX
with the project's own compiler settings (``jsx``, ``jsxFactory``,
``jsxImportSource``), so the element calls match the rest of the program.
"""

from __future__ import annotations

import json
import re
from typing import Optional
from xml.dom import Node, minidom
from xml.parsers.expat import ExpatError

from plugbuild.exceptions import AssetFormatError

_WS_LINE_RE = re.compile(r"[ \t]*\r?\n[ \t]*")


def _camel_case(prop: str) -> str:
    prop = prop.strip()
    if prop.startswith("--"):
        return prop
    head, *rest = prop.split("-")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _style_object(style: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for declaration in style.split(";"):
        name, sep, value = declaration.partition(":")
        if sep and name.strip():
            result[_camel_case(name)] = value.strip()
    return result


def _jsx_text(text: str) -> Optional[str]:
    """Apply JSX whitespace rules: lines are trimmed and blank lines dropped."""
    if "\n" not in text:
        return text if text.strip() or text == " " else None
    lines = [line for line in _WS_LINE_RE.split(text) if line]
    joined = " ".join(lines).strip()
    return joined or None


def _attributes(element: minidom.Element) -> str:
    attrs = element.attributes
    if attrs is None:
        return ""
    parts = []
    for index in range(attrs.length):
        attr = attrs.item(index)
        if attr.name == "style":
            value = json.dumps(_style_object(attr.value), ensure_ascii=False)
        else:
            value = json.dumps(attr.value, ensure_ascii=False)
        parts.append(f" {attr.name}={{{value}}}")
    return "".join(parts)


def _element(node: minidom.Element, indent: int) -> str:
    tag = node.tagName
    pad = "  " * (indent + 1)
    children = []
    for child in node.childNodes:
        if child.nodeType == Node.ELEMENT_NODE:
            children.append(pad + _element(child, indent + 1))
        elif child.nodeType in (Node.TEXT_NODE, Node.CDATA_SECTION_NODE):
            text = _jsx_text(child.data)
            if text is not None:
                children.append(pad + "{" + json.dumps(text, ensure_ascii=False) + "}")
    if not children:
        return f"<{tag}{_attributes(node)}/>"
    body = "\n".join(children)
    return f"<{tag}{_attributes(node)}>\n{body}\n{'  ' * indent}</{tag}>"


def svg_to_jsx_source(svg: str, jsid: str) -> str:
    """Return JSX module source default-exporting *svg* as an element tree.

    Comments, processing instructions and the doctype are dropped.

    Args:
        svg: SVG source text.
        jsid: Identifier suffix for the exported constant.

    Raises:
        AssetFormatError: If *svg* is not well-formed markup.
    """
    try:
        document = minidom.parseString(svg.encode("utf-8"))
    except ExpatError as exc:
        raise AssetFormatError(f"invalid SVG markup ({exc})")
    try:
        tree = _element(document.documentElement, 0)
    finally:
        document.unlink()
    return (
        'import React from "react";\n'
        f"const asset_{jsid} = {tree};\n"
        f"export default asset_{jsid};\n"
    )


def root_dimensions(svg: str) -> tuple[Optional[str], Optional[str]]:
    """Return the raw ``width`` and ``height`` attributes of the root element."""
    try:
        document = minidom.parseString(svg.encode("utf-8"))
    except ExpatError:
        return None, None
    root = document.documentElement
    width = root.getAttribute("width") or None
    height = root.getAttribute("height") or None
    document.unlink()
    return width, height
