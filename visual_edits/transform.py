# visual_edits/transform.py
"""
Parse -> edit -> regenerate for JavaScript / TypeScript sources (JSX and TSX
included), built on tree-sitter.

tree-sitter gives a concrete syntax tree whose nodes carry exact byte ranges,
so regeneration is done by splicing replacement bytes into the original
source. Everything outside the edited ranges (formatting, comments, line
numbers) comes back byte-for-byte.

Pipeline for one file:
  1. parse; a tree with ERROR or MISSING nodes aborts the file
  2. map each ChangeRecord onto a byte splice (see `_splice_for`)
  3. reject overlapping splices
  4. apply splices back to front
  5. re-parse the result; refuse output that no longer parses cleanly
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from .models import JSX_ATTRIBUTE_NAME, ChangeRecord

log = logging.getLogger(__name__)

GRAMMAR_BY_EXTENSION: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

_JSX_ELEMENT_TYPES = ("jsx_element", "jsx_self_closing_element")
_JSX_ATTRIBUTE_TYPES = ("jsx_attribute", "jsx_expression")

_LANGUAGES: Dict[str, Language] = {}


class TransformError(Exception):
    """The file could not be parsed, edited, or regenerated safely."""


def _language(grammar: str) -> Language:
    lang = _LANGUAGES.get(grammar)
    if lang is None:
        if grammar == "javascript":
            lang = Language(tree_sitter_javascript.language())
        elif grammar == "typescript":
            lang = Language(tree_sitter_typescript.language_typescript())
        elif grammar == "tsx":
            lang = Language(tree_sitter_typescript.language_tsx())
        else:
            raise TransformError(f"unsupported grammar: {grammar}")
        _LANGUAGES[grammar] = lang
    return lang


def grammar_for_path(path: Path) -> str:
    grammar = GRAMMAR_BY_EXTENSION.get(Path(path).suffix.lower())
    if grammar is None:
        raise TransformError(f"no grammar for file type '{Path(path).suffix}'")
    return grammar


@dataclass
class Splice:
    start: int
    end: int
    text: bytes
    index: int


@dataclass
class TransformResult:
    text: str
    applied: int
    changed: bool


def _first_error_line(root: Node) -> int:
    """1-based line of the first ERROR or MISSING node under `root`."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        stack.extend(c for c in reversed(node.children) if c.has_error or c.is_missing)
    return root.start_point[0] + 1


class _LineIndex:
    """Translate (1-based line, 0-based character column) into byte offsets."""

    def __init__(self, text: str) -> None:
        self.lines = text.split("\n")
        self.starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.starts.append(offset)
            offset += len(line.encode("utf-8")) + 1

    def byte_offset(self, line: int, column: Optional[int]) -> int:
        if line < 1 or line > len(self.lines):
            raise TransformError(f"line {line} is outside the file (1-{len(self.lines)})")
        text = self.lines[line - 1]
        if column is None:
            column = len(text) - len(text.lstrip())
        if column > len(text):
            raise TransformError(f"column {column} is past the end of line {line}")
        return self.starts[line - 1] + len(text[:column].encode("utf-8"))


def _escape_jsx_text(value: str) -> bytes:
    if any(ch in value for ch in "{}<>"):
        return ("{" + json.dumps(value, ensure_ascii=False) + "}").encode("utf-8")
    return value.encode("utf-8")


def _render_attribute(name: str, value: str) -> bytes:
    if '"' not in value:
        rendered = f'{name}="{value}"'
    elif "'" not in value:
        rendered = f"{name}='{value}'"
    else:
        rendered = f"{name}={{{json.dumps(value, ensure_ascii=False)}}}"
    return rendered.encode("utf-8")


class SourceTransformer:
    """Round-trips one source file through a tree-sitter syntax tree."""

    def __init__(self, grammar: str) -> None:
        self.grammar = grammar
        self.language = _language(grammar)

    @classmethod
    def for_path(cls, path: Path) -> "SourceTransformer":
        return cls(grammar_for_path(path))

    def parse(self, source: bytes) -> Tree:
        # Parser objects are not shared across threads.
        tree = Parser(self.language).parse(source)
        if tree.root_node.has_error:
            line = _first_error_line(tree.root_node)
            raise TransformError(f"could not parse {self.grammar} source: syntax error near line {line}")
        return tree

    # ---------- node lookup ----------

    def _nodes_starting_at(self, root: Node, offset: int) -> List[Node]:
        """Named nodes (outermost first, root excluded) whose start byte is `offset`."""
        chain: List[Node] = []
        node = root
        while True:
            nxt = None
            for child in node.children:
                if child.start_byte <= offset < child.end_byte:
                    nxt = child
                    break
            if nxt is None:
                return chain
            if nxt.is_named and nxt.start_byte == offset:
                chain.append(nxt)
            node = nxt

    def _element_at(self, root: Node, index: _LineIndex, rec: ChangeRecord) -> Node:
        assert rec.line is not None
        if rec.column is not None:
            offset = index.byte_offset(rec.line, rec.column)
            for node in self._nodes_starting_at(root, offset):
                if node.type in _JSX_ELEMENT_TYPES:
                    return node
            raise TransformError(f"no JSX element starts at line {rec.line} column {rec.column}")

        row = rec.line - 1
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type in _JSX_ELEMENT_TYPES and node.start_point[0] == row:
                return node
            stack.extend(
                c for c in reversed(node.children) if c.start_point[0] <= row <= c.end_point[0]
            )
        raise TransformError(f"no JSX element starts on line {rec.line}")

    # ---------- edit kinds ----------

    def _splice_replace(self, root: Node, index: _LineIndex, rec: ChangeRecord, i: int) -> Splice:
        assert rec.line is not None and rec.replacement is not None
        offset = index.byte_offset(rec.line, rec.column)
        chain = self._nodes_starting_at(root, offset)
        if not chain:
            raise TransformError(f"no syntax node starts at line {rec.line} column {rec.column}")
        if rec.original is not None:
            wanted = rec.original.encode("utf-8")
            node = next((n for n in chain if n.text == wanted), None)
            if node is None:
                raise TransformError(
                    f"source at line {rec.line} does not match the expected original text"
                )
        else:
            node = chain[0]
        return Splice(node.start_byte, node.end_byte, rec.replacement.encode("utf-8"), i)

    def _splice_range(self, text: str, rec: ChangeRecord, i: int) -> Splice:
        assert rec.start is not None and rec.end is not None and rec.replacement is not None
        if rec.end > len(text):
            raise TransformError(f"range end {rec.end} is past the end of the file ({len(text)} characters)")
        start = len(text[: rec.start].encode("utf-8"))
        end = len(text[: rec.end].encode("utf-8"))
        return Splice(start, end, rec.replacement.encode("utf-8"), i)

    def _splice_text(self, root: Node, index: _LineIndex, rec: ChangeRecord, i: int) -> Splice:
        element = self._element_at(root, index, rec)
        if element.type != "jsx_element":
            raise TransformError(f"element at line {rec.line} is self-closing and has no text content")
        opening, closing = element.children[0], element.children[-1]
        assert rec.value is not None
        return Splice(opening.end_byte, closing.start_byte, _escape_jsx_text(rec.value), i)

    def _splice_attribute(self, root: Node, index: _LineIndex, rec: ChangeRecord, i: int) -> Optional[Splice]:
        element = self._element_at(root, index, rec)
        opening = element.children[0] if element.type == "jsx_element" else element
        name = rec.attribute or ""
        if not JSX_ATTRIBUTE_NAME.fullmatch(name):
            raise TransformError(f"invalid JSX attribute name {name!r}")

        attrs = [c for c in opening.named_children if c.type in _JSX_ATTRIBUTE_TYPES]
        existing = None
        for attr in attrs:
            if attr.type == "jsx_attribute" and attr.children and attr.children[0].text == name.encode("utf-8"):
                existing = attr
                break

        if existing is not None:
            if rec.value is None:
                prev = existing.prev_sibling
                start = prev.end_byte if prev is not None else existing.start_byte
                return Splice(start, existing.end_byte, b"", i)
            return Splice(existing.start_byte, existing.end_byte, _render_attribute(name, rec.value), i)

        if rec.value is None:
            # Removing an attribute that is not there.
            return None

        anchor = attrs[-1] if attrs else (
            opening.child_by_field_name("type_arguments") or opening.child_by_field_name("name")
        )
        if anchor is None:
            raise TransformError(f"cannot set attributes on a fragment (line {rec.line})")
        return Splice(anchor.end_byte, anchor.end_byte, b" " + _render_attribute(name, rec.value), i)

    def _splice_for(self, text: str, root: Node, index: _LineIndex, rec: ChangeRecord, i: int) -> Optional[Splice]:
        kind = rec.effective_kind
        if kind == "noop":
            return None
        if kind == "replace":
            return self._splice_replace(root, index, rec, i)
        if kind == "range":
            return self._splice_range(text, rec, i)
        if kind == "text":
            return self._splice_text(root, index, rec, i)
        if kind == "attribute":
            return self._splice_attribute(root, index, rec, i)
        raise TransformError(f"unknown edit kind: {kind}")

    # ---------- pipeline ----------

    def apply(self, text: str, records: Iterable[ChangeRecord]) -> TransformResult:
        """Apply `records` to `text` and return the regenerated source.

        Raises TransformError without producing output if any step fails.
        """
        source = text.encode("utf-8")
        tree = self.parse(source)
        index = _LineIndex(text)

        records = list(records)
        splices: List[Splice] = []
        for i, rec in enumerate(records):
            try:
                splice = self._splice_for(text, tree.root_node, index, rec, i)
            except TransformError as e:
                raise TransformError(f"change {i}: {e}") from e
            if splice is not None:
                splices.append(splice)

        ordered = sorted(splices, key=lambda s: (s.start, s.end))
        for a, b in zip(ordered, ordered[1:]):
            if b.start < a.end or b.start == a.start:
                raise TransformError(f"changes {a.index} and {b.index} overlap")

        out = source
        for s in reversed(ordered):
            out = out[: s.start] + s.text + out[s.end :]

        if out != source:
            try:
                self.parse(out)
            except TransformError as e:
                raise TransformError(f"edit rejected, result does not parse: {e}") from e

        new_text = out.decode("utf-8")
        log.debug("transformed source", extra={"meta": {"grammar": self.grammar, "splices": len(ordered)}})
        return TransformResult(text=new_text, applied=len(records), changed=new_text != text)


def transform_file_text(path: Path, text: str, records: Iterable[ChangeRecord]) -> TransformResult:
    return SourceTransformer.for_path(path).apply(text, records)


__all__ = [
    "GRAMMAR_BY_EXTENSION",
    "SourceTransformer",
    "Splice",
    "TransformError",
    "TransformResult",
    "grammar_for_path",
    "transform_file_text",
]
