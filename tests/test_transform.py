from pathlib import Path

import pytest

from visual_edits.models import ChangeRecord
from visual_edits.transform import (
    SourceTransformer,
    TransformError,
    grammar_for_path,
    transform_file_text,
)

from .conftest import FOO_JSX

JSX = Path("Foo.jsx")


def _rec(**kw):
    kw.setdefault("fileName", "Foo")
    return ChangeRecord.model_validate(kw)


def test_grammar_by_extension():
    assert grammar_for_path(Path("a.js")) == "javascript"
    assert grammar_for_path(Path("a.jsx")) == "javascript"
    assert grammar_for_path(Path("a.ts")) == "typescript"
    assert grammar_for_path(Path("a.tsx")) == "tsx"
    with pytest.raises(TransformError):
        grammar_for_path(Path("a.py"))


def test_noop_round_trip_is_byte_identical():
    res = transform_file_text(JSX, FOO_JSX, [_rec()])
    assert res.text == FOO_JSX
    assert res.changed is False
    assert res.applied == 1


def test_round_trip_keeps_crlf_and_comments():
    src = "// header\r\nconst a = 1;  /* keep */\r\n\r\nexport default a;\r\n"
    res = transform_file_text(Path("a.js"), src, [_rec()])
    assert res.text == src


def test_text_edit_replaces_element_content_only():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="text", line=8, value="Good evening")])
    assert "      <p>Good evening</p>\n" in res.text
    assert res.text.replace("Good evening", "Welcome back") == FOO_JSX
    assert res.changed is True


def test_text_edit_escapes_jsx_syntax():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="text", line=8, value="a {b} <c>")])
    assert '<p>{"a {b} <c>"}</p>' in res.text


def test_text_edit_on_self_closing_element_fails():
    src = "export const A = () => <img src=\"a.png\" />;\n"
    with pytest.raises(TransformError, match="self-closing"):
        transform_file_text(JSX, src, [_rec(kind="text", line=1, value="x")])


def test_attribute_set_existing():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="attribute", line=6, attribute="className", value="card big")])
    assert '<div className="card big">' in res.text


def test_attribute_added_after_tag_name():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="attribute", line=8, attribute="title", value='say "hi"')])
    assert "<p title='say \"hi\"'>Welcome back</p>" in res.text


def test_attribute_removed_with_null_value():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="attribute", line=7, attribute="id", value=None)])
    assert "<h1>Hello, {name}!</h1>" in res.text


def test_removing_missing_attribute_is_a_no_op():
    res = transform_file_text(JSX, FOO_JSX, [_rec(kind="attribute", line=8, attribute="hidden", value=None)])
    assert res.text == FOO_JSX
    assert res.changed is False


def test_attribute_on_self_closing_tsx_element_with_column():
    src = "const n: number = 1;\nexport const A = () => <img src=\"a.png\" />;\n"
    col = src.splitlines()[1].index("<img")
    res = transform_file_text(Path("A.tsx"), src, [_rec(kind="attribute", line=2, column=col, attribute="alt", value="logo")])
    assert '<img src="a.png" alt="logo" />' in res.text


def test_replace_node_with_original_guard():
    line = FOO_JSX.splitlines()[6]
    col = line.index("<h1")
    res = transform_file_text(
        JSX,
        FOO_JSX,
        [_rec(kind="replace", line=7, column=col, original='<h1 id="title">Hello, {name}!</h1>', replacement="<h2>Hi</h2>")],
    )
    assert "      <h2>Hi</h2>\n" in res.text
    assert "// Greeting card" in res.text


def test_replace_guard_mismatch_fails():
    with pytest.raises(TransformError, match="does not match"):
        transform_file_text(
            JSX,
            FOO_JSX,
            [_rec(kind="replace", line=7, column=6, original="<h1>other</h1>", replacement="<h2 />")],
        )


def test_range_edit_uses_character_offsets():
    src = 'const s = "héllo";\nconst t = "wörld";\n'
    start = src.index("wörld")
    res = transform_file_text(Path("a.js"), src, [_rec(kind="range", start=start, end=start + 5, replacement="earth")])
    assert res.text == 'const s = "héllo";\nconst t = "earth";\n'


def test_multiple_edits_in_one_file():
    res = transform_file_text(
        JSX,
        FOO_JSX,
        [
            _rec(kind="text", line=8, value="Bye"),
            _rec(kind="attribute", line=6, attribute="className", value="box"),
        ],
    )
    assert '<div className="box">' in res.text
    assert "<p>Bye</p>" in res.text
    assert res.applied == 2


def test_overlapping_edits_are_rejected():
    start = FOO_JSX.index("Welcome back")
    with pytest.raises(TransformError, match="overlap"):
        transform_file_text(
            JSX,
            FOO_JSX,
            [
                _rec(kind="range", start=start, end=start + 7, replacement="Hi"),
                _rec(kind="range", start=start + 3, end=start + 12, replacement="there"),
            ],
        )


def test_unparseable_source_is_rejected():
    with pytest.raises(TransformError, match="syntax error"):
        transform_file_text(Path("a.js"), "const = ;\n", [_rec()])


def test_edit_producing_invalid_source_is_rejected():
    start = FOO_JSX.index("Welcome back")
    with pytest.raises(TransformError, match="does not parse"):
        transform_file_text(JSX, FOO_JSX, [_rec(kind="range", start=start, end=start + 12, replacement="<oops")])


def test_line_outside_file_is_reported_with_change_index():
    with pytest.raises(TransformError, match="change 1: line 99"):
        transform_file_text(
            JSX,
            FOO_JSX,
            [_rec(), _rec(kind="replace", line=99, column=0, replacement="x")],
        )


def test_text_edit_on_line_without_element_fails():
    with pytest.raises(TransformError, match="no JSX element starts on line 3"):
        transform_file_text(JSX, FOO_JSX, [_rec(kind="text", line=3, value="x")])


def test_transformer_parse_accepts_typescript():
    tree = SourceTransformer("typescript").parse(b"interface P { a: string }\nexport type Q = P;\n")
    assert tree.root_node.type == "program"


def test_attribute_name_is_checked_at_the_splice():
    rec = ChangeRecord.model_construct(file_name="Foo", kind="attribute", line=6, attribute="a={1} b", value="1")
    with pytest.raises(TransformError, match="invalid JSX attribute name"):
        transform_file_text(JSX, FOO_JSX, [rec])
