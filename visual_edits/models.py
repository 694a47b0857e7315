# visual_edits/models.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

EditKind = Literal["noop", "replace", "range", "text", "attribute"]

# Rejection codes reported in `rejectedChanges[].error`.
INVALID_CHANGE = "invalid_change"
INVALID_FILE_NAME = "invalid_file_name"
AMBIGUOUS_FILE_NAME = "ambiguous_file_name"
FORBIDDEN_PATH = "forbidden_path"
NOT_FOUND = "not_found"
TRANSFORM_FAILED = "transform_failed"
WRITE_FAILED = "write_failed"

# A single JSX attribute name, optionally namespaced (`xlink:href`).
JSX_ATTRIBUTE_NAME = re.compile(r"[A-Za-z_$][\w$-]*(:[A-Za-z_$][\w$-]*)?", re.ASCII)


class ChangeRecord(BaseModel):
    """
    One entry of `changes` in a POST /edit-file body.

    Fields:
      - fileName: logical (extension-less) name of the target file
      - kind: which edit to apply; absent means a plain round trip
      - line / column: 1-based line, 0-based character column of the node or
        JSX element to edit (replace, text, attribute)
      - start / end: character offsets for "range"
      - original: optional guard for "replace"; the node text must match it
      - replacement: new source text (replace, range)
      - attribute / value: JSX attribute to set; value null removes it
      - value: new JSX text content (text)

    Unknown fields are kept so clients can send extra metadata.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    file_name: str = Field(alias="fileName")
    kind: Optional[EditKind] = None
    line: Optional[int] = Field(default=None, ge=1)
    column: Optional[int] = Field(default=None, ge=0)
    start: Optional[int] = Field(default=None, ge=0)
    end: Optional[int] = Field(default=None, ge=0)
    original: Optional[str] = None
    replacement: Optional[str] = None
    attribute: Optional[str] = None
    value: Optional[str] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "ChangeRecord":
        kind = self.kind or "noop"
        if kind in ("replace", "text", "attribute") and self.line is None:
            raise ValueError(f"'{kind}' edits require 'line'")
        if kind in ("replace", "range") and self.replacement is None:
            raise ValueError(f"'{kind}' edits require 'replacement'")
        if kind == "range":
            if self.start is None or self.end is None:
                raise ValueError("'range' edits require 'start' and 'end'")
            if self.end < self.start:
                raise ValueError("'range' edit has end before start")
        if kind == "text" and self.value is None:
            raise ValueError("'text' edits require 'value'")
        if kind == "attribute":
            if not self.attribute:
                raise ValueError("'attribute' edits require 'attribute'")
            if not JSX_ATTRIBUTE_NAME.fullmatch(self.attribute):
                raise ValueError(f"'attribute' must be a single JSX attribute name, got {self.attribute!r}")
            if "value" not in self.model_fields_set:
                raise ValueError("'attribute' edits require 'value' (null removes the attribute)")
        return self

    @property
    def effective_kind(self) -> str:
        return self.kind or "noop"


@dataclass
class ChangeGroup:
    """All records for one logical file, in request order."""

    file_name: str
    records: List[ChangeRecord] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)


class EditResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    path: str
    applied: int
    changed: bool
    commit: Optional[Dict[str, Any]] = None
    warnings: List[str] = Field(default_factory=list)


class RejectedChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: Optional[str] = Field(default=None, alias="fileName")
    error: str
    message: str
    change_indices: List[int] = Field(default_factory=list, alias="changeIndices")


class EditResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["ok", "partial", "rejected"]
    edits: List[EditResult] = Field(default_factory=list)
    rejected_changes: List[RejectedChange] = Field(default_factory=list, alias="rejectedChanges")

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if not self.rejected_changes:
            payload.pop("rejectedChanges", None)
        return payload


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or str(e)


def group_changes(changes: List[Any]) -> Tuple[List[ChangeGroup], List[RejectedChange]]:
    """Validate raw change dicts and partition them by fileName.

    Groups keep the order in which each fileName first appears. A record that
    fails validation rejects its whole group, so a file is never edited with
    only part of what the client asked for.
    """
    groups: Dict[str, ChangeGroup] = {}
    bad: Dict[str, List[Tuple[int, str]]] = {}
    rejected: List[RejectedChange] = []

    for idx, raw in enumerate(changes):
        name = raw.get("fileName") if isinstance(raw, dict) else None
        if not isinstance(name, str):
            rejected.append(
                RejectedChange(
                    file_name=None,
                    error=INVALID_CHANGE,
                    message="change must be an object with a string 'fileName'",
                    change_indices=[idx],
                )
            )
            continue

        group = groups.setdefault(name, ChangeGroup(file_name=name))
        group.indices.append(idx)
        try:
            group.records.append(ChangeRecord.model_validate(raw))
        except ValidationError as e:
            bad.setdefault(name, []).append((idx, _describe_validation_error(e)))

    ordered: List[ChangeGroup] = []
    for name, group in groups.items():
        if name in bad:
            details = "; ".join(f"change {i}: {msg}" for i, msg in bad[name])
            rejected.append(
                RejectedChange(
                    file_name=name,
                    error=INVALID_CHANGE,
                    message=details,
                    change_indices=list(group.indices),
                )
            )
            continue
        ordered.append(group)
    return ordered, rejected


__all__ = [
    "AMBIGUOUS_FILE_NAME",
    "ChangeGroup",
    "ChangeRecord",
    "EditResponse",
    "EditResult",
    "FORBIDDEN_PATH",
    "INVALID_CHANGE",
    "INVALID_FILE_NAME",
    "JSX_ATTRIBUTE_NAME",
    "NOT_FOUND",
    "RejectedChange",
    "TRANSFORM_FAILED",
    "WRITE_FAILED",
    "group_changes",
]
