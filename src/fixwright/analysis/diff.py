"""Line-level diff between original and fixed content."""

from __future__ import annotations

import difflib

from pydantic import BaseModel

from fixwright.constants import DiffOp


class DiffLine(BaseModel):
    op: DiffOp
    line: int
    content: str


def line_diff(original: str, fixed: str) -> list[DiffLine]:
    """Changed lines only, numbered in the file they belong to.

    Removed lines carry their line number in ``original``; added lines
    carry theirs in ``fixed``. Unchanged lines are omitted.
    """
    before = original.splitlines()
    after = fixed.splitlines()
    matcher = difflib.SequenceMatcher(a=before, b=after, autojunk=False)

    changes: list[DiffLine] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if tag in ("replace", "delete"):
            changes.extend(
                DiffLine(op=DiffOp.REMOVED, line=i + 1, content=before[i])
                for i in range(i1, i2)
            )
        if tag in ("replace", "insert"):
            changes.extend(
                DiffLine(op=DiffOp.ADDED, line=j + 1, content=after[j])
                for j in range(j1, j2)
            )
    return changes
