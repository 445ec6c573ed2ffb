"""The check object: running a check over a tree and reporting failures."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from devtreecheck.tree import DtInfo, Node, Property

_CELL_SIZE = 4


class CheckStatus(enum.Enum):
    """Outcome of a check."""

    UNCHECKED = 0
    PREREQ = 1
    PASSED = 2
    FAILED = 3


CheckFunction = Callable[["Check", DtInfo, Node], None]


@dataclass(eq=False)
class Check:
    """A named check applied to every node of a tree.

    ``warn`` and ``error`` set the severity at which failures are reported;
    a check with neither still runs when another check depends on it.
    """

    name: str
    fn: Optional[CheckFunction] = None
    data: Any = None
    warn: bool = False
    error: bool = False
    prereqs: list["Check"] = field(default_factory=list)
    status: CheckStatus = CheckStatus.UNCHECKED
    inprogress: bool = False
    messages: list[str] = field(default_factory=list)

    def _emit(
        self,
        dti: DtInfo,
        node: Optional[Node],
        prop: Optional[Property],
        message: str,
    ) -> None:
        if not (self.warn and dti.quiet < 1) and not (self.error and dti.quiet < 2):
            return

        pos: Optional[str] = None
        if prop is not None and prop.srcpos:
            pos = prop.srcpos
        elif node is not None and node.srcpos:
            pos = node.srcpos[0]

        if pos:
            text = pos
        elif dti.outname == "-":
            text = "<stdout>"
        else:
            text = dti.outname

        level = "ERROR" if self.error else "Warning"
        text += f": {level} ({self.name}): "
        if node is not None:
            if prop is not None:
                text += f"{node.fullpath}:{prop.name}: "
            else:
                text += f"{node.fullpath}: "
        text += message + "\n"

        if prop is None and pos and node is not None:
            for other in node.srcpos[1:]:
                text += f"  also defined at {other}\n"

        self.messages.append(text)
        sys.stderr.write(text)

    def fail(
        self,
        dti: DtInfo,
        node: Optional[Node],
        message: str,
        prop: Optional[Property] = None,
    ) -> None:
        """Mark the check as failed and report ``message`` for a node or property."""
        self.status = CheckStatus.FAILED
        self._emit(dti, node, prop, message)

    def _visit(self, dti: DtInfo, node: Node) -> None:
        if self.fn is not None:
            self.fn(self, dti, node)
        for child in list(node.children):
            if not child.deleted:
                self._visit(dti, child)

    def run(self, dti: DtInfo) -> bool:
        """Run the check (and its prerequisites) once; return True on an error."""
        if self.inprogress:
            raise RuntimeError(f"check '{self.name}' depends on itself")

        error = False
        if self.status is CheckStatus.UNCHECKED:
            self.inprogress = True
            try:
                for prereq in self.prereqs:
                    error = error or prereq.run(dti)
                    if prereq.status is not CheckStatus.PASSED:
                        self.status = CheckStatus.PREREQ
                        self._emit(
                            dti, None, None, f"Failed prerequisite '{prereq.name}'"
                        )
                if self.status is CheckStatus.UNCHECKED:
                    self._visit(dti, dti.dt)
                    if self.status is CheckStatus.UNCHECKED:
                        self.status = CheckStatus.PASSED
            finally:
                self.inprogress = False

        if self.status is not CheckStatus.PASSED and self.error:
            error = True
        return error

    def reset(self) -> None:
        """Forget any previous result so the check can run again."""
        self.status = CheckStatus.UNCHECKED
        self.inprogress = False
        self.messages.clear()


def check_is_string(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not exactly one string."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if not prop.val.is_one_string():
        check.fail(dti, node, "property is not a string", prop)


def check_is_string_list(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not a list of strings."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    raw = prop.val.val
    if raw and raw[-1] != 0:
        check.fail(dti, node, "property is not a string list", prop)


def check_is_cell(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not a single cell."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if len(prop.val) != _CELL_SIZE:
        check.fail(dti, node, "property is not a single cell", prop)