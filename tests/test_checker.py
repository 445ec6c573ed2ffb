import pytest

from devtreecheck.checker import (
    Check,
    CheckStatus,
    check_is_cell,
    check_is_string,
    check_is_string_list,
)
from devtreecheck.data import Data
from devtreecheck.tree import DtInfo, Node, Property


def _fail_on_bad(c, dti, node):
    if node.name == "bad":
        c.fail(dti, node, "oops")


def _tree(*names):
    root = Node()
    for name in names:
        root.add_child(Node(name))
    return DtInfo(root)


def test_error_check_fails_and_reports():
    dti = _tree("good", "bad")
    check = Check("mycheck", _fail_on_bad, error=True)
    assert check.run(dti) is True
    assert check.status is CheckStatus.FAILED
    assert check.messages == ["<stdout>: ERROR (mycheck): /bad: oops\n"]


def test_warning_uses_outname_and_returns_no_error():
    dti = _tree("bad")
    dti.outname = "out.dtb"
    check = Check("w", _fail_on_bad, warn=True)
    assert check.run(dti) is False
    assert check.status is CheckStatus.FAILED
    assert check.messages[0].startswith("out.dtb: Warning (w): /bad: ")


def test_passing_check():
    dti = _tree("good")
    check = Check("mycheck", _fail_on_bad, error=True)
    assert check.run(dti) is False
    assert check.status is CheckStatus.PASSED
    assert check.messages == []


def test_quiet_suppresses_warnings():
    dti = _tree("bad")
    dti.quiet = 1
    check = Check("w", _fail_on_bad, warn=True)
    check.run(dti)
    assert check.status is CheckStatus.FAILED
    assert check.messages == []


def test_silent_check_reports_nothing():
    dti = _tree("bad")
    check = Check("c", _fail_on_bad)
    assert check.run(dti) is False
    assert check.messages == []


def test_failed_prerequisite():
    dti = _tree("bad")
    prereq = Check("first", _fail_on_bad, error=True)
    check = Check("second", lambda c, d, n: None, error=True, prereqs=[prereq])
    assert check.run(dti) is True
    assert check.status is CheckStatus.PREREQ
    assert "Failed prerequisite 'first'" in check.messages[0]


def test_srcpos_and_also_defined():
    dti = _tree()
    node = dti.dt.add_child(Node("bad"))
    node.srcpos = ["a.dts:1", "b.dts:2"]
    check = Check("x", _fail_on_bad, error=True)
    check.run(dti)
    assert check.messages == [
        "a.dts:1: ERROR (x): /bad: oops\n  also defined at b.dts:2\n"
    ]


def test_property_message_format():
    dti = _tree("n")
    node = dti.dt.children[0]
    prop = node.add_property(Property("p", Data.from_bytes(b"ab")))
    prop.srcpos = "f.dts:3"
    check = Check("x", error=True)
    check.fail(dti, node, "bad", prop)
    assert check.messages == ["f.dts:3: ERROR (x): /n:p: bad\n"]


def test_self_dependency_raises():
    dti = _tree()
    check = Check("loop", warn=True)
    check.prereqs.append(check)
    with pytest.raises(RuntimeError):
        check.run(dti)


def test_reset_allows_rerun():
    dti = _tree("bad")
    check = Check("x", _fail_on_bad, error=True)
    check.run(dti)
    check.reset()
    assert check.status is CheckStatus.UNCHECKED
    assert check.messages == []
    dti.dt.children[0].name = "fine"
    assert check.run(dti) is False
    assert check.status is CheckStatus.PASSED


def test_deleted_child_not_visited():
    dti = _tree("gone")
    gone = dti.dt.children[0]
    gone.add_child(Node("bad"))
    seen = []

    def visit(c, d, node):
        seen.append(node.name)
        if node.name == "gone":
            node.delete()
        _fail_on_bad(c, d, node)

    check = Check("v", visit, error=True)
    assert check.run(dti) is False
    assert check.status is CheckStatus.PASSED
    assert check.messages == []
    assert seen == ["", "gone"]


@pytest.mark.parametrize(
    "fn,value,ok",
    [
        (check_is_string, b"abc\x00", True),
        (check_is_string, b"a\x00b\x00", False),
        (check_is_string, b"", False),
        (check_is_string_list, b"a\x00b\x00", True),
        (check_is_string_list, b"a\x00b", False),
        (check_is_cell, b"\x00\x00\x00\x01", True),
        (check_is_cell, b"\x00\x01", False),
    ],
)
def test_value_checks(fn, value, ok):
    dti = _tree("n")
    dti.dt.children[0].add_property(Property("p", Data.from_bytes(value)))
    check = Check("t", fn, data="p", warn=True)
    check.run(dti)
    assert (check.status is CheckStatus.PASSED) is ok