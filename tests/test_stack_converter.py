import pytest

from symtrace import config
from symtrace.lib_mappings import LibMappingOpQueue, LibMappingsHierarchy
from symtrace.model import FrameKind, LibMappingInfo, LibMappingOp, StackFrame
from symtrace.stack_converter import StackConverter, StackDepthLimitingFrameIter
from symtrace.unresolved_samples import UnresolvedStacks

USER = 1
KERNEL = 2
JIT = 3


def hierarchy_with(*ops):
    hierarchy = LibMappingsHierarchy(LibMappingOpQueue(ops))
    hierarchy.process_ops(0)
    return hierarchy


def test_frames_are_categorized_by_kind():
    hierarchy = hierarchy_with(
        LibMappingOp.add(0, 0x1000, 0x2000, 0, LibMappingInfo("libapp.so")),
        LibMappingOp.add(0, 0xffff0000, 0xffff1000, 0, LibMappingInfo("vmlinux")),
    )
    converter = StackConverter(USER, KERNEL)

    frames = converter.convert_stack(
        [StackFrame.kernel(0xffff0010), StackFrame.user(0x1020)], hierarchy
    )

    assert [f.category for f in frames] == [KERNEL, USER]
    assert [f.lib.name for f in frames] == ["vmlinux", "libapp.so"]
    assert frames[1].relative_address == 0x20


def test_unresolved_address_becomes_unknown_frame():
    converter = StackConverter(USER, KERNEL)

    frames = converter.convert_stack([StackFrame.user(0xdead)], hierarchy_with())

    assert len(frames) == 1
    assert not frames[0].is_resolved()
    assert frames[0].label == config.UNKNOWN_FRAME_LABEL
    assert frames[0].address == 0xdead


def test_mapping_category_overrides_user_category():
    hierarchy = hierarchy_with(
        LibMappingOp.add(0, 0x1000, 0x2000, 0, LibMappingInfo("jit", category=JIT, symbol="js::run")),
    )
    converter = StackConverter(USER, KERNEL)

    frame = converter.convert_stack([StackFrame.user(0x1004)], hierarchy)[0]

    assert frame.category == JIT
    assert frame.label == "js::run"


def test_extra_label_frame_is_prepended():
    converter = StackConverter(USER, KERNEL)

    frames = converter.convert_stack([StackFrame.user(0x1)], hierarchy_with(), extra_label_frame="sched_switch")

    assert frames[0].kind == FrameKind.LABEL
    assert frames[0].label == "sched_switch"
    assert len(frames) == 2


def test_depth_limit_keeps_leaf_and_collapses_root():
    converter = StackConverter(USER, KERNEL)
    raw = [StackFrame.user(addr) for addr in range(1, 11)]
    frames = converter.convert_stack(raw, hierarchy_with())

    limited = list(StackDepthLimitingFrameIter(frames, USER, max_depth=4))

    assert len(limited) == 4
    assert [f.address for f in limited[:3]] == [1, 2, 3]
    assert limited[0] is frames[0]
    assert limited[-1].label == config.TRUNCATED_STACK_LABEL


def test_depth_limit_leaves_short_stacks_alone():
    frames = StackConverter(USER, KERNEL).convert_stack([StackFrame.user(1), StackFrame.user(2)], hierarchy_with())

    limited = list(StackDepthLimitingFrameIter(frames, USER, max_depth=2))

    assert limited == frames


def test_depth_limit_must_be_positive():
    with pytest.raises(ValueError):
        StackDepthLimitingFrameIter([], USER, max_depth=0)


def test_unresolved_stacks_intern_shared_prefixes():
    stacks = UnresolvedStacks()
    main = StackFrame.user(0x100)
    a = [StackFrame.user(0x300), StackFrame.user(0x200), main]
    b = [StackFrame.user(0x400), StackFrame.user(0x200), main]

    stack_a = stacks.convert(a)
    stack_b = stacks.convert(b)

    assert stacks.convert(list(a)) == stack_a
    assert stack_a != stack_b
    assert len(stacks) == 4
    assert stacks.convert_back(stack_a) == a
    assert stacks.convert_back(stack_b) == b
    assert stacks.convert([]) is None
    assert stacks.convert_back(None) == []
