import pytest

from boardthreads.core.cancellation import CancellationToken
from boardthreads.models.schemas import BoardFilterConfig, BuildWindow, TrustState
from boardthreads.models.tree import ThreadNode, ThreadTree
from boardthreads.repositories.memory_repository import InMemoryRecordStore
from boardthreads.services.filtering.filter_policy import FilterPolicy
from boardthreads.services.threads.incremental_merge import (
    IncrementalMerger,
    Placement,
)
from boardthreads.services.threads.thread_builder import ThreadBuilder

CONFIG = BoardFilterConfig()


def _merger() -> IncrementalMerger:
    return IncrementalMerger(FilterPolicy())


def _parent_id(tree: ThreadTree, record_id: str):
    node = tree.find(record_id)
    return None if node.parent is tree.root else node.parent.record_id


def test_thread_starter_attaches_to_root(make_record):
    tree = ThreadTree("board")

    result = _merger().merge(tree, make_record("m1"), CONFIG)

    assert result.placement is Placement.ROOT
    assert result.attached
    assert tree.find("m1").parent is tree.root
    assert tree.version == 1


def test_flat_tree_ignores_ancestors(make_record):
    tree = ThreadTree("board", threaded=False)
    tree.root.add(ThreadNode(make_record("m1")))

    result = _merger().merge(tree, make_record("m2", ["m1"]), CONFIG)

    assert result.placement is Placement.ROOT
    assert tree.find("m2").parent is tree.root


def test_record_without_id_attaches_to_root(make_record):
    tree = ThreadTree("board")

    result = _merger().merge(tree, make_record(None, ["m1"]), CONFIG)

    assert result.placement is Placement.ROOT
    assert len(tree.root.children) == 1


def test_arriving_ancestor_fills_placeholder_in_place(make_record):
    tree = ThreadTree("board")
    placeholder = ThreadNode.placeholder("m1")
    tree.root.add(placeholder)
    placeholder.add(ThreadNode(make_record("m2", ["m1"])))

    record = make_record("m1", ["m0"])
    result = _merger().merge(tree, record, CONFIG)

    assert result.placement is Placement.FILLED_PLACEHOLDER
    node = tree.find("m1")
    assert node is placeholder
    assert node.record is record
    assert node.parent is tree.root
    assert [c.record_id for c in node.children] == ["m2"]


def test_thread_starter_fills_placeholder_created_by_its_reply(make_record):
    tree = ThreadTree("board")
    merger = _merger()
    merger.merge(tree, make_record("m2", ["m1"]), CONFIG)
    assert tree.find("m1").is_placeholder

    starter = make_record("m1", is_new=True)
    result = merger.merge(tree, starter, CONFIG)

    assert result.placement is Placement.FILLED_PLACEHOLDER
    assert result.attached
    node = tree.find("m1")
    assert not node.is_placeholder
    assert node.record is starter
    assert node.parent is tree.root
    assert [c.record_id for c in node.children] == ["m2"]
    assert tree.node_count() == 2


def test_attaches_under_nearest_existing_ancestor(make_record):
    tree = ThreadTree("board")
    merger = _merger()
    merger.merge(tree, make_record("m1"), CONFIG)

    result = merger.merge(tree, make_record("m3", ["m1", "m2"]), CONFIG)

    assert result.placement is Placement.ATTACHED
    assert result.parent_id == "m1"
    assert result.placeholders_created == ["m2"]
    assert _parent_id(tree, "m2") == "m1"
    assert _parent_id(tree, "m3") == "m2"
    assert tree.find("m2").is_placeholder
    assert tree.find("m2").ancestors == ["m1"]


def test_unknown_thread_gets_full_placeholder_chain_under_root(make_record):
    tree = ThreadTree("board")

    result = _merger().merge(tree, make_record("m3", ["a", "b"], subject="Hi"), CONFIG)

    assert result.placement is Placement.ROOT_CHAIN
    assert result.placeholders_created == ["a", "b"]
    assert _parent_id(tree, "a") is None
    assert _parent_id(tree, "b") == "a"
    assert _parent_id(tree, "m3") == "b"
    assert tree.find("a").subject == "[Hi]"


def test_blocked_record_is_withheld(make_record):
    tree = ThreadTree("board")
    tree.root.add(ThreadNode.placeholder("m1"))
    record = make_record("m1", trust=TrustState.BAD, is_new=True)

    result = _merger().merge(tree, record, BoardFilterConfig(hide_bad=True))

    assert result.placement is Placement.WITHHELD
    assert not result.attached
    assert tree.find("m1").is_placeholder
    assert tree.version == 0


def test_duplicate_record_is_not_attached_twice(make_record):
    tree = ThreadTree("board")
    merger = _merger()
    merger.merge(tree, make_record("m1"), CONFIG)
    merger.merge(tree, make_record("m2", ["m1"]), CONFIG)

    again_root = merger.merge(tree, make_record("m1"), CONFIG)
    again_reply = merger.merge(tree, make_record("m2", ["m1"]), CONFIG)

    assert again_root.placement is Placement.DUPLICATE
    assert again_reply.placement is Placement.DUPLICATE
    assert tree.node_count() == 2


def test_describe_mentions_placement(make_record):
    tree = ThreadTree("board")
    merger = _merger()
    merger.merge(tree, make_record("m1"), CONFIG)

    result = merger.merge(tree, make_record("m2", ["m1"]), CONFIG)

    assert result.describe() == "m2 attached under m1"
    assert result.tree_version == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("order", [[0, 1, 2, 3, 4, 5], [5, 4, 3, 2, 1, 0], [2, 5, 0, 3, 1, 4]])
async def test_merging_one_by_one_matches_full_build(make_record, order):
    records = [
        make_record("m1"),
        make_record("m2", ["m1"]),
        make_record("m3", ["m1", "m2"]),
        make_record("m4", ["x1"]),
        make_record("m5", ["x1", "x2"]),
        make_record("m6", ["m1", "gone", "m5"]),
    ]
    store = InMemoryRecordStore(records)
    built = await ThreadBuilder(store, FilterPolicy()).build(
        "board",
        BuildWindow(),
        None,
        CancellationToken("board", 1),
        board_config=CONFIG,
    )

    tree = ThreadTree("board")
    merger = _merger()
    for i in order:
        merger.merge(tree, records[i], CONFIG)

    assert tree.leaf_ids() == built.tree.leaf_ids()
    real_ids = {r.id for r in tree.records()}
    assert real_ids == {r.id for r in built.tree.records()}
    assert tree.find("m1").parent is tree.root
    assert not tree.find("m1").is_placeholder
