"""
Tests for tree building and node lookup.
"""

import asyncio

import pytest

from conftest import FakeElement, FakeTreeSource
from guibridge.core.indexer import NodeIndexer, handle_id
from guibridge.core.source import SourceGateway
from guibridge.errors import NotFound


def _indexer(source, **kwargs):
    return NodeIndexer(SourceGateway(source, call_timeout=2.0), "Demo", **kwargs)


def test_traversal_ids_follow_breadth_first_order(fake_source):
    tree = asyncio.run(_indexer(fake_source).build_tree())
    assert tree.id_scheme == "traversal"
    assert tree.roots == (1,)
    assert len(tree) == 11
    assert tree.get(1).role == "application"
    assert tree.get(2).label == "Main"
    assert tree.get(3).label == "Go"
    assert tree.get(2).children == (3, 4, 5, 6, 7, 8)
    assert tree.get(9).parent_id == 7


def test_records_carry_states_and_checked(fake_source):
    tree = asyncio.run(_indexer(fake_source).build_tree())
    go = tree.get(3)
    assert go.visible is True
    assert go.enabled is True
    assert go.focused is False
    assert go.checked is None
    assert tree.get(4).checked is False


def test_handle_ids_are_stable_across_builds(demo_root):
    source = FakeTreeSource(demo_root, stable_handles=True)

    async def scenario():
        indexer = _indexer(source)
        first = await indexer.build_tree()
        # Inserting a sibling must not renumber existing nodes
        demo_root.children[0].children.insert(0, FakeElement("label", "New", key=":1.5/obj/new"))
        second = await indexer.build_tree()
        return first, second

    first, second = asyncio.run(scenario())
    assert first.id_scheme == "handle"
    go_id = handle_id(":1.5/obj/go")
    assert first.get(go_id).label == "Go"
    assert second.get(go_id).label == "Go"
    assert set(first.nodes) < set(second.nodes)


def test_repeated_builds_give_identical_results(fake_source):
    async def scenario():
        indexer = _indexer(fake_source)
        buttons_a = await indexer.find_by_role("button")
        element_a = await indexer.get_element(3)
        buttons_b = await indexer.find_by_role("button")
        element_b = await indexer.get_element(3)
        return buttons_a, buttons_b, element_a, element_b

    buttons_a, buttons_b, element_a, element_b = asyncio.run(scenario())
    assert buttons_a == buttons_b
    assert element_a == element_b


def test_find_by_label_and_exact(fake_source):
    async def scenario():
        indexer = _indexer(fake_source)
        return (await indexer.find_by_label("Item"),
                await indexer.find_by_label_exact("Item 1"),
                await indexer.find_by_label("nothing like this"))

    partial, exact, missing = asyncio.run(scenario())
    assert [node.label for node in partial] == ["Item 0", "Item 1", "Item 2"]
    assert [node.label for node in exact] == ["Item 1"]
    assert missing == []


def test_find_by_role_ignores_case_and_separators(fake_source):
    nodes = asyncio.run(_indexer(fake_source).find_by_role("Check Box"))
    assert [node.label for node in nodes] == ["Remember me"]


def test_find_by_role_matches_part_of_the_role(fake_source):
    indexer = _indexer(fake_source)
    lists = asyncio.run(indexer.find_by_role("LIST"))
    assert [node.label for node in lists] == ["Choices", "Item 0", "Item 1", "Item 2"]
    boxes = asyncio.run(indexer.find_by_role("box"))
    assert [node.label for node in boxes] == ["Remember me", "Theme"]


def test_get_element_unknown_id_is_not_found(fake_source):
    async def scenario():
        indexer = _indexer(fake_source)
        await indexer.build_tree()
        await indexer.get_element(999)

    with pytest.raises(NotFound):
        asyncio.run(scenario())


def test_missing_application_is_not_found(demo_root):
    source = FakeTreeSource(demo_root, app_name="Other")
    with pytest.raises(NotFound) as excinfo:
        asyncio.run(_indexer(source).build_tree())
    assert excinfo.value.code == "app_not_found"


def test_dead_subtree_is_dropped(demo_root):
    demo_root.children[0].children[4].gone = True  # the list
    tree = asyncio.run(_indexer(FakeTreeSource(demo_root)).build_tree())
    assert "Choices" not in [node.label for node in tree.nodes.values()]
    assert "Item 0" not in [node.label for node in tree.nodes.values()]
    assert len(tree) == 7


def test_depth_and_node_limits(fake_source):
    async def scenario():
        shallow = await _indexer(fake_source, max_depth=1).build_tree()
        small = await _indexer(fake_source, max_nodes=4).build_tree()
        return shallow, small

    shallow, small = asyncio.run(scenario())
    assert [node.role for node in shallow.nodes.values()] == ["application", "window"]
    assert len(small) == 4


def test_duplicate_native_keys_are_indexed_once():
    shared = FakeElement("button", "Shared", key="same")
    window = FakeElement("window", "Main", key="window", children=[shared, shared])
    root = FakeElement("application", "Demo", key="app", children=[window])
    tree = asyncio.run(_indexer(FakeTreeSource(root, stable_handles=True)).build_tree())
    assert len(tree) == 3


def test_handle_id_is_deterministic_and_nonzero():
    assert handle_id("a") == handle_id("a")
    assert handle_id("a") != handle_id("b")
    assert 0 < handle_id(":1.5/obj/go") < 2 ** 53
