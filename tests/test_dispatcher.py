"""
Tests for element and coordinate actions.
"""

import asyncio

import pytest

from conftest import FakeAgentChannel, FakeElement, FakeTreeSource
from guibridge.core.dispatcher import ActionDispatcher
from guibridge.core.indexer import NodeIndexer
from guibridge.core.models import CheckState
from guibridge.core.source import SourceGateway
from guibridge.errors import (
    BridgeError,
    ElementGone,
    InvalidArgument,
    NoSuchAction,
    NotFocused,
    NotFound,
    NotSupported,
)

GO, CHECK, SLIDER, FIELD, LIST, COMBO, WINDOW = 3, 4, 5, 6, 7, 8, 2


@pytest.fixture
def setup(demo_root):
    source = FakeTreeSource(demo_root)
    gateway = SourceGateway(source, call_timeout=2.0)
    indexer = NodeIndexer(gateway, "Demo")
    channel = FakeAgentChannel()
    return ActionDispatcher(indexer, gateway, channel), demo_root, channel


def _window(root):
    return root.children[0]


def run(dispatcher, method, *args):
    async def scenario():
        await dispatcher.indexer.build_tree()
        return await getattr(dispatcher, method)(*args)

    return asyncio.run(scenario())


def test_click_element_uses_click_action(setup):
    dispatcher, root, _ = setup
    assert run(dispatcher, "click_element", GO) == "click"
    assert _window(root).children[0].performed == ["click"]


def test_click_element_falls_back_to_first_action(setup):
    dispatcher, root, _ = setup
    assert run(dispatcher, "click_element", CHECK) == "toggle"


def test_click_element_without_actions(setup):
    dispatcher, _, _ = setup
    with pytest.raises(NoSuchAction):
        run(dispatcher, "click_element", SLIDER)


def test_click_unknown_id_is_not_found(setup):
    dispatcher, _, _ = setup
    with pytest.raises(NotFound):
        run(dispatcher, "click_element", 4242)


def test_destroyed_element_is_element_gone(setup):
    dispatcher, root, _ = setup

    async def scenario():
        await dispatcher.indexer.build_tree()
        _window(root).children[0].gone = True
        await dispatcher.click_element(GO)

    with pytest.raises(ElementGone):
        asyncio.run(scenario())


def test_get_bounds_and_drag_element(setup):
    dispatcher, _, channel = setup
    bounds = run(dispatcher, "get_bounds", GO)
    assert bounds.to_dict() == {"x": 10, "y": 10, "width": 80, "height": 20}

    start = run(dispatcher, "drag_element", GO, 300.0, 400.0)
    assert start == (50.0, 20.0)
    assert channel.calls[-1] == ("drag", 50.0, 20.0, 300.0, 400.0, "left")


def test_focus_element(setup):
    dispatcher, root, _ = setup
    run(dispatcher, "focus_element", FIELD)
    assert "focused" in _window(root).children[3].states
    with pytest.raises(BridgeError) as excinfo:
        run(dispatcher, "focus_element", GO)
    assert excinfo.value.code == "focus_failed"


def test_value_range_is_enforced(setup):
    dispatcher, _, _ = setup
    value = run(dispatcher, "get_value", SLIDER)
    assert (value.current, value.minimum, value.maximum) == (5.0, 0.0, 10.0)

    run(dispatcher, "set_value", SLIDER, 7.0)
    assert run(dispatcher, "get_value", SLIDER).current == 7.0

    with pytest.raises(InvalidArgument) as excinfo:
        run(dispatcher, "set_value", SLIDER, 11.0)
    assert excinfo.value.code == "out_of_range"


def test_value_on_element_without_value_interface(setup):
    dispatcher, _, _ = setup
    with pytest.raises(NotSupported):
        run(dispatcher, "get_value", GO)


def test_selection_on_list(setup):
    dispatcher, root, _ = setup

    async def scenario():
        await dispatcher.indexer.build_tree()
        assert await dispatcher.select_item(LIST, 1) is True
        assert await dispatcher.select_item(LIST, 2) is True
        assert await dispatcher.get_selected_count(LIST) == 2
        assert await dispatcher.deselect_item(LIST, 1) is True
        assert await dispatcher.select_item(LIST, 9) is False
        assert await dispatcher.select_all(LIST) is True
        assert await dispatcher.get_selected_count(LIST) == 3
        assert await dispatcher.clear_selection(LIST) is True
        return await dispatcher.get_selected_count(LIST)

    assert asyncio.run(scenario()) == 0


def test_selection_on_combo_box_points_to_click_at(setup):
    dispatcher, _, _ = setup
    with pytest.raises(NotSupported) as excinfo:
        run(dispatcher, "select_item", COMBO, 0)
    assert excinfo.value.details["fallback"] == "click_at"


def test_selection_without_interface(setup):
    dispatcher, _, _ = setup
    with pytest.raises(NotSupported) as excinfo:
        run(dispatcher, "get_selected_count", GO)
    assert excinfo.value.code == "no_selection"


def test_text_read_and_write(setup):
    dispatcher, _, _ = setup
    assert run(dispatcher, "get_text", FIELD).text == "hello"
    run(dispatcher, "set_text", FIELD, "bye")
    assert run(dispatcher, "get_text", FIELD).text == "bye"

    with pytest.raises(NotSupported) as excinfo:
        run(dispatcher, "set_text", GO, "nope")
    assert excinfo.value.code == "not_editable"


def test_text_selection_and_caret_need_focus(setup):
    dispatcher, _, _ = setup

    async def scenario():
        await dispatcher.indexer.build_tree()
        with pytest.raises(NotFocused):
            await dispatcher.set_caret_position(FIELD, 2)
        assert await dispatcher.get_caret_position(FIELD) == -1

        await dispatcher.focus_element(FIELD)
        await dispatcher.set_caret_position(FIELD, 2)
        await dispatcher.set_text_selection(FIELD, 1, 4)
        return (await dispatcher.get_caret_position(FIELD),
                await dispatcher.get_text_selection(FIELD))

    caret, selection = asyncio.run(scenario())
    assert caret == 2
    assert (selection.start, selection.end) == (1, 4)


def test_invalid_text_ranges(setup):
    dispatcher, _, _ = setup
    with pytest.raises(InvalidArgument):
        run(dispatcher, "set_text_selection", FIELD, 3, 1)
    with pytest.raises(InvalidArgument):
        run(dispatcher, "set_caret_position", FIELD, -1)


def test_caret_on_non_text_element(setup):
    dispatcher, _, _ = setup
    assert run(dispatcher, "get_caret_position", GO) == -1


def test_states(setup):
    dispatcher, root, _ = setup
    assert run(dispatcher, "is_visible", GO) is True
    assert run(dispatcher, "is_enabled", GO) is True
    assert run(dispatcher, "is_focused", GO) is False
    assert run(dispatcher, "is_checked", GO) == CheckState.NOT_CHECKABLE
    assert run(dispatcher, "is_checked", CHECK) == CheckState.UNCHECKED

    run(dispatcher, "click_element", CHECK)
    assert run(dispatcher, "is_checked", CHECK) == CheckState.CHECKED
    assert run(dispatcher, "state_of", CHECK, "checked") is True

    with pytest.raises(InvalidArgument):
        run(dispatcher, "state_of", GO, "shiny")


def _dispatcher_for(*widgets):
    window = FakeElement("window", "Main", children=list(widgets), actions=())
    root = FakeElement("application", "Demo", children=[window], actions=())
    gateway = SourceGateway(FakeTreeSource(root), call_timeout=2.0)
    return ActionDispatcher(NodeIndexer(gateway, "Demo"), gateway, FakeAgentChannel())


def test_toggle_button_reports_check_state():
    # A pressed AT-SPI toggle button arrives with the checked state
    pressed = FakeElement("toggle_button", "Bold", states=("visible", "enabled", "checked"))
    released = FakeElement("toggle_button", "Italic", states=("visible", "enabled"))
    dispatcher = _dispatcher_for(pressed, released)

    assert run(dispatcher, "is_checked", 3) == CheckState.CHECKED
    assert run(dispatcher, "is_checked", 4) == CheckState.UNCHECKED
    assert run(dispatcher, "state_of", 4, "checked") is False


def test_unknown_states_read_as_none():
    mystery = FakeElement("button", "Mystery", states=("states_unknown",))
    dispatcher = _dispatcher_for(mystery)

    assert run(dispatcher, "is_visible", 3) is None
    assert run(dispatcher, "is_enabled", 3) is None
    assert run(dispatcher, "is_focused", 3) is None
    assert run(dispatcher, "state_of", 3, "visible") is None
    assert dispatcher.indexer.current_tree().get(3).visible is None


def test_coordinate_operations_go_through_channel(setup):
    dispatcher, _, channel = setup

    async def scenario():
        await dispatcher.click_at(1, 2)
        await dispatcher.double_click(3, 4, "right")
        await dispatcher.hover(5, 6)
        await dispatcher.drag(0, 0, 10, 10)
        await dispatcher.keyboard_input("Ctrl+s")
        await dispatcher.scroll(7, 8, 0.0, -120.0)

    asyncio.run(scenario())
    assert channel.calls == [
        ("click", 1, 2, "left"),
        ("double_click", 3, 4, "right"),
        ("move_mouse", 5, 6),
        ("drag", 0, 0, 10, 10, "left"),
        ("keyboard_input", "Ctrl+s"),
        ("scroll", 7, 8, 0.0, -120.0),
    ]
