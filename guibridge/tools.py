"""
MCP tool surface.

Registers one FastMCP tool per bridge operation. Tools answer with JSON text,
or with PNG image content for screenshot and diff results.
"""

import base64
import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncIterator, Dict, Optional

from mcp.server.fastmcp import FastMCP, Image
from pydantic import Field

from guibridge.server import BridgeServer

logger = logging.getLogger(__name__)

INSTRUCTIONS = """\
Inspect and drive a running GUI application.

Element ids come from the most recent get_ui_tree or find_* call; rebuild the
tree after the UI changes. Coordinate tools (click_at, drag, scroll, ...) and
screenshots need the application to run the guibridge agent.
"""

ElementId = Annotated[str, Field(description="Element id from get_ui_tree or a find_* result")]
X = Annotated[float, Field(description="Screen x coordinate")]
Y = Annotated[float, Field(description="Screen y coordinate")]
Button = Annotated[str, Field(description="Mouse button: left, right or middle")]
SaveToFile = Annotated[bool, Field(description="Write the PNG to a temp file and return its path")]
TimeoutMs = Annotated[Optional[int], Field(description="Give up after this many milliseconds (default 5000)")]
ImageB64 = Annotated[Optional[str], Field(description="Base64 encoded PNG")]
ImagePath = Annotated[Optional[str], Field(description="Path to a PNG file")]


def to_tool_result(result: Dict[str, Any]):
    """Render an operation result as MCP content."""
    if "image" in result and "error" not in result:
        return Image(data=base64.b64decode(result["image"]), format=result.get("format", "png"))
    return json.dumps(result, indent=2, default=str)


def bridge_lifespan(bridge: BridgeServer):
    """FastMCP lifespan that shuts the bridge down on the server's own event loop."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
        try:
            yield {}
        finally:
            await bridge.shutdown()

    return lifespan


def create_mcp_server(bridge: BridgeServer, name: str = "guibridge") -> FastMCP:
    """Build a FastMCP server whose tools call into `bridge`."""
    mcp = FastMCP(name, instructions=INSTRUCTIONS, lifespan=bridge_lifespan(bridge))

    async def run(operation: str, **kwargs):
        logger.debug(f"Tool call {operation}: {kwargs}")
        return to_tool_result(await bridge.call(operation, **kwargs))

    # Basic

    @mcp.tool()
    async def ping() -> str:
        """Check that the bridge server is running."""
        return await run("ping")

    @mcp.tool()
    async def check_connection() -> str:
        """Check whether the target application's agent is reachable."""
        return await run("check_connection")

    # Tree

    @mcp.tool()
    async def get_ui_tree() -> str:
        """Walk the application's accessibility tree and return every element."""
        return await run("get_ui_tree")

    @mcp.tool()
    async def find_by_label(
        pattern: Annotated[str, Field(description="Substring to look for in element labels")],
    ) -> str:
        """Find elements whose label contains the pattern."""
        return await run("find_by_label", pattern=pattern)

    @mcp.tool()
    async def find_by_label_exact(
        pattern: Annotated[str, Field(description="Exact label to match")],
    ) -> str:
        """Find elements whose label equals the pattern."""
        return await run("find_by_label_exact", pattern=pattern)

    @mcp.tool()
    async def find_by_role(
        role: Annotated[str, Field(description="Role such as button, check_box or text_input")],
    ) -> str:
        """Find elements whose role contains the given text. Case and separators are ignored."""
        return await run("find_by_role", role=role)

    @mcp.tool()
    async def get_element(id: ElementId) -> str:
        """Return one element from the last tree build."""
        return await run("get_element", id=id)

    # Actions and components

    @mcp.tool()
    async def click_element(id: ElementId) -> str:
        """Click an element through its accessibility action."""
        return await run("click_element", id=id)

    @mcp.tool()
    async def get_bounds(id: ElementId) -> str:
        """Return an element's live screen rectangle."""
        return await run("get_bounds", id=id)

    @mcp.tool()
    async def focus_element(id: ElementId) -> str:
        """Give an element keyboard focus."""
        return await run("focus_element", id=id)

    @mcp.tool()
    async def scroll_to_element(id: ElementId) -> str:
        """Scroll an element's container until the element is visible."""
        return await run("scroll_to_element", id=id)

    @mcp.tool()
    async def drag_element(id: ElementId, end_x: X, end_y: Y, button: Button = "left") -> str:
        """Drag from the center of an element to a screen point."""
        return await run("drag_element", id=id, end_x=end_x, end_y=end_y, button=button)

    # Value

    @mcp.tool()
    async def get_value(id: ElementId) -> str:
        """Read a slider, spin button or progress value with its range."""
        return await run("get_value", id=id)

    @mcp.tool()
    async def set_value(id: ElementId, value: Annotated[float, Field(description="New numeric value")]) -> str:
        """Set a numeric value. Values outside the element's range are rejected."""
        return await run("set_value", id=id, value=value)

    # Selection

    @mcp.tool()
    async def select_item(id: ElementId, index: Annotated[int, Field(description="Child index")]) -> str:
        """Select the child at index in a list, table or tab list."""
        return await run("select_item", id=id, index=index)

    @mcp.tool()
    async def deselect_item(id: ElementId, index: Annotated[int, Field(description="Child index")]) -> str:
        """Deselect the child at index."""
        return await run("deselect_item", id=id, index=index)

    @mcp.tool()
    async def get_selected_count(id: ElementId) -> str:
        """Count the selected children of a container."""
        return await run("get_selected_count", id=id)

    @mcp.tool()
    async def select_all(id: ElementId) -> str:
        """Select every child of a container."""
        return await run("select_all", id=id)

    @mcp.tool()
    async def clear_selection(id: ElementId) -> str:
        """Deselect every child of a container."""
        return await run("clear_selection", id=id)

    # Text

    @mcp.tool()
    async def get_text(id: ElementId) -> str:
        """Read the full text of a text element with its length and caret."""
        return await run("get_text", id=id)

    @mcp.tool()
    async def set_text(id: ElementId, text: Annotated[str, Field(description="Replacement text")]) -> str:
        """Replace the contents of an editable text element."""
        return await run("set_text", id=id, text=text)

    @mcp.tool()
    async def get_text_selection(id: ElementId) -> str:
        """Return the selected character range of a text element."""
        return await run("get_text_selection", id=id)

    @mcp.tool()
    async def set_text_selection(
        id: ElementId,
        start: Annotated[int, Field(description="First selected character offset")],
        end: Annotated[int, Field(description="Offset after the last selected character")],
    ) -> str:
        """Select a character range. The element must have focus."""
        return await run("set_text_selection", id=id, start=start, end=end)

    @mcp.tool()
    async def get_caret_position(id: ElementId) -> str:
        """Return the caret offset, or -1 when the element has no caret."""
        return await run("get_caret_position", id=id)

    @mcp.tool()
    async def set_caret_position(
        id: ElementId,
        offset: Annotated[int, Field(description="Character offset")],
    ) -> str:
        """Move the caret. The element must have focus."""
        return await run("set_caret_position", id=id, offset=offset)

    # State

    @mcp.tool()
    async def is_visible(id: ElementId) -> str:
        """Check whether an element is on screen."""
        return await run("is_visible", id=id)

    @mcp.tool()
    async def is_enabled(id: ElementId) -> str:
        """Check whether an element accepts input."""
        return await run("is_enabled", id=id)

    @mcp.tool()
    async def is_focused(id: ElementId) -> str:
        """Check whether an element has keyboard focus."""
        return await run("is_focused", id=id)

    @mcp.tool()
    async def is_checked(id: ElementId) -> str:
        """Read a check box or radio button. Non-checkable elements report null."""
        return await run("is_checked", id=id)

    # Coordinate input

    @mcp.tool()
    async def click_at(x: X, y: Y, button: Button = "left") -> str:
        """Click at a screen point."""
        return await run("click_at", x=x, y=y, button=button)

    @mcp.tool()
    async def double_click(x: X, y: Y, button: Button = "left") -> str:
        """Double-click at a screen point."""
        return await run("double_click", x=x, y=y, button=button)

    @mcp.tool()
    async def hover(x: X, y: Y) -> str:
        """Move the pointer to a screen point."""
        return await run("hover", x=x, y=y)

    @mcp.tool()
    async def drag(start_x: X, start_y: Y, end_x: X, end_y: Y, button: Button = "left") -> str:
        """Press at one point, move to another and release."""
        return await run("drag", start_x=start_x, start_y=start_y, end_x=end_x, end_y=end_y, button=button)

    @mcp.tool()
    async def keyboard_input(
        key: Annotated[str, Field(description="Key or combo, e.g. 'Enter', 'a' or 'Ctrl+Shift+s'")],
    ) -> str:
        """Send a key press to the focused element."""
        return await run("keyboard_input", key=key)

    @mcp.tool()
    async def scroll(
        x: X, y: Y,
        delta_x: Annotated[float, Field(description="Horizontal scroll in pixels")] = 0.0,
        delta_y: Annotated[float, Field(description="Vertical scroll in pixels")] = 0.0,
    ) -> str:
        """Scroll at a screen point."""
        return await run("scroll", x=x, y=y, delta_x=delta_x, delta_y=delta_y)

    # Screenshots

    @mcp.tool()
    async def take_screenshot(save_to_file: SaveToFile = False):
        """Capture the application window."""
        return await run("take_screenshot", save_to_file=save_to_file)

    @mcp.tool()
    async def screenshot_element(id: ElementId, save_to_file: SaveToFile = False):
        """Capture the area covered by one element."""
        return await run("screenshot_element", id=id, save_to_file=save_to_file)

    @mcp.tool()
    async def screenshot_region(
        x: X, y: Y,
        width: Annotated[float, Field(description="Region width")],
        height: Annotated[float, Field(description="Region height")],
        save_to_file: SaveToFile = False,
    ):
        """Capture a rectangular screen region."""
        return await run("screenshot_region", x=x, y=y, width=width, height=height, save_to_file=save_to_file)

    @mcp.tool()
    async def compare_screenshots(
        base64_a: ImageB64 = None, base64_b: ImageB64 = None,
        path_a: ImagePath = None, path_b: ImagePath = None,
        algorithm: Annotated[str, Field(description="hybrid, mssim or rms")] = "hybrid",
    ) -> str:
        """Score how similar two images are, from 0.0 to 1.0."""
        return await run("compare_screenshots", base64_a=base64_a, base64_b=base64_b,
                         path_a=path_a, path_b=path_b, algorithm=algorithm)

    @mcp.tool()
    async def diff_screenshots(
        base64_a: ImageB64 = None, base64_b: ImageB64 = None,
        path_a: ImagePath = None, path_b: ImagePath = None,
        save_to_file: SaveToFile = False,
    ):
        """Render differing pixels in red over a gray background."""
        return await run("diff_screenshots", base64_a=base64_a, base64_b=base64_b,
                         path_a=path_a, path_b=path_b, save_to_file=save_to_file)

    # Waits

    @mcp.tool()
    async def wait_for_element(
        pattern: Annotated[str, Field(description="Substring of the element label")],
        appear: Annotated[bool, Field(description="Wait for it to appear (true) or disappear (false)")] = True,
        timeout_ms: TimeoutMs = None,
    ) -> str:
        """Poll the tree until an element with a matching label appears or disappears."""
        return await run("wait_for_element", pattern=pattern, appear=appear, timeout_ms=timeout_ms)

    @mcp.tool()
    async def wait_for_state(
        id: ElementId,
        state: Annotated[str, Field(description="visible, enabled, focused or checked")],
        expected: Annotated[bool, Field(description="Value to wait for")] = True,
        timeout_ms: TimeoutMs = None,
    ) -> str:
        """Poll an element until one of its states reaches the expected value."""
        return await run("wait_for_state", id=id, state=state, expected=expected, timeout_ms=timeout_ms)

    # Highlights

    @mcp.tool()
    async def highlight_element(
        id: ElementId,
        color: Annotated[str, Field(description="#RRGGBB or #RRGGBBAA")] = "#ff0000",
        duration_ms: Annotated[int, Field(description="How long to show it; 0 keeps it until cleared")] = 3000,
    ) -> str:
        """Draw a colored outline around an element."""
        return await run("highlight_element", id=id, color=color, duration_ms=duration_ms)

    @mcp.tool()
    async def clear_highlights() -> str:
        """Remove every highlight."""
        return await run("clear_highlights")

    # Snapshots

    SnapshotName = Annotated[str, Field(description="Snapshot name")]

    @mcp.tool()
    async def save_snapshot(name: SnapshotName) -> str:
        """Store the current tree under a name, replacing any snapshot with that name."""
        return await run("save_snapshot", name=name)

    @mcp.tool()
    async def load_snapshot(name: SnapshotName) -> str:
        """Return a stored tree."""
        return await run("load_snapshot", name=name)

    @mcp.tool()
    async def diff_snapshots(name_a: SnapshotName, name_b: SnapshotName) -> str:
        """List elements added, removed or modified between two snapshots."""
        return await run("diff_snapshots", name_a=name_a, name_b=name_b)

    @mcp.tool()
    async def diff_current(name: SnapshotName) -> str:
        """Compare a stored snapshot with the live tree."""
        return await run("diff_current", name=name)

    @mcp.tool()
    async def delete_snapshot(name: SnapshotName) -> str:
        """Forget a stored snapshot."""
        return await run("delete_snapshot", name=name)

    @mcp.tool()
    async def list_snapshots() -> str:
        """List stored snapshot names."""
        return await run("list_snapshots")

    # Telemetry

    @mcp.tool()
    async def get_frame_stats() -> str:
        """Report FPS and frame times over the recent frames."""
        return await run("get_frame_stats")

    @mcp.tool()
    async def start_perf_recording(
        duration_ms: Annotated[int, Field(description="Recording window; 0 records until stopped")] = 0,
    ) -> str:
        """Start recording frame times."""
        return await run("start_perf_recording", duration_ms=duration_ms)

    @mcp.tool()
    async def get_perf_report() -> str:
        """Summarize a finished recording with averages and percentiles."""
        return await run("get_perf_report")

    @mcp.tool()
    async def stop_perf_recording() -> str:
        """End the current recording and return its report."""
        return await run("stop_perf_recording")

    @mcp.tool()
    async def get_logs(
        level: Annotated[Optional[str], Field(description="Minimum level: TRACE, DEBUG, INFO, WARN or ERROR")] = None,
        limit: Annotated[Optional[int], Field(description="Return at most this many of the newest entries")] = None,
    ) -> str:
        """Read log entries captured inside the application."""
        return await run("get_logs", level=level, limit=limit)

    @mcp.tool()
    async def clear_logs() -> str:
        """Empty the application's log buffer."""
        return await run("clear_logs")

    return mcp
