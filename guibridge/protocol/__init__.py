"""Wire protocol between the bridge server and the in-process agent."""

from guibridge.protocol.framing import FrameCodec
from guibridge.protocol.paths import default_socket_path
