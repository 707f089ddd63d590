"""GUI automation bridge package."""

__version__ = "0.1.0"

# Import the main classes to make them available at the package level
from guibridge.config import AgentConfig, BridgeConfig
from guibridge.errors import BridgeError
from guibridge.server import BridgeServer
from guibridge.channel import AgentChannel, InProcessAgent

# Make the main function available at the package level
from guibridge.cli import main
