"""Duplex channel between the bridge server and the in-process agent."""

from guibridge.channel.client import AgentChannel
from guibridge.channel.agent import InProcessAgent
from guibridge.channel.input_sink import PendingInput
