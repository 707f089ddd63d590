"""Core services: tree indexing, actions, waits, snapshots and telemetry."""

from guibridge.core.models import Bounds, NodeRecord, Role, UiTree
from guibridge.core.indexer import NodeIndexer
from guibridge.core.dispatcher import ActionDispatcher
from guibridge.core.polling import PollEngine
from guibridge.core.snapshots import SnapshotStore, diff_trees
from guibridge.core.source import SourceGateway, TreeSource
