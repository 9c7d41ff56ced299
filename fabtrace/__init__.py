"""fabtrace — InfiniBand fabric topology, path and partition extraction."""
from .models import Fabric, Node, Edge, PhysicalLink, Path, Partition, NodeType, PathStatus
from .extract import ExtractConfig, FabricExtractor
from .events import SubnetEvent, TuiPathStatus, LogLevel, STATUS_STYLE
from .app import FabTraceApp

__version__ = "0.1.0"

__all__ = [
    "Fabric", "Node", "Edge", "PhysicalLink", "Path", "Partition",
    "NodeType", "PathStatus",
    "ExtractConfig", "FabricExtractor",
    "SubnetEvent", "TuiPathStatus", "LogLevel", "STATUS_STYLE",
    "FabTraceApp",
]
