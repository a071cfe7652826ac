from .client import AerospikeInfoClient, NodeInspector, parse_info_pairs
from .error import InfoError, ProtocolError, MissingValueError, NodeNotFoundError

__all__ = [
    "AerospikeInfoClient",
    "NodeInspector",
    "parse_info_pairs",
    "InfoError",
    "ProtocolError",
    "MissingValueError",
    "NodeNotFoundError",
]
