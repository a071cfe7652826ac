class InfoError(Exception):
    """Base error for info requests sent to aerospike nodes."""
    pass


class ProtocolError(InfoError):
    """A malformed info message was received."""
    pass


class MissingValueError(InfoError):
    """An expected value is absent from an info response."""
    pass


class NodeNotFoundError(InfoError):
    """The node backing a pod is not the one the pod was assigned."""
    pass
