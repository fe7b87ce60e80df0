# errors.py
class ReconcileError(Exception):
    """Base reconciliation error."""
    def __init__(self, msg: str = ""):
        super().__init__(msg)
        self.msg = msg

    def __str__(self):
        return self.msg or self.__class__.__name__


class ChainNotConfigured(ReconcileError):
    """No blockchain document (or no RPC endpoint) for a chain id."""
    def __init__(self, chain_id, reason: str = "no blockchain document"):
        super().__init__(f"chain {chain_id!r}: {reason}")
        self.chain_id = chain_id


class AbiUnavailable(ReconcileError):
    """A contract interface could not be loaded."""
    def __init__(self, name: str):
        super().__init__(f"ABI {name!r} is not available")
        self.name = name


class InvalidStatusTransition(ReconcileError):
    """The status machine refused a transition."""
    def __init__(self, entity: str, current, target):
        super().__init__(f"{entity}: {current!r} -> {target!r} is not allowed")
        self.entity = entity
        self.current = current
        self.target = target


class RecordMissing(ReconcileError):
    """A targeted update matched no document (gone, or its status moved on)."""
    def __init__(self, collection: str, record_id, status=None):
        super().__init__(f"{collection}: no document with _id={record_id!r} and status={status!r}")
        self.collection = collection
        self.record_id = record_id
        self.status = status


class AuthError(ReconcileError):
    """Request authentication failed."""
    def __init__(self, msg: str, status: int = 401):
        super().__init__(msg)
        self.status = status


class LogDecodeError(ReconcileError):
    """A log carries the topic of a known event but its payload does not decode."""
    def __init__(self, event_name: str, reason):
        super().__init__(f"cannot decode {event_name} log: {reason}")
        self.event_name = event_name
