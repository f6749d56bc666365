"Exceptions raised by cothunk itself, as opposed to the errors carried through promises and procedures."

__all__ = [
    "CothunkError",
    "AlreadySettledError",
    "NotSettledError",
    "UnsupportedWorkItem",
    "ProtocolError",
]

class CothunkError(Exception):
    pass

class AlreadySettledError(CothunkError):
    """A Deferred was resolved or rejected after it had already settled.

    Each Deferred settles exactly once; a second call to resolve or reject is a bug in
    the producer.

    """
    def __init__(self, deferred, outcome) -> None:
        super().__init__("deferred already settled", deferred, outcome)
        self.deferred = deferred
        self.outcome = outcome

class NotSettledError(CothunkError):
    "Promise.result was called on a promise which is still pending."
    pass

class UnsupportedWorkItem(CothunkError, TypeError):
    """A procedure yielded something we don't know how to wait for.

    This is thrown into the procedure at the point where it yielded.

    """
    def __init__(self, obj) -> None:
        super().__init__("only thunks, promises, procedures, and collections of them can be yielded", obj)
        self.obj = obj

class ProtocolError(CothunkError):
    "A native coroutine yielded something other than a request made with `perform`."
    pass
