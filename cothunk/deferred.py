"""Deferred values, split into a write side and a read side

A `Deferred` is the producer's handle on a value which isn't available yet. The
producer eventually calls `Deferred.resolve` or `Deferred.reject`, exactly once.
`Deferred.promise` is the consumer's handle: a `Promise`, on which the consumer
registers continuations with `Promise.then`.

Each call to `then` returns a new Promise, which settles with the outcome of the
handler that ran. A handler that raises rejects the new Promise; a handler that
returns a value resolves the new Promise with that value. If no failure handler
is passed, the error is re-raised into the next Promise, so errors pass
untouched down a chain until something handles them:

```
read('clue1.txt').then(
    lambda clue1: read(clue1.strip())
).then(
    lambda clue2: read(clue2.strip())
).then(print, lambda exn: print("no treasure for us:", exn))
```

Resolving with a promise-like value (a `Thenable`) doesn't resolve with the
Promise object itself; instead the Deferred adopts it, and settles however it
settles. Adoption is repeated if that in turn settles with another Thenable, so
any depth of nested promises flattens into one settlement. This is why the
handlers above can return the Promise from `read` directly.

Continuations run synchronously, inside the outermost call to `resolve` or
`reject`, in the order they were registered. A continuation registered on a
Promise which has already settled runs immediately, inside the call to `then`.

Settling one Deferred from inside a continuation (which is what every link of a
`then` chain does) doesn't recurse. The settlement is queued, and the outermost
settling call runs the queue until it's empty, so a chain of any length settles
without growing the stack. If a continuation raises, the rest of the queue still
runs, and the first exception is then re-raised out of the outermost call.

"""
from __future__ import annotations
from cothunk.errors import AlreadySettledError, NotSettledError
from cothunk.outcome import Outcome
import abc
import collections
import enum
import functools
import logging
import outcome
import typing as t

__all__ = [
    'State',
    'Resettle',
    'Thenable',
    'Promise',
    'Deferred',
    'defer',
    'resolved',
    'rejected',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

class State(enum.Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"

class Resettle(enum.Enum):
    "What a Deferred does when it's resolved or rejected a second time"
    RAISE = "raise"
    IGNORE = "ignore"

class Thenable(abc.ABC, t.Generic[T]):
    """Anything exposing a Promise-style `then`

    Resolution only adopts values which are instances of this class. Promise-like
    classes from elsewhere can be adopted by registering them as virtual
    subclasses, with `Thenable.register`.

    """
    @abc.abstractmethod
    def then(self, on_success: t.Optional[t.Callable[[T], t.Any]],
             on_failure: t.Optional[t.Callable[[BaseException], t.Any]] = None) -> Thenable: ...

def _pass_value(value: T) -> T:
    return value

def _reraise(exn: BaseException) -> t.NoReturn:
    raise exn

# continuations of settled deferreds which haven't run yet; only the outermost _notify runs them
_queued: t.Deque[t.Tuple[t.Callable[[outcome.Outcome], None], outcome.Outcome]] = collections.deque()
_notifying = False

def _notify(continuations: t.List[t.Callable[[outcome.Outcome], None]], result: outcome.Outcome) -> None:
    global _notifying
    _queued.extend((continuation, result) for continuation in continuations)
    if _notifying:
        return
    first_exn: t.Optional[Exception] = None
    try:
        _notifying = True
        while _queued:
            continuation, queued_result = _queued.popleft()
            try:
                continuation(queued_result)
            except Exception as exn:
                if first_exn is None:
                    first_exn = exn
                else:
                    logger.error("continuation %s also raised", continuation, exc_info=exn)
    finally:
        _notifying = False
    if first_exn is not None:
        raise first_exn

def _run_handler(next_deferred: Deferred, on_success: t.Callable[[t.Any], t.Any],
                 on_failure: t.Callable[[BaseException], t.Any], result: outcome.Outcome) -> None:
    if isinstance(result, outcome.Value):
        handled = outcome.capture(on_success, result.value)
    else:
        handled = outcome.capture(on_failure, result.error)
    if isinstance(handled, outcome.Value):
        next_deferred.resolve(handled.value)
    else:
        next_deferred.reject(handled.error)

class Promise(Thenable[T]):
    "The read side of a Deferred."
    __slots__ = ('_deferred',)
    def __init__(self, deferred: Deferred[T]) -> None:
        self._deferred = deferred

    @property
    def state(self) -> State:
        return self._deferred._state

    def then(self, on_success: t.Optional[t.Callable[[T], t.Any]],
             on_failure: t.Optional[t.Callable[[BaseException], t.Any]] = None) -> Promise[t.Any]:
        """Register handlers for this promise's value or error, returning a Promise of the handler's result.

        Passing None for `on_success` passes the value through unchanged; passing None
        for `on_failure` re-raises the error into the returned Promise.

        """
        next_deferred = Deferred[t.Any]()
        self._deferred._subscribe(functools.partial(
            _run_handler, next_deferred,
            _pass_value if on_success is None else on_success,
            _reraise if on_failure is None else on_failure))
        return next_deferred.promise

    def catch(self, on_failure: t.Callable[[BaseException], t.Any]) -> Promise[t.Any]:
        return self.then(None, on_failure)

    def subscribe(self, cb: t.Callable[[outcome.Outcome], None]) -> None:
        """Call `cb` with the outcome of this promise once it settles.

        Unlike `then`, no new Promise is made, and an exception raised by `cb` isn't
        captured; it propagates out of whatever call settled this promise.

        """
        self._deferred._subscribe(cb)

    def result(self) -> T:
        "Return the value of this settled promise, or raise its error."
        result = self._deferred._outcome
        if result is None:
            raise NotSettledError(self)
        if isinstance(result, outcome.Error):
            raise result.error
        return result.value

    def __repr__(self) -> str:
        return f"Promise({self._deferred._state.value})"

class Deferred(t.Generic[T]):
    """The write side of a deferred value, which the producer settles exactly once

    Only the producer should hold this; hand out `promise` to consumers.

    """
    def __init__(self, on_resettle: Resettle=Resettle.RAISE) -> None:
        self.on_resettle = on_resettle
        self.promise = Promise[T](self)
        self._state = State.PENDING
        self._outcome: t.Optional[outcome.Outcome] = None
        self._adopting = False
        self._continuations: t.List[t.Callable[[outcome.Outcome], None]] = []

    def _subscribe(self, continuation: t.Callable[[outcome.Outcome], None]) -> None:
        if self._outcome is not None:
            _notify([continuation], self._outcome)
        else:
            self._continuations.append(continuation)

    def _settle(self, result: Outcome[T]) -> None:
        self._outcome = result
        self._state = State.FULFILLED if isinstance(result, outcome.Value) else State.REJECTED
        continuations, self._continuations = self._continuations, []
        logger.debug("Deferred(%s): settled with %s, notifying %d continuations",
                     id(self), result, len(continuations))
        _notify(continuations, result)

    def _resettle(self, result: outcome.Outcome) -> None:
        if self.on_resettle is Resettle.IGNORE:
            logger.debug("Deferred(%s): ignoring %s, already %s", id(self), result,
                         "adopting" if self._adopting else self._state.value)
            return
        raise AlreadySettledError(self, result)

    def _adopt(self, thenable: Thenable) -> None:
        logger.debug("Deferred(%s): adopting %s", id(self), thenable)
        self._adopting = True
        forwarded = False
        def forward(result: outcome.Outcome) -> None:
            nonlocal forwarded
            if forwarded:
                logger.debug("Deferred(%s): discarding extra settlement %s from %s", id(self), result, thenable)
                return
            forwarded = True
            self._adopting = False
            if isinstance(result, outcome.Value):
                self.resolve(result.value)
            else:
                self.reject(result.error)
        try:
            thenable.then(lambda value: forward(outcome.Value(value)),
                          lambda exn: forward(outcome.Error(exn)))
        except Exception as exn:
            forward(outcome.Error(exn))

    def resolve(self, value: t.Union[T, Thenable[T]]) -> None:
        "Resolve with a value, or adopt the eventual outcome of a Thenable."
        if self._state is not State.PENDING or self._adopting:
            return self._resettle(outcome.Value(value))
        if value is self.promise:
            self._settle(outcome.Error(TypeError("a deferred can't be resolved with its own promise")))
        elif isinstance(value, Thenable):
            self._adopt(value)
        else:
            self._settle(outcome.Value(value))

    def reject(self, exn: BaseException) -> None:
        if self._state is not State.PENDING or self._adopting:
            return self._resettle(outcome.Error(exn))
        self._settle(outcome.Error(exn))

    def __repr__(self) -> str:
        return f"Deferred({self._state.value})"

def defer() -> Deferred[t.Any]:
    return Deferred()

def resolved(value: t.Any) -> Promise[t.Any]:
    "Return a promise already resolved with this value (or adopting it, if it's a Thenable)."
    deferred = Deferred[t.Any]()
    deferred.resolve(value)
    return deferred.promise

def rejected(exn: BaseException) -> Promise[t.Any]:
    deferred = Deferred[t.Any]()
    deferred.reject(exn)
    return deferred.promise
