"""Work items: what a procedure can yield, and the fan-out/fan-in of collections of them

A thunk is the primitive unit of asynchronous work: a callable which takes a
completion callback, starts some operation, and calls the callback exactly once
with `(error, value)` when the operation is done. For example, with some
callback-based file API:

```
def read(path):
    def thunk(done):
        fs.read_file(path, done)
    return thunk
```

Whatever a procedure yields is classified once, by `work_item`, into one of the
`WorkItem` classes below. Each has a single `start` method, which starts the
work and calls back with an `outcome.Outcome`. Every WorkItem is also itself a
thunk, so collections and procedures can be handed to anything expecting a
thunk.

A `Collection` starts all its members immediately, in order, before any of them
have completed, and completes once with the list of their values, in the same
order as the members regardless of the order they finished in. The first member
to fail completes the collection with its error; the other members aren't
cancelled (there's no way to cancel a thunk), they just run to completion and
their results are discarded.

"""
from __future__ import annotations
from dataclasses import dataclass
from cothunk.coroutine import Procedure, as_procedure, is_procedure
from cothunk.deferred import Thenable, Promise
from cothunk.errors import UnsupportedWorkItem
from cothunk.outcome import from_pair
import abc
import collections.abc
import functools
import logging
import outcome
import typing as t

__all__ = [
    'Completion',
    'Thunk',
    'WorkItem',
    'ThunkItem',
    'PromiseItem',
    'ProcedureItem',
    'Collection',
    'MappingCollection',
    'work_item',
    'gather',
]

logger = logging.getLogger(__name__)

Completion = t.Callable[[t.Optional[BaseException], t.Any], None]
Thunk = t.Callable[[Completion], None]
Callback = t.Callable[[outcome.Outcome], None]

class WorkItem(abc.ABC):
    @abc.abstractmethod
    def start(self, cb: Callback) -> None:
        "Start this work, and call `cb` exactly once with its outcome."
        ...

    def __call__(self, done: Completion) -> None:
        def report(result: outcome.Outcome) -> None:
            if isinstance(result, outcome.Error):
                done(result.error, None)
            else:
                done(None, result.value)
        self.start(report)

@dataclass(frozen=True)
class ThunkItem(WorkItem):
    thunk: Thunk

    def start(self, cb: Callback) -> None:
        completed = False
        def done(error: t.Optional[BaseException], value: t.Any=None) -> None:
            nonlocal completed
            if completed:
                logger.debug("ThunkItem(%s): discarding extra completion (%s, %s)", self.thunk, error, value)
                return
            completed = True
            cb(from_pair(error, value))
        try:
            self.thunk(done)
        except Exception as exn:
            if completed:
                raise
            logger.debug("ThunkItem(%s): raised %s before completing", self.thunk, exn)
            done(exn)

@dataclass(frozen=True)
class PromiseItem(WorkItem):
    promise: Thenable

    def start(self, cb: Callback) -> None:
        if isinstance(self.promise, Promise):
            self.promise.subscribe(cb)
        else:
            self.promise.then(lambda value: cb(outcome.Value(value)),
                              lambda exn: cb(outcome.Error(exn)))

@dataclass(frozen=True)
class ProcedureItem(WorkItem):
    "A nested procedure, run to completion with its own coroutine; its value is the procedure's return value."
    procedure: Procedure

    def start(self, cb: Callback) -> None:
        from cothunk.runner import run
        run(self.procedure).subscribe(cb)

class _Join:
    "Fan-in bookkeeping for a single start of a collection"
    def __init__(self, cb: Callback, results: t.Any, pending: int) -> None:
        self.cb = cb
        self.results = results
        self.pending = pending
        self.finished = False

    def member_done(self, key: t.Any, result: outcome.Outcome) -> None:
        if self.finished:
            logger.debug("_Join: discarding %s for member %s, collection already completed", result, key)
            return
        if isinstance(result, outcome.Error):
            logger.debug("_Join: member %s failed, failing collection with %d members outstanding",
                         key, self.pending - 1)
            self.finished = True
            self.cb(result)
            return
        self.results[key] = result.value
        self.pending -= 1
        if self.pending == 0:
            self.finished = True
            self.cb(outcome.Value(self.results))

@dataclass(frozen=True)
class Collection(WorkItem):
    items: t.Tuple[WorkItem, ...]

    def start(self, cb: Callback) -> None:
        if not self.items:
            return cb(outcome.Value([]))
        join = _Join(cb, [None]*len(self.items), len(self.items))
        # start them all before any of them can be waited on
        for index, item in enumerate(self.items):
            item.start(functools.partial(join.member_done, index))

@dataclass(frozen=True)
class MappingCollection(WorkItem):
    "Like Collection, but keyed; completes with a dict with the same keys, in the same order."
    items: t.Tuple[t.Tuple[t.Hashable, WorkItem], ...]

    def start(self, cb: Callback) -> None:
        if not self.items:
            return cb(outcome.Value({}))
        join = _Join(cb, {key: None for key, _ in self.items}, len(self.items))
        for key, item in self.items:
            item.start(functools.partial(join.member_done, key))

def work_item(obj: t.Any) -> WorkItem:
    "Classify something yielded by a procedure as a WorkItem, or raise UnsupportedWorkItem."
    if isinstance(obj, WorkItem):
        return obj
    elif isinstance(obj, Thenable):
        return PromiseItem(obj)
    elif isinstance(obj, (list, tuple)):
        return Collection(tuple(work_item(member) for member in obj))
    elif isinstance(obj, collections.abc.Mapping):
        return MappingCollection(tuple((key, work_item(member)) for key, member in obj.items()))
    elif is_procedure(obj):
        return ProcedureItem(as_procedure(obj))
    elif callable(obj):
        return ThunkItem(obj)
    raise UnsupportedWorkItem(obj)

def gather(items: t.Iterable[t.Any]) -> WorkItem:
    "Make a single thunk which runs all these work items in parallel and completes with the list of their values."
    return work_item(list(items))
