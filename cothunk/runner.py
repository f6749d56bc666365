"""Drive a procedure to completion by waiting on the work items it yields

`run` starts a procedure, and each time the procedure yields a work item, starts
that work item with a callback which resumes the procedure: with the value, if
the work succeeded, or by throwing the error in at the point where the
procedure yielded, if it failed. The procedure can catch that error like any
other. This continues until the procedure returns or raises.

There's no event loop here. Whatever completes a work item calls back into us,
and we run the procedure right then, on that caller's stack, up to the next
yield. If a work item completes immediately, while we're still inside its
`start`, we don't recurse; we notice when `start` returns and loop around, so a
procedure can do any number of synchronous steps without growing the stack.

Only one work item is in flight for a given coroutine at a time; parallelism
happens inside a yielded collection (see `cothunk.work`).

`run` returns a Promise for the procedure's final value. If the procedure
raises out of its top level, the Promise is rejected with that exception, and
nothing else happens; attach a failure handler to the Promise to find out
about it.

"""
from __future__ import annotations
from cothunk.coroutine import Procedure, Completed, Failed, Step, as_procedure
from cothunk.deferred import Deferred, Promise
from cothunk.work import work_item
import enum
import functools
import logging
import outcome
import typing as t

__all__ = [
    'CoroutineState',
    'Coroutine',
    'run',
]

logger = logging.getLogger(__name__)

class CoroutineState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"

class Coroutine:
    "A single run of a procedure; `promise` settles with its final value or error."
    def __init__(self, procedure: Procedure) -> None:
        self.procedure = procedure
        self.state = CoroutineState.CREATED
        self._deferred = Deferred[t.Any]()
        self.promise: Promise[t.Any] = self._deferred.promise
        # counts suspensions, so we can tell which suspension a completion is for
        self._suspensions = 0
        self._waiting_on: t.Optional[int] = None
        self._on_stack = False
        self._saved: t.Optional[outcome.Outcome] = None

    def start(self) -> None:
        if self.state is not CoroutineState.CREATED:
            raise RuntimeError("coroutine already started", self)
        self._drive(None)

    def _finish(self, step: Step) -> bool:
        if isinstance(step, Completed):
            logger.debug("Coroutine(%s): completed with %s", self.procedure, step.value)
            self.state = CoroutineState.COMPLETED
            self._deferred.resolve(step.value)
            return True
        elif isinstance(step, Failed):
            logger.debug("Coroutine(%s): failed with %r", self.procedure, step.error)
            self.state = CoroutineState.FAILED
            self._deferred.reject(step.error)
            return True
        return False

    def _drive(self, resumption: t.Optional[outcome.Outcome]) -> None:
        while True:
            self.state = CoroutineState.RUNNING
            if resumption is None:
                step = self.procedure.start()
            else:
                step = self.procedure.resume(resumption)
            if self._finish(step):
                return
            try:
                item = work_item(step.item)
            except Exception as exn:
                # unsupported yields, and procedures which fail to even be created
                logger.debug("Coroutine(%s): can't wait on %s: %r, throwing it back in", self.procedure, step.item, exn)
                resumption = outcome.Error(exn)
                continue
            self.state = CoroutineState.SUSPENDED
            self._suspensions += 1
            self._waiting_on = self._suspensions
            logger.debug("Coroutine(%s): suspended on %s", self.procedure, item)
            self._on_stack = True
            try:
                item.start(functools.partial(self._complete, self._suspensions))
            finally:
                self._on_stack = False
            if self._saved is None:
                return
            # the work item completed inside start; loop instead of recursing
            resumption, self._saved = self._saved, None

    def _complete(self, suspension: int, result: outcome.Outcome) -> None:
        if suspension != self._waiting_on:
            logger.debug("Coroutine(%s): discarding extra completion %s for suspension %d",
                         self.procedure, result, suspension)
            return
        self._waiting_on = None
        if self._on_stack:
            logger.debug("Coroutine(%s): immediately resumed with %s", self.procedure, result)
            self._saved = result
            return
        logger.debug("Coroutine(%s): resuming with %s", self.procedure, result)
        self._drive(result)

    def __repr__(self) -> str:
        return f"Coroutine({self.procedure}, {self.state.value})"

def run(procedure: t.Any, *args: t.Any) -> Promise[t.Any]:
    """Run this procedure until it completes, waiting on whatever it yields.

    `procedure` is anything accepted by `cothunk.coroutine.as_procedure`: a
    Procedure, a generator or native coroutine, or a function returning one, which
    is called with `args`.

    """
    coroutine = Coroutine(as_procedure(procedure, *args))
    coroutine.start()
    return coroutine.promise
