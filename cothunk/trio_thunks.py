"""Bridging cothunk and trio

cothunk's core performs no IO and has no event loop; it only reacts to callbacks.
This module connects it to trio in both directions:

- `TrioExecutor` makes thunks out of trio async functions. Invoking such a thunk
  starts the async function as a task in a nursery, and the task calls the
  thunk's completion callback when the function returns or raises. So a
  procedure driven by `cothunk.run` can yield real asynchronous IO, and a
  collection of such thunks really does run in parallel.

- `wait` lets a trio task block on any work item (or promise, or procedure),
  returning its value or raising its error.

For example, the treasure hunt:

```
async with trio.open_nursery() as nursery:
    executor = TrioExecutor(nursery)
    def hunt():
        clue1 = yield executor.read_file('clue1.txt')
        clue2 = yield executor.read_file(clue1.strip())
        return (yield executor.read_file(clue2.strip()))
    treasure = await wait(hunt)
```

"""
from __future__ import annotations
from dataclasses import dataclass
from cothunk.work import Completion, Thunk, work_item
import logging
import os
import outcome
import trio
import typing as t

__all__ = [
    'TrioExecutor',
    'wait',
]

logger = logging.getLogger(__name__)

class TrioExecutor:
    "Makes thunks which run trio async functions as tasks in a nursery."
    def __init__(self, nursery: trio.Nursery, encoding: str='utf-8') -> None:
        self.nursery = nursery
        self.encoding = encoding

    def thunk(self, async_fn: t.Callable[..., t.Awaitable[t.Any]], *args: t.Any) -> Thunk:
        "Return a thunk which, each time it's invoked, starts `async_fn(*args)` in our nursery."
        def thunk(done: Completion) -> None:
            logger.debug("TrioExecutor: starting %s with %s", async_fn, args)
            self.nursery.start_soon(self._run_and_report, async_fn, args, done)
        return thunk

    async def _run_and_report(self, async_fn: t.Callable[..., t.Awaitable[t.Any]],
                              args: t.Tuple[t.Any, ...], done: Completion) -> None:
        # cancellation and other BaseExceptions go to the nursery, not to the thunk's caller
        try:
            value = await async_fn(*args)
        except Exception as exn:
            logger.debug("TrioExecutor: %s with %s raised %r", async_fn, args, exn)
            done(exn, None)
        else:
            done(None, value)

    async def _read_text(self, path: t.Union[str, os.PathLike]) -> str:
        return await trio.Path(path).read_text(encoding=self.encoding)

    async def _size(self, path: t.Union[str, os.PathLike]) -> int:
        return (await trio.Path(path).stat()).st_size

    def read_file(self, path: t.Union[str, os.PathLike]) -> Thunk:
        "A thunk which reads this file as text."
        return self.thunk(self._read_text, path)

    def file_size(self, path: t.Union[str, os.PathLike]) -> Thunk:
        "A thunk which stats this file and returns its size in bytes."
        return self.thunk(self._size, path)

@dataclass
class _Waiter:
    task: t.Any
    on_stack: bool = True
    saved: t.Optional[outcome.Outcome] = None
    cancelled: bool = False

    def complete(self, result: outcome.Outcome) -> None:
        if self.cancelled:
            # discard the result - the waiting task is gone
            logger.debug("_Waiter(%s): completed after cancellation with %s", self.task, result)
            return
        if self.on_stack:
            # completed inside start; the task hasn't suspended yet, so we can't reschedule it
            self.saved = result
            return
        trio.lowlevel.reschedule(self.task, result)

    def abort(self, raise_cancel: t.Any) -> trio.lowlevel.Abort:
        logger.debug("_Waiter(%s): cancelled", self.task)
        self.cancelled = True
        return trio.lowlevel.Abort.SUCCEEDED

async def wait(obj: t.Any) -> t.Any:
    """Start this work item and block the current trio task until it completes.

    `obj` is anything a procedure could yield: a thunk, a promise, a procedure, or a
    collection of those. If the trio task is cancelled while waiting, the work item
    still runs to completion, but its result is discarded.

    """
    item = work_item(obj)
    waiter = _Waiter(trio.lowlevel.current_task())
    item.start(waiter.complete)
    waiter.on_stack = False
    if waiter.saved is not None:
        return waiter.saved.unwrap()
    return await trio.lowlevel.wait_task_rescheduled(waiter.abort)
