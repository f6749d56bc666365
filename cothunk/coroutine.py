"""Resumable procedures, as an explicit interface

The runner in `cothunk.runner` doesn't touch Python generators or coroutines
directly. It drives a `Procedure`, which it can start, and then resume either with
a value (`Procedure.send`) or with an exception raised at the point where the
procedure is suspended (`Procedure.throw`). Each of these returns a `Step`: the
procedure either yielded a work item and is now suspended, returned a final
value, or raised an exception out of its top level.

Anything implementing `Procedure` can be run, including hand-written state
machines. Two adapters are provided for the usual case:

- `GeneratorProcedure` wraps a generator, which suspends with `yield`:

```
def hunt():
    clue1 = yield read('clue1.txt')
    treasure = yield read(clue1.strip())
    return treasure
```

- `CoroutineProcedure` wraps a native coroutine, which suspends with
  `await perform(...)`:

```
async def hunt():
    clue1 = await perform(read('clue1.txt'))
    treasure = await perform(read(clue1.strip()))
    return treasure
```

A native coroutine run this way must only await `perform`, directly or through
other coroutines; awaiting anything else (say, `trio.sleep`) yields an object
we can't wait for, and a `ProtocolError` is thrown back in.

"""
from __future__ import annotations
from dataclasses import dataclass
from cothunk.errors import ProtocolError
import abc
import functools
import inspect
import outcome
import types
import typing as t

__all__ = [
    'Yielded',
    'Completed',
    'Failed',
    'Step',
    'Procedure',
    'GeneratorProcedure',
    'CoroutineProcedure',
    'perform',
    'as_procedure',
    'is_procedure',
]

@dataclass(frozen=True)
class Yielded:
    "The procedure is suspended, waiting for this work item."
    item: t.Any

@dataclass(frozen=True)
class Completed:
    value: t.Any

@dataclass(frozen=True)
class Failed:
    error: BaseException

Step = t.Union[Yielded, Completed, Failed]

class Procedure(abc.ABC):
    "Something which runs until it suspends on a work item, and can then be resumed with the result."
    @abc.abstractmethod
    def start(self) -> Step: ...
    @abc.abstractmethod
    def send(self, value: t.Any) -> Step: ...
    @abc.abstractmethod
    def throw(self, exn: BaseException) -> Step: ...

    def resume(self, result: outcome.Outcome) -> Step:
        if isinstance(result, outcome.Value):
            return self.send(result.value)
        else:
            return self.throw(result.error)

def _strip_frame(exn: BaseException) -> BaseException:
    # drop our own frame from the top of the traceback
    return exn.with_traceback(exn.__traceback__ and exn.__traceback__.tb_next)

class GeneratorProcedure(Procedure):
    __slots__ = ('gen',)
    def __init__(self, gen: t.Generator[t.Any, t.Any, t.Any]) -> None:
        self.gen = gen

    def start(self) -> Step:
        return self.send(None)

    # send and throw are identical apart from the method called; they aren't
    # abstracted so that our stack frames stay out of tracebacks.
    def send(self, value: t.Any) -> Step:
        try:
            yielded = self.gen.send(value)
        except StopIteration as e:
            return Completed(e.value)
        except Exception as exn:
            return Failed(_strip_frame(exn))
        return Yielded(yielded)

    def throw(self, exn: BaseException) -> Step:
        try:
            yielded = self.gen.throw(exn)
        except StopIteration as e:
            return Completed(e.value)
        except Exception as raised:
            return Failed(_strip_frame(raised))
        return Yielded(yielded)

    def __repr__(self) -> str:
        return f"GeneratorProcedure({self.gen.__qualname__})"

class Perform:
    "The internal type a native coroutine yields up to wait for a work item"
    __slots__ = ('item',)
    def __init__(self, item: t.Any) -> None:
        self.item = item

@types.coroutine
def perform(item: t.Any) -> t.Generator[Perform, t.Any, t.Any]:
    """Suspend the calling coroutine until this work item completes, returning its value.

    This is a coroutine function, just implemented as a generator because this is the
    only place we actually yield from.

    """
    return (yield Perform(item))

class CoroutineProcedure(Procedure):
    __slots__ = ('coro',)
    def __init__(self, coro: t.Coroutine[Perform, t.Any, t.Any]) -> None:
        self.coro = coro

    def start(self) -> Step:
        return self.send(None)

    def _check(self, yielded: t.Any) -> Step:
        if isinstance(yielded, Perform):
            return Yielded(yielded.item)
        return self.throw(ProtocolError("native coroutines may only await cothunk.perform", yielded))

    def send(self, value: t.Any) -> Step:
        try:
            yielded = self.coro.send(value)
        except StopIteration as e:
            return Completed(e.value)
        except Exception as exn:
            return Failed(_strip_frame(exn))
        return self._check(yielded)

    def throw(self, exn: BaseException) -> Step:
        try:
            yielded = self.coro.throw(exn)
        except StopIteration as e:
            return Completed(e.value)
        except Exception as raised:
            return Failed(_strip_frame(raised))
        return self._check(yielded)

    def __repr__(self) -> str:
        return f"CoroutineProcedure({self.coro.__qualname__})"

def is_procedure(obj: t.Any) -> bool:
    "Whether this is a procedure, or something we'd turn into one by calling it with no arguments."
    if (isinstance(obj, Procedure)
        or inspect.isgenerator(obj) or inspect.iscoroutine(obj)):
        return True
    func = obj
    while isinstance(func, functools.partial):
        func = func.func
    return inspect.isgeneratorfunction(func) or inspect.iscoroutinefunction(func)

def as_procedure(obj: t.Any, *args: t.Any) -> Procedure:
    """Turn this into a Procedure.

    Procedures are returned as-is. Generators and native coroutines are wrapped.
    Anything else callable (generator functions, coroutine functions, partials of
    them) is called with `args`, and the result is wrapped.

    """
    if isinstance(obj, Procedure):
        if args:
            raise TypeError("arguments can't be passed to an already-created procedure", obj, args)
        return obj
    if not (inspect.isgenerator(obj) or inspect.iscoroutine(obj)) and callable(obj):
        obj = obj(*args)
    if inspect.isgenerator(obj):
        return GeneratorProcedure(obj)
    elif inspect.iscoroutine(obj):
        return CoroutineProcedure(obj)
    raise TypeError("not a generator, coroutine, or Procedure", obj)
