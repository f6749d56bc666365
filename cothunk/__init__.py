"""Deferred values and thunk-driven coroutines

cothunk provides two callback-based control-flow primitives, built from scratch
without any event loop:

- Deferred values: a `Deferred` is settled exactly once by its producer, and
  consumers chain continuations on its `Promise` with `then`. Errors pass down a
  chain until some continuation handles them, and continuations returning
  promises are flattened into the chain.

- Coroutines driven by thunks: a thunk is a callable which starts some
  asynchronous operation and calls back `(error, value)` once it's done. `run`
  drives a generator (or other resumable procedure) which yields thunks,
  resuming it with each thunk's value, or throwing in each thunk's error. A
  procedure can also yield a list of thunks, which are started all at once and
  whose values come back as a list, in order.

With callbacks, we can go from:

```
def cb(err, data):
  if err:
    handle(err)
  else:
    more_work(data)
read_file('clue1.txt')(cb)
```

to:

```
def work():
  try:
    data = yield read_file('clue1.txt')
  except OSError as err:
    handle(err)
  else:
    more_work(data)
run(work)
```

Nothing here has a global scheduler. Whatever completes a thunk calls back into
us, and the waiting procedure runs right then, on that caller's stack, until it
yields again. Callbacks are called in the order the underlying events happen,
and continuations in the order they were registered, so the order of events is
preserved all the way through.

`cothunk.trio_thunks` connects this to trio, for thunks which perform real IO.

"""
from cothunk.deferred import Deferred, Promise, Thenable, State, Resettle, defer, resolved, rejected
from cothunk.coroutine import Procedure, GeneratorProcedure, CoroutineProcedure, Yielded, Completed, Failed, perform
from cothunk.work import WorkItem, work_item, gather
from cothunk.runner import run, Coroutine, CoroutineState
from cothunk.errors import CothunkError, AlreadySettledError, NotSettledError, UnsupportedWorkItem, ProtocolError
