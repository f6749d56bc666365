"Thunks with completions under the control of the test"
from cothunk.work import Completion, Thunk
import collections
import typing as t

import logging
logger = logging.getLogger(__name__)
# logging.basicConfig(level=logging.DEBUG)

class ManualThunks:
    """Thunks which only complete when the test completes them, by name.

    Lets a test pick the exact order in which concurrent thunks complete.

    """
    def __init__(self) -> None:
        self.started: t.List[str] = []
        self.pending: t.Dict[str, Completion] = {}

    def thunk(self, name: str) -> Thunk:
        def thunk(done: Completion) -> None:
            logger.debug("ManualThunks: started %s", name)
            self.started.append(name)
            self.pending[name] = done
        return thunk

    def succeed(self, name: str, value: t.Any) -> None:
        self.pending.pop(name)(None, value)

    def fail(self, name: str, exn: BaseException) -> None:
        self.pending.pop(name)(exn, None)

class CallQueue:
    "A stand-in for an event loop: callbacks queued with call_soon run, in order, when drained."
    def __init__(self) -> None:
        self._calls: t.Deque[t.Callable[[], None]] = collections.deque()

    def call_soon(self, func: t.Callable[[], None]) -> None:
        self._calls.append(func)

    def drain(self) -> int:
        count = 0
        while self._calls:
            self._calls.popleft()()
            count += 1
        return count

class FakeFiles:
    "An in-memory directory of text files, read with thunks which complete on a CallQueue."
    def __init__(self, queue: CallQueue, contents: t.Dict[str, str]) -> None:
        self.queue = queue
        self.contents = contents
        self.reads: t.List[str] = []

    def read(self, path: str) -> Thunk:
        def thunk(done: Completion) -> None:
            self.reads.append(path)
            if path in self.contents:
                self.queue.call_soon(lambda: done(None, self.contents[path]))
            else:
                self.queue.call_soon(lambda: done(FileNotFoundError(path), None))
        return thunk

def value_thunk(value: t.Any) -> Thunk:
    "A thunk which completes immediately with this value."
    def thunk(done: Completion) -> None:
        done(None, value)
    return thunk

def error_thunk(exn: BaseException) -> Thunk:
    def thunk(done: Completion) -> None:
        done(exn, None)
    return thunk

TREASURE_HUNT = {
    'clue1.txt': 'clue2.txt\n',
    'clue2.txt': 'treasure.txt\n',
    'treasure.txt': '$$$',
}
