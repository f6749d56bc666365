from cothunk.deferred import Deferred, Promise, Thenable, State, Resettle, defer, resolved, rejected
from cothunk.errors import AlreadySettledError, NotSettledError
import typing as t
import unittest

class MyException(Exception):
    pass

def fail(exn: BaseException) -> t.NoReturn:
    raise exn

class TestSettle(unittest.TestCase):
    def test_resolve_notifies_every_continuation_once(self) -> None:
        deferred = defer()
        calls: t.List[t.Tuple[str, t.Any]] = []
        for name in ['a', 'b', 'c']:
            deferred.promise.then(lambda v, name=name: calls.append((name, v)),
                                  lambda e: calls.append(('failure', e)))
        self.assertEqual(calls, [])
        deferred.resolve(42)
        self.assertEqual(calls, [('a', 42), ('b', 42), ('c', 42)])
        self.assertEqual(deferred.promise.state, State.FULFILLED)

    def test_reject_notifies_failure_handlers(self) -> None:
        deferred = defer()
        calls: t.List[t.Any] = []
        deferred.promise.then(calls.append, lambda e: calls.append(('failure', e)))
        exn = MyException("nope")
        deferred.reject(exn)
        self.assertEqual(calls, [('failure', exn)])
        self.assertEqual(deferred.promise.state, State.REJECTED)

    def test_late_registration(self) -> None:
        "A continuation registered after settlement runs immediately, inside then."
        promise = resolved('early')
        calls: t.List[str] = []
        promise.then(calls.append)
        self.assertEqual(calls, ['early'])
        exn = MyException()
        errors: t.List[BaseException] = []
        rejected(exn).then(calls.append, errors.append)
        self.assertEqual(errors, [exn])
        self.assertEqual(calls, ['early'])

    def test_resettle_raises(self) -> None:
        deferred = defer()
        deferred.resolve(1)
        with self.assertRaises(AlreadySettledError):
            deferred.resolve(2)
        with self.assertRaises(AlreadySettledError):
            deferred.reject(MyException())
        self.assertEqual(deferred.promise.result(), 1)

    def test_resettle_ignored(self) -> None:
        deferred = Deferred[int](on_resettle=Resettle.IGNORE)
        calls: t.List[int] = []
        deferred.promise.then(calls.append)
        deferred.resolve(1)
        deferred.resolve(2)
        deferred.reject(MyException())
        self.assertEqual(calls, [1])
        self.assertEqual(deferred.promise.result(), 1)

    def test_resettle_while_adopting(self) -> None:
        "Once resolved with a pending promise, a deferred is settled as far as the producer is concerned."
        inner = defer()
        deferred = defer()
        deferred.resolve(inner.promise)
        self.assertEqual(deferred.promise.state, State.PENDING)
        with self.assertRaises(AlreadySettledError):
            deferred.resolve(1)
        inner.resolve(2)
        self.assertEqual(deferred.promise.result(), 2)

    def test_result(self) -> None:
        deferred = defer()
        with self.assertRaises(NotSettledError):
            deferred.promise.result()
        deferred.reject(MyException("bad"))
        with self.assertRaises(MyException):
            deferred.promise.result()
        # can be inspected more than once
        with self.assertRaises(MyException):
            deferred.promise.result()

class TestChain(unittest.TestCase):
    def test_order(self) -> None:
        deferred = defer()
        calls: t.List[t.Tuple[str, int]] = []
        def stage(name: str) -> t.Callable[[int], int]:
            def handler(value: int) -> int:
                calls.append((name, value))
                return value + 1
            return handler
        final = deferred.promise.then(stage('a')).then(stage('b')).then(stage('c'))
        deferred.resolve(0)
        self.assertEqual(calls, [('a', 0), ('b', 1), ('c', 2)])
        self.assertEqual(final.result(), 3)

    def test_then_returns_new_promise(self) -> None:
        deferred = defer()
        promise = deferred.promise.then(lambda v: v)
        self.assertIsInstance(promise, Promise)
        self.assertIsNot(promise, deferred.promise)

    def test_default_failure_passes_through(self) -> None:
        deferred = defer()
        b_calls: t.List[t.Any] = []
        errors: t.List[BaseException] = []
        exn = MyException("from a")
        def a(value: t.Any) -> t.NoReturn:
            raise exn
        deferred.promise.then(a).then(b_calls.append, errors.append)
        deferred.resolve('start')
        self.assertEqual(b_calls, [])
        self.assertEqual(errors, [exn])

    def test_handler_failure_rejects_next_not_current(self) -> None:
        deferred = defer()
        next_promise = deferred.promise.then(lambda v: fail(MyException(v)))
        deferred.resolve('x')
        self.assertEqual(deferred.promise.state, State.FULFILLED)
        self.assertEqual(next_promise.state, State.REJECTED)

    def test_failure_passes_down_long_chain(self) -> None:
        deferred = defer()
        calls: t.List[t.Any] = []
        final = (deferred.promise
                 .then(calls.append)
                 .then(calls.append)
                 .then(calls.append, lambda exn: 'recovered from ' + str(exn)))
        deferred.reject(MyException('early'))
        self.assertEqual(calls, [])
        self.assertEqual(final.result(), 'recovered from early')

    def test_recovery_without_return(self) -> None:
        deferred = defer()
        recovered = deferred.promise.then(None, lambda exn: None)
        deferred.reject(MyException())
        self.assertEqual(recovered.state, State.FULFILLED)
        self.assertIsNone(recovered.result())

    def test_failure_handler_raises(self) -> None:
        deferred = defer()
        second = MyException('second')
        errors: t.List[BaseException] = []
        deferred.promise.then(None, lambda exn: fail(second)).then(None, errors.append)
        deferred.reject(MyException('first'))
        self.assertEqual(errors, [second])

    def test_catch(self) -> None:
        deferred = defer()
        calls: t.List[t.Any] = []
        deferred.promise.then(lambda v: v * 2).catch(lambda exn: -1).then(calls.append)
        deferred.resolve(21)
        self.assertEqual(calls, [42])

    def test_long_chain_doesnt_recurse(self) -> None:
        deferred = defer()
        promise = deferred.promise
        for _ in range(10000):
            promise = promise.then(lambda v: v + 1)
        deferred.resolve(0)
        self.assertEqual(promise.result(), 10000)

    def test_long_failure_chain_doesnt_recurse(self) -> None:
        deferred = defer()
        promise = deferred.promise
        for _ in range(10000):
            promise = promise.then(lambda v: v + 1)
        deferred.reject(MyException('deep'))
        with self.assertRaises(MyException):
            promise.result()

    def test_long_chain_on_settled_promise(self) -> None:
        promise = resolved(0)
        for _ in range(10000):
            promise = promise.then(lambda v: v + 1)
        self.assertEqual(promise.result(), 10000)

    def test_raising_continuation_doesnt_stop_the_rest(self) -> None:
        deferred = defer()
        exn = MyException('bad subscriber')
        calls: t.List[t.Any] = []
        deferred.promise.subscribe(lambda result: fail(exn))
        deferred.promise.subscribe(lambda result: calls.append(result.value))
        later = deferred.promise.then(lambda v: v * 2)
        with self.assertRaises(MyException) as cm:
            deferred.resolve(21)
        self.assertIs(cm.exception, exn)
        self.assertEqual(calls, [21])
        self.assertEqual(later.result(), 42)
        # the queue is left empty, so the next settlement notifies normally
        other = defer()
        other.promise.then(calls.append)
        other.resolve('next')
        self.assertEqual(calls, [21, 'next'])

class TestAdoption(unittest.TestCase):
    def test_handler_returning_promise(self) -> None:
        first = defer()
        second = defer()
        calls: t.List[str] = []
        first.promise.then(lambda v: second.promise).then(calls.append)
        first.resolve('ignored')
        self.assertEqual(calls, [])
        second.resolve('adopted')
        self.assertEqual(calls, ['adopted'])

    def test_transitive(self) -> None:
        p1 = defer()
        p2 = defer()
        deferred = defer()
        deferred.resolve(p1.promise)
        p1.resolve(p2.promise)
        self.assertEqual(deferred.promise.state, State.PENDING)
        p2.resolve(42)
        self.assertEqual(deferred.promise.result(), 42)
        self.assertEqual(p1.promise.result(), 42)

    def test_adopt_rejection(self) -> None:
        inner = defer()
        errors: t.List[BaseException] = []
        resolved(inner.promise).then(None, errors.append)
        exn = MyException()
        inner.reject(exn)
        self.assertEqual(errors, [exn])

    def test_adopt_already_settled(self) -> None:
        self.assertEqual(resolved(resolved(resolved(7))).result(), 7)

    def test_own_promise(self) -> None:
        deferred = defer()
        deferred.resolve(deferred.promise)
        with self.assertRaises(TypeError):
            deferred.promise.result()

    def test_foreign_thenable(self) -> None:
        class Immediate:
            "A promise-like value from some other library, which is always already resolved."
            def __init__(self, value: t.Any) -> None:
                self.value = value
            def then(self, on_success, on_failure=None):
                return on_success(self.value)
        Thenable.register(Immediate)
        calls: t.List[t.Any] = []
        resolved(1).then(lambda v: Immediate(v + 1)).then(calls.append)
        self.assertEqual(calls, [2])

    def test_objects_with_then_attribute_are_values(self) -> None:
        "Only Thenables are adopted; having a `then` attribute isn't enough."
        class NotAPromise:
            then = None
        value = NotAPromise()
        self.assertIs(resolved(value).result(), value)
