"Just the outcome library, plus conversion from the (error, value) pairs passed to thunk completions"
from outcome import Outcome, Value, Error
import typing as t

__all__ = [
    'Outcome',
    'Value',
    'Error',
    'from_pair',
]

def from_pair(error: t.Optional[BaseException], value: t.Any) -> Outcome:
    if error is not None:
        return Error(error)
    return Value(value)
