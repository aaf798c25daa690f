"""Typed application errors with codes, status hints, causes and stacks."""

from __future__ import annotations

import sys
import threading
import traceback
from collections.abc import Iterable, Iterator
from typing import Any

_DEFAULT_STACK_DEPTH = 32
_stack_depth = _DEFAULT_STACK_DEPTH
_depth_lock = threading.Lock()


class AppError(Exception):
    """An error carrying an application code, a status hint and an optional cause."""

    def __init__(
        self,
        code: str,
        status: int,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        self._frames: traceback.StackSummary | None = None

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"

    def __repr__(self) -> str:
        return f"AppError(code={self.code!r}, status={self.status!r}, message={self.message!r})"

    def matches(self, other: object) -> bool:
        """True when other is an AppError with the same non-empty code."""
        return isinstance(other, AppError) and bool(self.code) and self.code == other.code

    def stack(self) -> str:
        """The captured construction-site frames, innermost first; "" if none."""
        if not self._frames:
            return ""
        return "".join(
            f"{frame.name}\n\t{frame.filename}:{frame.lineno}\n" for frame in self._frames
        )


class JoinedError(Exception):
    """Several independent errors presented as one."""

    def __init__(self, errors: Iterable[BaseException | None]) -> None:
        self.errors = tuple(e for e in errors if e is not None)
        super().__init__("\n".join(str(e) for e in self.errors))

    def __str__(self) -> str:
        return "\n".join(str(e) for e in self.errors)


class Multi:
    """Collects errors and joins them into a single one on demand."""

    def __init__(self) -> None:
        self._errors: list[BaseException] = []

    def append(self, *args: BaseException | None) -> None:
        """Add every non-None error."""
        self._errors.extend(e for e in args if e is not None)

    def __len__(self) -> int:
        return len(self._errors)

    def err(self) -> BaseException | None:
        """None when empty, the error itself when single, else a JoinedError."""
        if not self._errors:
            return None
        if len(self._errors) == 1:
            return self._errors[0]
        return JoinedError(self._errors)

    def errors(self) -> list[BaseException]:
        """A copy of the collected errors."""
        return list(self._errors)


def set_stack_depth(n: int) -> None:
    """Change how many frames new/wrap capture; 0 disables capture."""
    global _stack_depth
    with _depth_lock:
        _stack_depth = max(0, n)


def stack_depth() -> int:
    """The current stack capture limit."""
    return _stack_depth


def _build(cause: BaseException | None, code: str, status: int, message: str) -> AppError:
    err = AppError(code, status, message, cause)
    depth = _stack_depth
    if depth > 0:
        caller = sys._getframe(2)
        err._frames = traceback.StackSummary.extract(
            traceback.walk_stack(caller), limit=depth, lookup_lines=False
        )
    return err


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args if args else fmt


def new(code: str, status: int, fmt: str, *args: Any) -> AppError:
    """Create an AppError without a cause, capturing the caller's stack."""
    return _build(None, code, status, _format(fmt, args))


def wrap(cause: BaseException | None, code: str, status: int, fmt: str, *args: Any) -> AppError:
    """Create an AppError wrapping cause, capturing the caller's stack."""
    return _build(cause, code, status, _format(fmt, args))


def new_sentinel(code: str, status: int, message: str) -> AppError:
    """Create a module-level sentinel error; no stack is captured."""
    return AppError(code, status, message)


def _walk(err: BaseException | None) -> Iterator[BaseException]:
    """Depth-first walk over an error, its causes and joined members."""
    pending: list[BaseException | None] = [err]
    seen: set[int] = set()
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, JoinedError):
            pending.extend(reversed(current.errors))
        elif isinstance(current, AppError):
            pending.append(current.cause)
        else:
            pending.append(current.__cause__)


def error_is(err: BaseException | None, target: object) -> bool:
    """Whether any error in err's chain is, matches, or is an instance of target."""
    for current in _walk(err):
        if current is target:
            return True
        if isinstance(target, type) and isinstance(current, target):
            return True
        if isinstance(current, AppError) and current.matches(target):
            return True
    return False


def _first_app_error(err: BaseException | None) -> AppError | None:
    return next((e for e in _walk(err) if isinstance(e, AppError)), None)


def code_of(err: BaseException | None) -> str:
    """Code of the first AppError in err's chain, or ""."""
    found = _first_app_error(err)
    return found.code if found is not None else ""


def status_of(err: BaseException | None) -> int:
    """Status of the first AppError in err's chain, or 0."""
    found = _first_app_error(err)
    return found.status if found is not None else 0


def append_err(dst: BaseException | None, err: BaseException | None) -> BaseException | None:
    """Combine dst and err, skipping None on either side."""
    if err is None:
        return dst
    if dst is None:
        return err
    return JoinedError([dst, err])