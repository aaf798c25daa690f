"""Start long-running components together and shut them down in reverse order."""

from __future__ import annotations

import concurrent.futures
import contextlib
import logging
import queue
import signal
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from svcbase.apperror import JoinedError

RunFunc = Callable[[threading.Event], Any]
CloseFunc = Callable[[float], Any]


class GracefulError(RuntimeError):
    """Raised when the application cannot run or shut down cleanly."""


class ComponentError(GracefulError):
    """A component's run or close step failed."""

    def __init__(self, name: str, error: BaseException, phase: str = "run") -> None:
        label = "component" if phase == "run" else "close"
        super().__init__(f"graceful: {label} {name}: {error}")
        self.name = name
        self.error = error
        self.phase = phase
        self.__cause__ = error


@dataclass(frozen=True)
class _Component:
    name: str
    run: RunFunc
    close: CloseFunc | None


class App:
    """Runs components until a signal, a stop event, or any component returning.

    Each run function receives a ``threading.Event`` that is set when
    shutdown begins. Close functions receive the seconds left of the
    shutdown deadline and are called in reverse order of registration.
    """

    def __init__(
        self,
        shutdown_timeout: float = 15.0,
        signals: Iterable[int] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._timeout = shutdown_timeout if shutdown_timeout > 0 else 15.0
        sigs = tuple(signals) if signals is not None else ()
        self._signals = sigs or (signal.SIGINT, signal.SIGTERM)
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._components: list[_Component] = []

    def add(self, name: str, run: RunFunc, close: CloseFunc | None = None) -> None:
        """Register a component; close may be None."""
        with self._lock:
            self._components.append(_Component(name, run, close))

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Run every component and shut all down once the first trigger fires.

        Raises the first component failure, otherwise a JoinedError of close
        failures, if any.
        """
        with self._lock:
            components = list(self._components)
        if not components:
            raise GracefulError("graceful: no components registered")

        cancel = threading.Event()
        results: queue.Queue[tuple[str, BaseException | None]] = queue.Queue()
        for component in components:
            threading.Thread(
                target=self._run_component,
                args=(component, cancel, results),
                name=f"component-{component.name}",
                daemon=True,
            ).start()

        received: list[int] = []
        with self._trap_signals(received):
            first_error: ComponentError | None = None
            drained = 0
            while True:
                try:
                    name, err = results.get(timeout=0.05)
                except queue.Empty:
                    if received:
                        self._log.info(
                            "graceful: signal received, shutting down signal=%s", received[0]
                        )
                        break
                    if stop_event is not None and stop_event.is_set():
                        self._log.info("graceful: context cancelled, shutting down")
                        break
                    continue
                drained = 1
                if err is not None:
                    self._log.error("graceful: component crashed name=%s err=%s", name, err)
                    first_error = ComponentError(name, err)
                else:
                    self._log.info("graceful: component exited, shutting down name=%s", name)
                break

            cancel.set()
            deadline = time.monotonic() + self._timeout
            close_errors = self._close_all(components, deadline)

            while drained < len(components):
                remaining = deadline - time.monotonic()
                try:
                    if remaining <= 0:
                        raise queue.Empty
                    name, err = results.get(timeout=remaining)
                except queue.Empty:
                    self._log.warning(
                        "graceful: shutdown timed out waiting for components remaining=%d",
                        len(components) - drained,
                    )
                    break
                drained += 1
                if (
                    err is not None
                    and not isinstance(err, concurrent.futures.CancelledError)
                    and first_error is None
                ):
                    first_error = ComponentError(name, err)

        if first_error is not None:
            raise first_error
        if close_errors:
            raise JoinedError(close_errors)

    def _run_component(
        self,
        component: _Component,
        cancel: threading.Event,
        results: queue.Queue[tuple[str, BaseException | None]],
    ) -> None:
        self._log.info("graceful: component starting name=%s", component.name)
        error: BaseException | None = None
        try:
            component.run(cancel)
        except Exception as exc:
            error = exc
        self._log.info("graceful: component returned name=%s err=%s", component.name, error)
        results.put((component.name, error))

    def _close_all(self, components: list[_Component], deadline: float) -> list[ComponentError]:
        errors: list[ComponentError] = []
        for component in reversed(components):
            if component.close is None:
                continue
            self._log.info("graceful: closing component name=%s", component.name)
            try:
                component.close(max(0.0, deadline - time.monotonic()))
            except Exception as exc:
                self._log.error("graceful: close failed name=%s err=%s", component.name, exc)
                errors.append(ComponentError(component.name, exc, "close"))
        return errors

    @contextlib.contextmanager
    def _trap_signals(self, received: list[int]) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def handler(signum: int, frame: Any) -> None:
            received.append(signum)

        previous: dict[int, Any] = {}
        try:
            for sig in self._signals:
                previous[sig] = signal.signal(sig, handler)
            yield
        finally:
            for sig, old in previous.items():
                signal.signal(sig, old if old is not None else signal.SIG_DFL)