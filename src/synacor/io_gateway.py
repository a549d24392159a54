"""Synacor VM I/O Gateway

Unbuffered character rendezvous between the VM and an external party. Every
blocking send or receive races three outcomes: the handoff completes, the
cancellation token fires, or the watchdog deadline passes.
"""

from typing import Callable, List, Optional
import threading
import time

from .errors import IOWatchdogTimeout


class ChannelClosed(Exception):
    """Raised when sending to or receiving from a closed channel."""
    pass


class CancellationToken:
    """Level-triggered cancellation signal.

    Once cancelled it stays cancelled. Callbacks registered with
    ``add_callback`` run exactly once, in the cancelling thread.
    """

    def __init__(self, parent: Optional['CancellationToken'] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._parent = parent
        if parent is not None:
            parent.add_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def detach(self) -> None:
        """Stop following the parent token. Idempotent."""
        if self._parent is not None:
            self._parent.remove_callback(self.cancel)
            self._parent = None

    def child(self) -> 'CancellationToken':
        """New token cancelled along with this one, but cancellable on its own."""
        return CancellationToken(self)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class Channel:
    """Single-slot synchronous channel of character codes.

    ``send`` returns only after a receiver has taken the value.
    """

    def __init__(self, name: str):
        self.name = name
        self._cond = threading.Condition(threading.RLock())
        self._value: Optional[int] = None
        self._pending = False
        self._closed = False
        self._sent = 0
        self._taken = 0
        self._watched = set()

    @property
    def closed(self) -> bool:
        return self._closed

    def _watch(self, token: Optional[CancellationToken]) -> None:
        if token is None or token in self._watched:
            return
        self._watched.add(token)
        token.add_callback(self._wake)

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def _wait(self, deadline: Optional[float], direction: str, timeout: Optional[float]) -> None:
        if deadline is None:
            self._cond.wait()
            return

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise IOWatchdogTimeout(direction, timeout)
        self._cond.wait(remaining)

    def send(self, value: int, token: Optional[CancellationToken] = None,
             timeout: Optional[float] = None) -> bool:
        """Hand ``value`` to a receiver.

        Args:
            value: Character code to deliver
            token: Cancellation token; cancellation abandons the send
            timeout: Watchdog in seconds, or None to wait indefinitely

        Returns:
            True if delivered, False if cancelled first

        Raises:
            IOWatchdogTimeout: If no receiver took the value in time
            ChannelClosed: If the channel is closed
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        direction = f"write to {self.name}"

        with self._cond:
            self._watch(token)

            # Wait for the slot
            while self._pending:
                if token is not None and token.cancelled:
                    return False
                if self._closed:
                    raise ChannelClosed(self.name)
                self._wait(deadline, direction, timeout)

            if token is not None and token.cancelled:
                return False
            if self._closed:
                raise ChannelClosed(self.name)

            self._value = value
            self._pending = True
            self._sent += 1
            ticket = self._sent
            self._cond.notify_all()

            try:
                while self._taken < ticket:
                    if token is not None and token.cancelled:
                        return False
                    if self._closed:
                        raise ChannelClosed(self.name)
                    self._wait(deadline, direction, timeout)
            finally:
                if self._taken < ticket:
                    # Retract the value nobody took
                    self._value = None
                    self._pending = False
                    self._sent -= 1
                    self._cond.notify_all()

            return True

    def receive(self, token: Optional[CancellationToken] = None,
                timeout: Optional[float] = None) -> Optional[int]:
        """Take the next value from a sender.

        Returns:
            The character code, or None if cancelled first

        Raises:
            IOWatchdogTimeout: If no sender arrived in time
            ChannelClosed: If the channel is closed and empty
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        direction = f"read from {self.name}"

        with self._cond:
            self._watch(token)

            while not self._pending:
                if self._closed:
                    raise ChannelClosed(self.name)
                if token is not None and token.cancelled:
                    return None
                self._wait(deadline, direction, timeout)

            value = self._value
            self._value = None
            self._pending = False
            self._taken += 1
            self._cond.notify_all()
            return value

    def close(self) -> None:
        """Close the channel. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self):
        """Yield received values until the channel closes."""
        while True:
            try:
                yield self.receive()
            except ChannelClosed:
                return


class IOGateway:
    """Input and output channels guarded by one token and one watchdog."""

    def __init__(self, token: Optional[CancellationToken] = None, watchdog_timeout: Optional[float] = 5.0):
        self.token = token or CancellationToken()
        self.watchdog_timeout = watchdog_timeout
        self.input = Channel('input')
        self.output = Channel('output')

    def send(self, char: int) -> bool:
        """Deliver one output character; False if cancelled or output closed."""
        try:
            return self.output.send(char, self.token, self.watchdog_timeout)
        except ChannelClosed:
            return False

    def receive(self) -> Optional[int]:
        """Wait for one input character; None if cancelled or input closed."""
        try:
            return self.input.receive(self.token, self.watchdog_timeout)
        except ChannelClosed:
            return None

    def close_output(self) -> None:
        self.output.close()
