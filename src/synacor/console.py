"""Synacor VM console

Connects the VM's character channels to a terminal: output characters are
written as they arrive, input lines are delivered one character at a time.
"""

from collections import deque
from typing import Deque, Optional, TextIO
import logging
import sys
import threading

from .io_gateway import CancellationToken, Channel, ChannelClosed

logger = logging.getLogger(__name__)


def normalize_input(text: str) -> str:
    """Translate terminal line endings into the VM's newline."""
    return text.replace('\r\n', '\n').replace('\r', '\n')


class OutputPump(threading.Thread):
    """Drains an output channel into a text stream until the channel closes."""

    def __init__(self, channel: Channel, stream: Optional[TextIO] = None):
        super().__init__(name='synacor-output', daemon=True)
        self.channel = channel
        self.stream = stream or sys.stdout
        self.chars_written = 0

    def run(self) -> None:
        for code in self.channel:
            self.stream.write(chr(code))
            self.chars_written += 1
            if code == 10:
                self.stream.flush()
        self.stream.flush()


class InputFeeder(threading.Thread):
    """Delivers queued text to an input channel, one character per rendezvous.

    Stops when the token is cancelled. After ``finish`` it closes the channel
    once the queue drains.
    """

    def __init__(self, channel: Channel, token: CancellationToken):
        super().__init__(name='synacor-input', daemon=True)
        self.channel = channel
        self.token = token
        self._queue: Deque[int] = deque()
        self._cond = threading.Condition()
        self._finished = False
        self.chars_delivered = 0
        token.add_callback(self._wake)

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def feed(self, text: str) -> None:
        with self._cond:
            self._queue.extend(ord(ch) for ch in normalize_input(text))
            self._cond.notify_all()

    def finish(self) -> None:
        """No more input will be fed."""
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    @property
    def pending(self) -> int:
        """Characters queued but not yet delivered."""
        with self._cond:
            return len(self._queue)

    def run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._finished and not self.token.cancelled:
                    self._cond.wait()
                if self.token.cancelled:
                    return
                if not self._queue:
                    self.channel.close()
                    return
                code = self._queue[0]

            try:
                delivered = self.channel.send(code, self.token)
            except ChannelClosed:
                return
            if not delivered:
                return

            with self._cond:
                self._queue.popleft()
            self.chars_delivered += 1


class ConsoleBridge:
    """Terminal adapter: stdin lines feed the VM, VM output goes to stdout.

    End of stdin closes the input channel once queued input is delivered,
    so the next IN halts the VM cleanly.
    """

    def __init__(self, gateway, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.gateway = gateway
        self.stdin = stdin or sys.stdin
        self.pump = OutputPump(gateway.output, stdout)
        self.feeder = InputFeeder(gateway.input, gateway.token)
        self._reader = threading.Thread(target=self._read_stdin, name='synacor-stdin', daemon=True)

    def start(self) -> None:
        self.pump.start()
        self.feeder.start()
        self._reader.start()

    def _read_stdin(self) -> None:
        while not self.gateway.token.cancelled:
            line = self.stdin.readline()
            if not line:
                logger.info("End of input")
                self.feeder.finish()
                return
            self.feeder.feed(line)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for remaining output to be written."""
        self.pump.join(timeout)
