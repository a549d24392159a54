"""Synacor VM stack used by PUSH, POP, CALL and RET."""

from typing import List

from .errors import StackUnderflowError


class Stack:
    """Unbounded last-in-first-out sequence of words."""

    def __init__(self):
        self._items: List[int] = []

    def push(self, value: int) -> None:
        self._items.append(value)

    def pop(self) -> int:
        """Remove and return the top of the stack.

        Raises:
            StackUnderflowError: If the stack is empty
        """
        if not self._items:
            raise StackUnderflowError("stack underflow")
        return self._items.pop()

    def top_first(self) -> List[int]:
        """Stack contents, top of stack first."""
        return self._items[::-1]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
