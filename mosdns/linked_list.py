"""A doubly linked list whose elements know the list that holds them."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Generic, TypeVar

V = TypeVar("V")


class Elem(Generic[V]):
    """A list element carrying a value."""

    __slots__ = ("value", "_prev", "_next", "_list")

    def __init__(self, value: V) -> None:
        self.value = value
        self._prev: Elem[V] | None = None
        self._next: Elem[V] | None = None
        self._list: LinkedList[V] | None = None

    def prev(self) -> Elem[V] | None:
        """Return the previous element, or None at the front."""
        return self._prev

    def next(self) -> Elem[V] | None:
        """Return the next element, or None at the back."""
        return self._next

    def __repr__(self) -> str:
        return f"Elem({self.value!r})"


def _must_be_free(elem: Elem[Any]) -> None:
    if elem._prev is not None or elem._next is not None or elem._list is not None:
        raise ValueError("element is in use")


class LinkedList(Generic[V]):
    """A doubly linked list of Elem objects."""

    def __init__(self) -> None:
        self._front: Elem[V] | None = None
        self._back: Elem[V] | None = None
        self._length = 0

    def front(self) -> Elem[V] | None:
        """Return the first element, or None if the list is empty."""
        return self._front

    def back(self) -> Elem[V] | None:
        """Return the last element, or None if the list is empty."""
        return self._back

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[V]:
        elem = self._front
        while elem is not None:
            nxt = elem._next
            yield elem.value
            elem = nxt

    def push_front(self, elem: Elem[V]) -> Elem[V]:
        """Insert a free element at the front and return it."""
        _must_be_free(elem)
        self._length += 1
        elem._list = self
        if self._front is None:
            self._front = self._back = elem
        else:
            elem._next = self._front
            self._front._prev = elem
            self._front = elem
        return elem

    def push_back(self, elem: Elem[V]) -> Elem[V]:
        """Insert a free element at the back and return it."""
        _must_be_free(elem)
        self._length += 1
        elem._list = self
        if self._back is None:
            self._front = self._back = elem
        else:
            elem._prev = self._back
            self._back._next = elem
            self._back = elem
        return elem

    def pop_elem(self, elem: Elem[V]) -> Elem[V]:
        """Unlink an element of this list and return it, now free."""
        if elem._list is not self:
            raise ValueError("element does not belong to this list")
        self._length -= 1
        if elem._prev is not None:
            elem._prev._next = elem._next
        if elem._next is not None:
            elem._next._prev = elem._prev
        if elem is self._front:
            self._front = elem._next
        if elem is self._back:
            self._back = elem._prev
        elem._prev = elem._next = None
        elem._list = None
        return elem