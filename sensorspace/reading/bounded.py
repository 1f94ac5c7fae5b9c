"""Contenedor de capacidad fija usado por lecturas, resultados y bindings."""

from __future__ import annotations

from typing import Generic, Iterable, Iterator, List, TypeVar, overload

from sensorspace.errors import CapacityExceededError

T = TypeVar("T")


class BoundedList(Generic[T]):
    """Secuencia ordenada con capacidad máxima.

    ``append`` lanza :class:`CapacityExceededError` al superar la capacidad y
    ``try_append`` devuelve ``False``; en ambos casos el contenido no cambia.
    """

    def __init__(self, capacity: int, items: Iterable[T] = (), *, label: str = "container") -> None:
        if capacity < 1:
            raise ValueError("capacity debe ser >= 1")
        self.capacity = capacity
        self.label = label
        self._items: List[T] = []
        for item in items:
            self.append(item)

    def append(self, item: T) -> T:
        if len(self._items) >= self.capacity:
            raise CapacityExceededError(self.capacity, self.label)
        self._items.append(item)
        return item

    def try_append(self, item: T) -> bool:
        if self.is_full():
            return False
        self._items.append(item)
        return True

    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> List[T]: ...

    def __getitem__(self, index):
        return self._items[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BoundedList):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"BoundedList(capacity={self.capacity}, items={self._items!r})"
