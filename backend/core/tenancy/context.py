from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from accounts.models import City


_current_city: ContextVar[Optional["City"]] = ContextVar("current_city", default=None)


def get_current_city() -> Optional["City"]:
    return _current_city.get()


def set_current_city(city: Optional["City"]) -> Token:
    return _current_city.set(city)


def reset_current_city(token: Token) -> None:
    _current_city.reset(token)


@contextmanager
def bound_city(city: Optional["City"]) -> Iterator[Optional["City"]]:
    """Scope `objects` managers to `city` for the duration of the block."""

    token = set_current_city(city)
    try:
        yield city
    finally:
        reset_current_city(token)
