from typing import TypeVar

from fieldbuslib.types import ConfigError

T = TypeVar("T")
E = TypeVar("E", bound=Exception)

_MISSING = object()


def typesafe_get(
    value: object,
    key: str,
    expected_type: type[T],
    exception: type[E] = ConfigError,
    default: object = _MISSING,
) -> T:
    """
    Safely get a key from a dictionary:
    * If the key is not found, `default` is returned (or `exception` is raised when
      there is no default).
    * If the value is not of the expected type, `exception` is raised.
    """

    if not isinstance(value, dict):
        raise exception(f"Expected a dictionary, but got {type(value).__name__}")

    if key not in value:
        if default is _MISSING:
            raise exception(f"Key '{key}' not found in the dictionary")
        return default  # type: ignore[return-value]

    val: object = value.get(key)
    # bool is a subclass of int, but `port: true` is certainly a typo.
    if not isinstance(val, expected_type) or (
        isinstance(val, bool) and expected_type is not bool
    ):
        raise exception(
            f"Value for key '{key}' is not of type {expected_type.__name__}"
        )

    return val
