import typing
from collections import abc

try:
    from types import UnionType
except ImportError:  # pragma: no cover
    UnionType = object()  # type: ignore

Type = typing.Union[
    typing.Any  # anything more elaborate really fails with mypy at the moment.
]


def check_option_type(name: str, value: typing.Any, typeinfo: Type) -> None:
    """
    Check if the provided value is an instance of typeinfo and raises a
    TypeError otherwise. This function supports only those types required for
    settings: scalars, optionals, sequences and string-keyed records.
    """
    e = TypeError(f"Expected {typeinfo} for {name}, but got {type(value)}.")

    origin = typing.get_origin(typeinfo)

    if origin is typing.Union or origin is UnionType:
        for T in typing.get_args(typeinfo):
            try:
                check_option_type(name, value, T)
            except TypeError:
                pass
            else:
                return
        raise e
    elif origin is abc.Sequence:
        T = typing.get_args(typeinfo)[0]
        if not isinstance(value, (tuple, list)):
            raise e
        for v in value:
            check_option_type(name, v, T)
    elif origin is dict or origin is abc.Mapping:
        K, V = typing.get_args(typeinfo)
        if not isinstance(value, dict):
            raise e
        for k, v in value.items():
            check_option_type(f"{name} key", k, K)
            check_option_type(f"{name}[{k!r}]", v, V)
    elif typeinfo is typing.Any:
        return
    elif typeinfo is int and isinstance(value, bool):
        # bool is an int subclass, but a boolean never belongs in a numeric setting.
        raise e
    elif not isinstance(value, typeinfo):
        if typeinfo is float and isinstance(value, int):
            return
        raise e