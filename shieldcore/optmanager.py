from __future__ import annotations

import contextlib
import copy
import pprint
import textwrap
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from typing import TextIO

import ruamel.yaml

from shieldcore import dispatcher
from shieldcore import exceptions
from shieldcore import hooks
from shieldcore.utils import signals
from shieldcore.utils import typecheck

"""
    The base implementation for the settings store.
"""

unset = object()


class _Option:
    __slots__ = ("name", "typespec", "value", "_default", "choices", "help", "watched")

    def __init__(
        self,
        name: str,
        typespec: type | object,  # object for Optional[x], which is not a type.
        default: Any,
        help: str,
        choices: Sequence[str] | None,
        watched: bool,
    ) -> None:
        typecheck.check_option_type(name, default, typespec)
        self.name = name
        self.typespec = typespec
        self._default = default
        self.value = unset
        self.help = textwrap.dedent(help).strip().replace("\n", " ")
        self.choices = choices
        self.watched = watched

    def __repr__(self):
        return f"{self.current()} [{self.typespec}]"

    @property
    def default(self):
        return copy.deepcopy(self._default)

    def current(self) -> Any:
        if self.value is unset:
            v = self.default
        else:
            v = self.value
        return copy.deepcopy(v)

    def set(self, value: Any) -> None:
        typecheck.check_option_type(self.name, value, self.typespec)
        if self.choices is not None and value not in self.choices:
            raise exceptions.OptionsError(
                f"Invalid value for {self.name}: {value!r}. Valid values are {', '.join(map(repr, self.choices))}."
            )
        self.value = copy.deepcopy(value)

    def reset(self) -> None:
        self.value = unset

    def has_changed(self) -> bool:
        return self.current() != self.default

    def __eq__(self, other) -> bool:
        for i in self.__slots__:
            if getattr(self, i) != getattr(other, i):
                return False
        return True

    def __deepcopy__(self, _):
        o = _Option(
            self.name, self.typespec, self.default, self.help, self.choices, self.watched
        )
        if self.has_changed():
            o.value = self.current()
        return o


def _sig_changed_spec(updated: set[str]) -> None:  # pragma: no cover
    ...  # expected function signature for OptManager.changed receivers.


def _sig_errored_spec(exc: Exception) -> None:  # pragma: no cover
    ...  # expected function signature for OptManager.errored receivers.


class OptManager:
    """
    OptManager is the base class from which the settings store is derived.

    .changed is a Signal that triggers whenever options are updated. If any
    receiver raises an exceptions.OptionsError, all changes are rolled back
    and the .errored signal is notified.

    Options declared as watched additionally publish one ConfigChangedHook per
    write on .dispatcher, synchronously, before the write returns. This happens
    on every write, including writes of an unchanged value.

    OptManager always returns a deep copy of options to ensure that
    mutation doesn't change the option state inadvertently.
    """

    def __init__(self, dispatch: dispatcher.Dispatcher | None = None) -> None:
        self.changed = signals.SyncSignal(_sig_changed_spec)
        self.errored = signals.SyncSignal(_sig_errored_spec)
        self.dispatcher = dispatch or dispatcher.Dispatcher(topics=())
        # Options must be the last attribute here - after that, we raise an
        # error for attribute assignment to unknown options.
        self._options: dict[str, Any] = {}

    def add_option(
        self,
        name: str,
        typespec: type | object,
        default: Any,
        help: str,
        choices: Sequence[str] | None = None,
        watched: bool = False,
    ) -> None:
        self._options[name] = _Option(name, typespec, default, help, choices, watched)
        if watched:
            self.dispatcher.add_topics(name)
        self.changed.send(updated={name})

    @contextlib.contextmanager
    def rollback(self, updated, reraise=False):
        old = copy.deepcopy(self._options)
        try:
            yield
        except exceptions.OptionsError as e:
            # Notify error handlers
            self.errored.send(exc=e)
            # Rollback
            self.__dict__["_options"] = old
            self.changed.send(updated=updated)
            if reraise:
                raise e

    def __eq__(self, other):
        if isinstance(other, OptManager):
            return self._options == other._options
        return False

    def __getattr__(self, attr):
        if attr in self._options:
            return self._options[attr].current()
        else:
            raise AttributeError("No such option: %s" % attr)

    def __setattr__(self, attr, value):
        # This is slightly tricky. We allow attributes to be set on the instance
        # until we have an _options attribute. After that, assignment is sent to
        # the update function, and will raise an error for unknown options.
        opts = self.__dict__.get("_options")
        if opts is None:
            super().__setattr__(attr, value)
        else:
            self.update(**{attr: value})

    def keys(self):
        return set(self._options.keys())

    def watched(self) -> set[str]:
        return {k for k, o in self._options.items() if o.watched}

    def items(self):
        return self._options.items()

    def __contains__(self, k):
        return k in self._options

    def get(self, key: str) -> Any:
        """
        Return the current value of a setting, or its default if it was never set.
        """
        if key not in self._options:
            raise KeyError("No such option: %s" % key)
        return self._options[key].current()

    def set(self, key: str, value: Any) -> None:
        """
        Write a single setting. Watched settings publish their change event
        before this returns.
        """
        self.update(**{key: value})

    def reset(self):
        """
        Restore defaults for all options.
        """
        for o in self._options.values():
            o.reset()
        self.changed.send(updated=set(self._options.keys()))
        self._publish(list(self._options.keys()))

    def update_known(self, **kwargs):
        """
        Update and set all known options from kwargs. Returns a dictionary
        of unknown options.
        """
        known, unknown = {}, {}
        for k, v in kwargs.items():
            if k in self._options:
                known[k] = v
            else:
                unknown[k] = v
        updated = set(known.keys())
        if updated:
            with self.rollback(updated, reraise=True):
                for k, v in known.items():
                    try:
                        self._options[k].set(v)
                    except TypeError as e:
                        raise exceptions.OptionsError(str(e)) from e
                self.changed.send(updated=updated)
            self._publish(list(known.keys()))
        return unknown

    def update(self, **kwargs):
        u = self.update_known(**kwargs)
        if u:
            raise KeyError("Unknown options: %s" % ", ".join(u.keys()))

    def _publish(self, keys: list[str]) -> None:
        for k in keys:
            o = self._options[k]
            if o.watched:
                self.dispatcher.publish(hooks.ConfigChangedHook(k, o.current()))

    def setter(self, attr):
        """
        Generate a setter for a given attribute. This returns a callable
        taking a single argument.
        """
        if attr not in self._options:
            raise KeyError("No such option: %s" % attr)

        def setter(x):
            setattr(self, attr, x)

        return setter

    def default(self, option: str) -> Any:
        return self._options[option].default

    def has_changed(self, option):
        """
        Has the option changed from the default?
        """
        return self._options[option].has_changed()

    def user_settings(self) -> dict[str, Any]:
        """
        The watched settings, in declaration order. This is the set of values
        that is exported, imported and pushed to the account backend.
        """
        return {k: o.current() for k, o in self._options.items() if o.watched}

    def import_settings(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Update the watched settings found in data. Returns the entries that
        were ignored because they are unknown or not user settings.
        """
        watched = self.watched()
        accepted = {k: v for k, v in data.items() if k in watched}
        ignored = {k: v for k, v in data.items() if k not in watched}
        self.update(**accepted)
        return ignored

    def __repr__(self):
        options = pprint.pformat(self._options, indent=4).strip(" {}")
        if "\n" in options:
            options = "\n    " + options + "\n"
        return "{mod}.{cls}({{{options}}})".format(
            mod=type(self).__module__, cls=type(self).__name__, options=options
        )


def parse(text):
    if not text:
        return {}
    try:
        yaml = ruamel.yaml.YAML(typ="safe", pure=True)
        data = yaml.load(text)
    except ruamel.yaml.error.YAMLError as v:
        if hasattr(v, "problem_mark"):
            snip = v.problem_mark.get_snippet()
            raise exceptions.OptionsError(
                "Config error at line %s:\n%s\n%s"
                % (v.problem_mark.line + 1, snip, getattr(v, "problem", ""))
            )
        else:
            raise exceptions.OptionsError("Could not parse options.")
    if isinstance(data, str):
        raise exceptions.OptionsError("Config error - no keys found.")
    elif data is None:
        return {}
    return data


def load(opts: OptManager, text: str) -> None:
    """
    Load configuration from text, over-writing options already set in
    this object. Unknown keys are ignored, since they may belong to a newer
    version. May raise OptionsError if the config file is invalid.
    """
    data = parse(text)
    opts.update_known(**data)


def load_paths(opts: OptManager, *paths: Path | str) -> None:
    """
    Load paths in order. Each path takes precedence over the previous
    path. Paths that don't exist are ignored, errors raise an
    OptionsError.
    """
    for p in paths:
        p = Path(p).expanduser()
        if p.exists() and p.is_file():
            with p.open(encoding="utf8") as f:
                try:
                    txt = f.read()
                except UnicodeDecodeError as e:
                    raise exceptions.OptionsError(f"Error reading {p}: {e}")
            try:
                load(opts, txt)
            except exceptions.OptionsError as e:
                raise exceptions.OptionsError(f"Error reading {p}: {e}")


def serialize(
    opts: OptManager, file: TextIO, text: str, defaults: bool = False
) -> None:
    """
    Performs a round-trip serialization. If text is not None, it is
    treated as a previous serialization that should be modified
    in-place.

    - If "defaults" is False, only options with non-default values are
        serialized. Default values in text are preserved.
    - Unknown options in text are removed.
    - Raises OptionsError if text is invalid.
    """
    data = parse(text)
    for k in opts.keys():
        if defaults or opts.has_changed(k):
            data[k] = getattr(opts, k)
    for k in list(data.keys()):
        if k not in opts._options:
            del data[k]

    ruamel.yaml.YAML().dump(data, file)


def save(opts: OptManager, path: Path | str, defaults: bool = False) -> None:
    """
    Save to path. If the destination file exists, modify it in-place.

    Raises OptionsError if the existing data is corrupt.
    """
    path = Path(path).expanduser()
    if path.exists() and path.is_file():
        with path.open(encoding="utf8") as f:
            try:
                data = f.read()
            except UnicodeDecodeError as e:
                raise exceptions.OptionsError(f"Error trying to modify {path}: {e}")
    else:
        data = ""

    with path.open("w", encoding="utf8") as f:
        serialize(opts, f, data, defaults)
