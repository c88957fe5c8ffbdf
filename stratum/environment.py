"""
Key/value environments that travel with a term.

An Environment keeps bookkeeping data next to a term (chosen arguments,
cursor location, counters, ...). Every value is stored together with its
printed form, so environments can be encoded as ``key=value`` text and
compared or diffed even when the concrete value types differ.

Environments are immutable: store/delete return new environments.
"""

from fractions import Fraction
from typing import Any, Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional

from .terms import format_sexpr

NUMBER = "number"
TEXT = "text"
TERM = "term"


class Binding(NamedTuple):
    """A stored value: its kind (number, text or term), the value, and its printed form."""
    kind: str
    value: Any
    printed: str


def make_binding(value: Any, show: Optional[Callable[[Any], str]] = None) -> Binding:
    if isinstance(value, str):
        return Binding(TEXT, value, value)
    if isinstance(value, (int, float, Fraction)) and not isinstance(value, bool):
        return Binding(NUMBER, value, show(value) if show else str(value))
    return Binding(TERM, value, show(value) if show else format_sexpr(value))


class Var:
    """
    A typed environment variable with an initial value.

    ``show`` prints values, ``read`` parses printed values back (returning
    None or raising ValueError on bad input). Reading a variable prefers a
    stored typed value, then parses stored text, then falls back to the
    initial value.
    """

    __slots__ = ('name', 'initial', 'show', 'read')

    def __init__(self, name: str, initial: Any, show: Callable[[Any], str] = str,
                 read: Optional[Callable[[str], Any]] = None):
        self.name = name
        self.initial = initial
        self.show = show
        self.read = read

    def __repr__(self) -> str:
        return f"Var({self.name!r}, {self.initial!r})"


class Environment:
    """
    Immutable mapping from string keys to bindings.

    Example:
        env = Environment().store("count", 3).store("note", "hi")
        env.lookup("count")           # => 3
        env.lookup("count", str)      # => "3"
        str(env)                      # => "count=3, note=hi"
    """

    __slots__ = ('_bindings',)

    def __init__(self, bindings: Optional[Dict[str, Binding]] = None):
        self._bindings: Dict[str, Binding] = dict(bindings or {})

    @classmethod
    def empty(cls) -> 'Environment':
        return cls()

    def is_null(self) -> bool:
        return not self._bindings

    def keys(self) -> List[str]:
        return sorted(self._bindings)

    def binding(self, key: str) -> Optional[Binding]:
        return self._bindings.get(key)

    def lookup(self, key: str, as_type: Optional[type] = None) -> Any:
        """
        Look up a value.

        Args:
            key: The key
            as_type: If ``str``, return the printed form; if another type,
                return the value only when it is an instance of that type

        Returns:
            The value, or None when absent or of the wrong type.
        """
        binding = self._bindings.get(key)
        if binding is None:
            return None
        if as_type is None:
            return binding.value
        if as_type is str:
            return binding.printed
        return binding.value if isinstance(binding.value, as_type) else None

    def store(self, key: str, value: Any,
              show: Optional[Callable[[Any], str]] = None) -> 'Environment':
        bindings = dict(self._bindings)
        bindings[key] = make_binding(value, show)
        return Environment(bindings)

    def delete(self, key: str) -> 'Environment':
        bindings = dict(self._bindings)
        bindings.pop(key, None)
        return Environment(bindings)

    def diff(self, other: 'Environment') -> 'Environment':
        """Entries of this environment that ``other`` lacks or prints differently."""
        return Environment({
            key: b for key, b in self._bindings.items()
            if key not in other._bindings or other._bindings[key].printed != b.printed
        })

    # ------------------------------------------------------------
    # Variables

    def read(self, var: Var) -> Any:
        binding = self._bindings.get(var.name)
        if binding is None:
            return var.initial
        if binding.kind != TEXT:
            return binding.value
        if var.read is None:
            return binding.value
        try:
            value = var.read(binding.printed)
        except ValueError:
            value = None
        return var.initial if value is None else value

    def write(self, var: Var, value: Any) -> 'Environment':
        return self.store(var.name, value, var.show)

    def modify(self, var: Var, fn: Callable[[Any], Any]) -> 'Environment':
        return self.write(var, fn(self.read(var)))

    # ------------------------------------------------------------
    # Text encoding

    def to_entries(self) -> List[str]:
        """Canonical ``key=printed-value`` entries, sorted by key."""
        return [f"{key}={self._bindings[key].printed}" for key in self.keys()]

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> 'Environment':
        """
        Decode ``key=value`` entries; values come back as text.

        Raises:
            ValueError: for an entry without '=' or with an empty key
        """
        bindings = {}
        for entry in entries:
            key, sep, value = entry.partition('=')
            key = key.strip()
            if not sep or not key:
                raise ValueError(f"malformed environment entry: {entry!r}")
            bindings[key] = Binding(TEXT, value, value)
        return cls(bindings)

    # ------------------------------------------------------------

    def __contains__(self, key: str) -> bool:
        return key in self._bindings

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._bindings)

    def __bool__(self) -> bool:
        return bool(self._bindings)

    def __eq__(self, other):
        if isinstance(other, Environment):
            return self.to_entries() == other.to_entries()
        return NotImplemented

    def __str__(self) -> str:
        return ", ".join(self.to_entries())

    def __repr__(self) -> str:
        return f"Environment({str(self)!r})"
