"""
Derivation trees and derivations.

A DerivationTree is the search space of a strategy from a start term: each
node holds a value, whether stopping there is a complete run (endpoint),
and its ordered branches (annotation, subtree). The first branch is the
preferred one.

Trees are lazy. Endpoint flags and branches may be given as zero-argument
callables; they are forced on first use and cached. Every operation below
returns a new (lazy) tree, so pruning an infinite tree costs nothing until
its nodes are visited. Always restrict height or width before enumerating
an unbounded tree.

A Derivation is one root-to-endpoint path: the start value and the
(annotation, value) pairs along the way.
"""

from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

from .terms import format_sexpr

Branch = Tuple[Any, 'DerivationTree']


def _show(value: Any) -> str:
    if isinstance(value, (list, str, int, float)):
        return format_sexpr(value)
    return str(value)


# ============================================================
# Derivations
# ============================================================

class Derivation:
    """
    A start value plus an ordered sequence of (annotation, value) steps.

    Example:
        d = Derivation(x0, [("A", x1), ("B", x2)])
        d.last()     # => x2
        d.steps()    # => ["A", "B"]
        d.terms()    # => [x0, x1, x2]
    """

    __slots__ = ('start', 'pairs')

    def __init__(self, start: Any, pairs: Sequence[Tuple[Any, Any]] = ()):
        self.start = start
        self.pairs: Tuple[Tuple[Any, Any], ...] = tuple((a, v) for a, v in pairs)

    def is_empty(self) -> bool:
        return not self.pairs

    def __len__(self) -> int:
        return len(self.pairs)

    def first(self) -> Any:
        return self.start

    def last(self) -> Any:
        """The final value (the start value of an empty derivation)."""
        return self.pairs[-1][1] if self.pairs else self.start

    def terms(self) -> List[Any]:
        return [self.start] + [v for _, v in self.pairs]

    def steps(self) -> List[Any]:
        """The annotations, in order."""
        return [a for a, _ in self.pairs]

    def extend(self, annotation: Any, value: Any) -> 'Derivation':
        return Derivation(self.start, self.pairs + ((annotation, value),))

    def filter(self, predicate: Callable[[Any], bool]) -> 'Derivation':
        """Keep the steps whose annotation satisfies ``predicate``."""
        return Derivation(self.start, [(a, v) for a, v in self.pairs if predicate(a)])

    def map(self, fn: Callable[[Any], Any]) -> 'Derivation':
        """Apply ``fn`` to every value."""
        return Derivation(fn(self.start), [(a, fn(v)) for a, v in self.pairs])

    def format(self, style: str = "verbose", show: Callable[[Any], str] = _show) -> str:
        """
        Format the derivation.

        Args:
            style: One of "verbose", "compact", "rules", "chain"
                - "verbose": start, numbered steps with their results, final
                - "compact": start --[annotations]--> final
                - "rules": the annotations joined with " -> "
                - "chain": values interleaved with --(annotation)--> arrows
            show: Value printer

        Returns:
            Formatted string representation of the derivation.
        """
        names = [str(a) for a in self.steps()]
        if style == "compact":
            return f"{show(self.start)} --[{', '.join(names)}]--> {show(self.last())}"
        elif style == "rules":
            return " -> ".join(names) if names else "(no steps)"
        elif style == "chain":
            parts = [show(self.start)]
            for annotation, value in self.pairs:
                parts.append(f"  --({annotation})-->")
                parts.append(show(value))
            return "\n".join(parts)
        else:  # verbose (default)
            lines = [f"Start: {show(self.start)}"]
            for i, (annotation, value) in enumerate(self.pairs, 1):
                lines.append(f"  {i}. {annotation}: {show(value)}")
            lines.append(f"Final: {show(self.last())}")
            return "\n".join(lines)

    def to_dict(self) -> Dict:
        """Dictionary form; annotations are given by their str()."""
        return {
            "start": self.start,
            "final": self.last(),
            "steps": [{"step": str(a), "result": v} for a, v in self.pairs],
            "step_count": len(self.pairs),
        }

    def __eq__(self, other):
        if isinstance(other, Derivation):
            return self.start == other.start and self.pairs == other.pairs
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"Derivation({self.format('compact')})"


# ============================================================
# Trees
# ============================================================

class LengthProbe(NamedTuple):
    """
    Outcome of DerivationTree.probe_length.

    kind is "bounded" (a derivation of ``length`` steps along the leftmost
    path), "exceeded" (no endpoint within the budget) or "dead_end" (the
    leftmost path stops at a non-endpoint after ``length`` steps).
    """
    kind: str
    length: Optional[int]


BOUNDED = "bounded"
EXCEEDED = "exceeded"
DEAD_END = "dead_end"


class DerivationTree:
    """
    Lazy, immutable rooted tree of (annotation, subtree) branches.

    Args:
        root: The value at this node
        endpoint: True if a run may stop here (bool or thunk)
        branches: Ordered (annotation, subtree) pairs (sequence or thunk)
    """

    __slots__ = ('root', '_endpoint', '_branches')

    def __init__(self, root: Any, endpoint: Union[bool, Callable[[], bool]] = False,
                 branches: Union[Sequence[Branch], Callable[[], Sequence[Branch]]] = ()):
        self.root = root
        self._endpoint = endpoint
        self._branches = branches

    @classmethod
    def single_node(cls, root: Any, endpoint: bool = True) -> 'DerivationTree':
        return cls(root, endpoint, ())

    @property
    def endpoint(self) -> bool:
        if callable(self._endpoint):
            self._endpoint = bool(self._endpoint())
        return self._endpoint

    @property
    def branches(self) -> Tuple[Branch, ...]:
        if callable(self._branches):
            self._branches = tuple(self._branches())
        elif not isinstance(self._branches, tuple):
            self._branches = tuple(self._branches)
        return self._branches

    def add_branches(self, branches: Sequence[Branch]) -> 'DerivationTree':
        """A tree with ``branches`` appended after the existing ones."""
        return DerivationTree(self.root, lambda: self.endpoint,
                              lambda: self.branches + tuple(branches))

    def annotations(self) -> List[Any]:
        return [a for a, _ in self.branches]

    def subtrees(self) -> List['DerivationTree']:
        return [t for _, t in self.branches]

    def is_leaf(self) -> bool:
        return not self.branches

    # ------------------------------------------------------------
    # Pruning

    def restrict_height(self, n: int) -> 'DerivationTree':
        """
        Cut the tree at depth ``n``; cut nodes become endpoints.

        A node that is an endpoint only because the budget ran out cannot
        be told apart from one that finished.
        """
        if n <= 0:
            return DerivationTree.single_node(self.root, True)
        return DerivationTree(self.root, lambda: self.endpoint,
                              lambda: [(a, t.restrict_height(n - 1)) for a, t in self.branches])

    def restrict_width(self, n: int) -> 'DerivationTree':
        """Keep the first ``n`` branches of every node."""
        return DerivationTree(self.root, lambda: self.endpoint,
                              lambda: [(a, t.restrict_width(n)) for a, t in self.branches[:n]])

    def commit(self) -> 'DerivationTree':
        """The leftmost path only, whether or not it reaches an endpoint."""
        return self.restrict_width(1)

    def merge_steps(self, predicate: Callable[[Any], bool]) -> 'DerivationTree':
        """
        Hide the edges whose annotation satisfies ``predicate``.

        The branches of a hidden edge's target are spliced into the parent,
        and the parent becomes an endpoint if the target was one. Values
        reached through hidden edges stay reachable.
        """
        merged_cache: List[List[Tuple[Any, 'DerivationTree', bool]]] = []

        def merged():
            if not merged_cache:
                merged_cache.append([(a, t.merge_steps(predicate), predicate(a))
                                     for a, t in self.branches])
            return merged_cache[0]

        def endpoint():
            return self.endpoint or any(hidden and t.endpoint for _, t, hidden in merged())

        def branches():
            result: List[Branch] = []
            for a, t, hidden in merged():
                if hidden:
                    result.extend(t.branches)
                else:
                    result.append((a, t))
            return result

        return DerivationTree(self.root, endpoint, branches)

    def cut_on_step(self, predicate: Callable[[Any], bool]) -> 'DerivationTree':
        """After an edge whose annotation satisfies ``predicate``, stop: its target is a leaf endpoint."""
        def branches():
            return [(a, DerivationTree.single_node(t.root, True) if predicate(a)
                     else t.cut_on_step(predicate))
                    for a, t in self.branches]
        return DerivationTree(self.root, lambda: self.endpoint, branches)

    def map_tree(self, fn: Callable[[Any], Any],
                 annotation_fn: Optional[Callable[[Any], Any]] = None) -> 'DerivationTree':
        """Apply ``fn`` to every value (and ``annotation_fn`` to every annotation)."""
        def branches():
            return [(annotation_fn(a) if annotation_fn else a, t.map_tree(fn, annotation_fn))
                    for a, t in self.branches]
        return DerivationTree(fn(self.root), lambda: self.endpoint, branches)

    # ------------------------------------------------------------
    # Queries

    def derivations(self, max_height: Optional[int] = None) -> Iterator[Derivation]:
        """
        All derivations, lazily, depth first with the preferred branch first.

        At each node the derivation stopping there comes before those that
        continue. ``max_height`` limits the search depth; unlike
        restrict_height it does not turn cut nodes into endpoints.
        """
        if self.endpoint:
            yield Derivation(self.root)
        frames = [iter(self.branches)]
        trail: List[Tuple[Any, Any]] = []
        while frames:
            item = next(frames[-1], None)
            if item is None:
                frames.pop()
                if trail:
                    trail.pop()
                continue
            if max_height is not None and len(trail) >= max_height:
                continue
            annotation, subtree = item
            trail.append((annotation, subtree.root))
            if subtree.endpoint:
                yield Derivation(self.root, trail)
            frames.append(iter(subtree.branches))

    def first_derivation(self, max_height: Optional[int] = None) -> Optional[Derivation]:
        for derivation in self.derivations(max_height):
            return derivation
        return None

    def results(self, max_height: Optional[int] = None) -> List[Any]:
        """The final value of every derivation."""
        return [d.last() for d in self.derivations(max_height)]

    def length_max(self, n: int) -> Optional[int]:
        """
        Length of the leftmost derivation if it has at most ``n`` steps.

        Commits to the leftmost path of the tree restricted to height n + 1.
        Returns None both when that path needs more than ``n`` steps and
        when it stops at a non-endpoint; use probe_length to tell them apart.
        """
        derivation = self.restrict_height(n + 1).commit().first_derivation()
        if derivation is None or len(derivation) > n:
            return None
        return len(derivation)

    def probe_length(self, n: int) -> LengthProbe:
        """Follow the leftmost path for at most ``n`` steps and report how it ends."""
        node = self
        for depth in range(n + 1):
            if node.endpoint:
                return LengthProbe(BOUNDED, depth)
            if not node.branches:
                return LengthProbe(DEAD_END, depth)
            if depth == n:
                break
            node = node.branches[0][1]
        return LengthProbe(EXCEEDED, None)

    # ------------------------------------------------------------

    def __eq__(self, other):
        if isinstance(other, DerivationTree):
            return (self.root == other.root
                    and self.endpoint == other.endpoint
                    and self.branches == other.branches)
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        flag = " (endpoint)" if not callable(self._endpoint) and self._endpoint else ""
        if callable(self._branches):
            return f"DerivationTree({_show(self.root)}{flag}, ...)"
        return f"DerivationTree({_show(self.root)}{flag}, {len(self._branches)} branches)"
