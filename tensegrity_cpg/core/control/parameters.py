"""
Learned-Parameter Model for the Tensegrity CPG

The outer learning loop hands the controller two tensors:

- node tensor, shape [node][param], one row per oscillator
- edge tensor, shape [source][target][k][2], where k indexes independent
  coupling dimensions between the same node pair and the last axis holds
  (weight, phase_bias)

Raw arrays are easy to get wrong positionally, so they are converted once,
at setup, into a validated ParameterSet:

    node id          -> NodeParameters
    (source, target) -> CouplingEdge (one per coupling dimension)

A ParameterSet is immutable. It can be shared read-only between several
controllers (e.g. symmetric limbs) and handed out again unchanged after a
teardown/setup cycle.

Node tensor column order:
------------------------
    0 frequency       natural angular frequency [rad/s]
    1 amplitude       length oscillation amplitude [length]
    2 bias            constant length offset [length]
    3 initial_phase   phase at setup [rad]
    4 stiffness       impedance stiffness [force/length]
    5 damping         impedance damping [force·s/length]
    6 stiffness_gain  stiffness modulation per unit amplitude [1/length]
    7 damping_gain    damping modulation per unit amplitude [1/length]

Only the first two columns are required; missing trailing columns take the
NodeParameters defaults.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from numbers import Real
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from tensegrity_cpg.core.control.errors import ConfigError, OutOfRangeError


NODE_PARAMETER_FIELDS: Tuple[str, ...] = (
    'frequency',
    'amplitude',
    'bias',
    'initial_phase',
    'stiffness',
    'damping',
    'stiffness_gain',
    'damping_gain',
)
REQUIRED_NODE_COLUMNS = 2
EDGE_RECORD_SIZE = 2  # (weight, phase_bias)


@dataclass(frozen=True)
class NodeParameters:
    """Learned parameters of one oscillator node."""
    frequency: float
    amplitude: float
    bias: float = 0.0
    initial_phase: float = 0.0
    stiffness: float = 1000.0
    damping: float = 10.0
    stiffness_gain: float = 0.0
    damping_gain: float = 0.0

    @classmethod
    def from_row(cls, row: Sequence[float]) -> 'NodeParameters':
        """Build from one node-tensor row (column order NODE_PARAMETER_FIELDS)."""
        values = [float(v) for v in row]
        if len(values) < REQUIRED_NODE_COLUMNS:
            raise ConfigError(
                f"Node row needs at least {REQUIRED_NODE_COLUMNS} columns "
                f"(frequency, amplitude), got {len(values)}"
            )
        if len(values) > len(NODE_PARAMETER_FIELDS):
            raise ConfigError(
                f"Node row has {len(values)} columns, at most "
                f"{len(NODE_PARAMETER_FIELDS)} are defined"
            )
        return cls(**dict(zip(NODE_PARAMETER_FIELDS, values)))

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'NodeParameters':
        """Build from a {field: value} mapping."""
        unknown = set(values) - set(NODE_PARAMETER_FIELDS)
        if unknown:
            raise ConfigError(f"Unknown node parameter(s): {sorted(unknown)}")
        missing = [name for name in NODE_PARAMETER_FIELDS[:REQUIRED_NODE_COLUMNS]
                   if name not in values]
        if missing:
            raise ConfigError(f"Missing node parameter(s): {missing}")
        try:
            return cls(**{name: float(value) for name, value in values.items()})
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Node parameters are not numeric: {e}") from e

    def as_row(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in NODE_PARAMETER_FIELDS])


@dataclass(frozen=True)
class CouplingParameters:
    """One (weight, phase_bias) coupling record between a node pair."""
    weight: float
    phase_bias: float = 0.0


@dataclass(frozen=True)
class CouplingEdge:
    """
    Directional phase coupling from `source` into `target`.

    Contributes weight * sin(phase[source] - phase[target] - phase_bias)
    to the phase derivative of the target node.
    """
    source: int
    target: int
    weight: float
    phase_bias: float = 0.0


def _require_finite(value: float, what: str) -> None:
    if not np.isfinite(value):
        raise ConfigError(f"{what} must be finite, got {value}")


def _validate_node(node_id: int, params: NodeParameters) -> None:
    for name in NODE_PARAMETER_FIELDS:
        _require_finite(getattr(params, name), f"Node {node_id} {name}")
    for name in ('frequency', 'amplitude', 'stiffness', 'damping'):
        if getattr(params, name) < 0.0:
            raise ConfigError(
                f"Node {node_id} {name} must be non-negative, got {getattr(params, name)}"
            )


def _validate_node_id(node_id: Any) -> int:
    if isinstance(node_id, bool) or not isinstance(node_id, (int, np.integer)):
        raise ConfigError(f"Node ids must be integers, got {node_id!r}")
    return int(node_id)


class ParameterSet:
    """
    Validated, immutable node and coupling parameters for one CPG.

    Invariants (checked at construction, violations raise ConfigError):
    - at least one node
    - every parameter value finite; frequency, amplitude, stiffness and
      damping non-negative
    - every edge references two existing, distinct nodes

    Usage:
    ------
    >>> params = ParameterSet.from_tensors(
    ...     [[1.0, 0.5], [1.0, 0.5]],
    ...     edge_tensor,            # shape (2, 2, k, 2)
    ... )
    >>> params.incoming(1)
    (CouplingEdge(source=0, target=1, weight=1.0, phase_bias=0.0),)
    """

    def __init__(
        self,
        nodes: Mapping[int, NodeParameters],
        edges: Iterable[CouplingEdge] = ()
    ):
        if len(nodes) == 0:
            raise ConfigError("Parameter set must contain at least one node")

        checked: Dict[int, NodeParameters] = {}
        for node_id, params in nodes.items():
            node_id = _validate_node_id(node_id)
            if not isinstance(params, NodeParameters):
                raise ConfigError(f"Node {node_id}: expected NodeParameters, got {type(params).__name__}")
            _validate_node(node_id, params)
            checked[node_id] = params

        edge_list: List[CouplingEdge] = []
        for edge in edges:
            if edge.source not in checked or edge.target not in checked:
                raise ConfigError(
                    f"Coupling edge {edge.source}->{edge.target} references an unknown node "
                    f"(known ids: {sorted(checked)})"
                )
            if edge.source == edge.target:
                raise ConfigError(f"Self-coupling on node {edge.source} is not allowed")
            _require_finite(edge.weight, f"Edge {edge.source}->{edge.target} weight")
            _require_finite(edge.phase_bias, f"Edge {edge.source}->{edge.target} phase_bias")
            edge_list.append(edge)

        self._nodes = MappingProxyType(dict(sorted(checked.items())))
        self._edges: Tuple[CouplingEdge, ...] = tuple(edge_list)

    # ------------------------------------------------------------------
    # Construction from learned-parameter tensors / mappings
    # ------------------------------------------------------------------

    @classmethod
    def from_tensors(
        cls,
        node_tensor: Any,
        edge_tensor: Optional[Any] = None
    ) -> 'ParameterSet':
        """
        Build from the raw learned-parameter tensors.

        Parameters
        ----------
        node_tensor : array_like
            Shape (n_nodes, n_params) with 2 <= n_params <= 8. Row index is
            the node id.
        edge_tensor : array_like, optional
            Shape (n_source, n_target, k, 2). Entries whose (weight, phase_bias)
            are both zero are treated as absent. Leading dimensions may be
            smaller or larger than n_nodes, but a non-zero entry outside the
            node range is a dangling edge.

        Raises
        ------
        ConfigError
            On wrong rank/shape, non-numeric data or any ParameterSet invariant.
        """
        try:
            nodes_arr = np.asarray(node_tensor, dtype=float)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Node tensor is not a numeric array: {e}") from e
        if nodes_arr.ndim != 2:
            raise ConfigError(f"Node tensor must be 2-dimensional [node][param], got shape {nodes_arr.shape}")

        nodes = {i: NodeParameters.from_row(row) for i, row in enumerate(nodes_arr)}

        edges: List[CouplingEdge] = []
        if edge_tensor is not None:
            try:
                edges_arr = np.asarray(edge_tensor, dtype=float)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Edge tensor is not a numeric array: {e}") from e
            if edges_arr.ndim != 4 or edges_arr.shape[3] != EDGE_RECORD_SIZE:
                raise ConfigError(
                    f"Edge tensor must have shape [source][target][k][2], got {edges_arr.shape}"
                )
            # NaN compares unequal to zero, so non-finite entries are kept and rejected later
            present = np.any(edges_arr != 0.0, axis=-1)
            for source, target, k in np.argwhere(present):
                weight, phase_bias = edges_arr[source, target, k]
                edges.append(CouplingEdge(int(source), int(target), float(weight), float(phase_bias)))

        return cls(nodes, edges)

    @classmethod
    def from_mappings(
        cls,
        node_params: Mapping[int, Any],
        edge_params: Optional[Mapping[Tuple[int, int], Any]] = None
    ) -> 'ParameterSet':
        """
        Build from explicit mappings.

        Parameters
        ----------
        node_params : Mapping[int, NodeParameters | dict | sequence]
            Node id to parameter record. Sequences follow the node-tensor
            column order.
        edge_params : Mapping[(source, target), record | list of records]
            A record is CouplingParameters, a {'weight', 'phase_bias'} dict or
            a (weight, phase_bias) pair. A list yields one edge per record.
        """
        nodes: Dict[int, NodeParameters] = {}
        for node_id, value in node_params.items():
            if isinstance(value, NodeParameters):
                nodes[node_id] = value
            elif isinstance(value, Mapping):
                nodes[node_id] = NodeParameters.from_dict(value)
            else:
                try:
                    nodes[node_id] = NodeParameters.from_row(value)
                except (TypeError, ValueError) as e:
                    if isinstance(e, ConfigError):
                        raise
                    raise ConfigError(f"Node {node_id}: cannot read parameters from {value!r}") from e

        edges: List[CouplingEdge] = []
        for key, value in (edge_params or {}).items():
            try:
                source, target = key
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Edge key must be a (source, target) pair, got {key!r}") from e
            source = _validate_node_id(source)
            target = _validate_node_id(target)
            for record in _coupling_records(value):
                edges.append(CouplingEdge(source, target, record.weight, record.phase_bias))

        return cls(nodes, edges)

    # ------------------------------------------------------------------
    # Read-only access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[int, NodeParameters]:
        return self._nodes

    @property
    def edges(self) -> Tuple[CouplingEdge, ...]:
        return self._edges

    @property
    def node_ids(self) -> Tuple[int, ...]:
        return tuple(self._nodes)

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: Any) -> bool:
        return node_id in self._nodes

    def node(self, node_id: int) -> NodeParameters:
        try:
            return self._nodes[node_id]
        except (KeyError, TypeError):
            raise OutOfRangeError(f"Unknown node id {node_id!r}") from None

    def incoming(self, target: int) -> Tuple[CouplingEdge, ...]:
        """Edges whose target is `target`."""
        if target not in self._nodes:
            raise OutOfRangeError(f"Unknown node id {target!r}")
        return tuple(edge for edge in self._edges if edge.target == target)

    def to_tensors(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Export as (node_tensor, edge_tensor).

        Tensor indices are node positions in ascending id order, which equal
        the ids when they are 0..n-1 (always the case for sets built with
        from_tensors).
        """
        index = {node_id: i for i, node_id in enumerate(self._nodes)}
        node_tensor = np.vstack([p.as_row() for p in self._nodes.values()])

        per_pair: Dict[Tuple[int, int], int] = {}
        for edge in self._edges:
            pair = (edge.source, edge.target)
            per_pair[pair] = per_pair.get(pair, 0) + 1
        depth = max(per_pair.values(), default=1)

        n = len(index)
        edge_tensor = np.zeros((n, n, depth, EDGE_RECORD_SIZE))
        filled: Dict[Tuple[int, int], int] = {}
        for edge in self._edges:
            pair = (edge.source, edge.target)
            k = filled.get(pair, 0)
            edge_tensor[index[edge.source], index[edge.target], k] = (edge.weight, edge.phase_bias)
            filled[pair] = k + 1
        return node_tensor, edge_tensor

    def as_dict(self) -> Dict[str, Any]:
        """Plain-dict view for logging."""
        return {
            'nodes': {node_id: asdict(p) for node_id, p in self._nodes.items()},
            'edges': [asdict(e) for e in self._edges],
        }

    def __repr__(self) -> str:
        return f"ParameterSet(n_nodes={self.n_nodes}, n_edges={len(self._edges)})"


def _coupling_records(value: Any) -> List[CouplingParameters]:
    """Normalize one edge-mapping value into a list of CouplingParameters."""
    if isinstance(value, CouplingParameters):
        return [value]
    if isinstance(value, Mapping):
        unknown = set(value) - {'weight', 'phase_bias'}
        if unknown or 'weight' not in value:
            raise ConfigError(f"Coupling record needs 'weight' (and optional 'phase_bias'), got {dict(value)}")
        try:
            return [CouplingParameters(float(value['weight']), float(value.get('phase_bias', 0.0)))]
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Coupling record is not numeric: {dict(value)}") from e
    if isinstance(value, (list, tuple, np.ndarray)):
        if len(value) == 0:
            return []
        if isinstance(value[0], Real) and not isinstance(value[0], bool):
            if len(value) != EDGE_RECORD_SIZE:
                raise ConfigError(f"Coupling pair must be (weight, phase_bias), got {value!r}")
            return [CouplingParameters(float(value[0]), float(value[1]))]
        records: List[CouplingParameters] = []
        for item in value:
            records.extend(_coupling_records(item))
        return records
    raise ConfigError(f"Cannot read coupling parameters from {value!r}")


class ParameterSource(ABC):
    """
    Supplier of learned parameters at controller setup.

    Setup is the only point where a source may block (e.g. on I/O); it must
    finish before the first step.
    """

    @abstractmethod
    def load(self) -> ParameterSet:
        """Return a validated ParameterSet (raises ConfigError if invalid)."""
        pass


class TensorParameterSource(ParameterSource):
    """
    In-memory source holding raw node/edge tensors.

    The learning loop may call update() between episodes; the next setup
    picks up the new tensors.
    """

    def __init__(self, node_tensor: Any, edge_tensor: Optional[Any] = None):
        self.update(node_tensor, edge_tensor)

    def update(self, node_tensor: Any, edge_tensor: Optional[Any] = None) -> None:
        try:
            self.node_tensor = np.array(node_tensor, dtype=float, copy=True)
            self.edge_tensor = None if edge_tensor is None else np.array(edge_tensor, dtype=float, copy=True)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Learned-parameter tensors are not numeric arrays: {e}") from e

    def load(self) -> ParameterSet:
        return ParameterSet.from_tensors(self.node_tensor, self.edge_tensor)


class MappingParameterSource(ParameterSource):
    """In-memory source holding node/edge mappings."""

    def __init__(
        self,
        node_params: Mapping[int, Any],
        edge_params: Optional[Mapping[Tuple[int, int], Any]] = None
    ):
        self.node_params = dict(node_params)
        self.edge_params = dict(edge_params or {})

    def load(self) -> ParameterSet:
        return ParameterSet.from_mappings(self.node_params, self.edge_params)
