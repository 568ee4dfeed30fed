"""
Unit tests for the learned-parameter model.

Covers tensor and mapping construction of ParameterSet, the load-time
validation rules (dangling/self edges, non-finite or negative values, tensor
rank) and the in-memory parameter sources.
"""

import dataclasses

import numpy as np
import pytest

from tensegrity_cpg.core.control.errors import ConfigError, OutOfRangeError
from tensegrity_cpg.core.control.parameters import (
    CouplingEdge,
    CouplingParameters,
    MappingParameterSource,
    NodeParameters,
    ParameterSet,
    TensorParameterSource,
)


class TestParameterSetFromTensors:
    """Test suite for ParameterSet.from_tensors."""

    @pytest.fixture
    def node_tensor(self):
        return np.array([
            [1.0, 0.5],
            [2.0, 0.3],
        ])

    def test_required_columns_only(self, node_tensor):
        """Missing trailing columns take the NodeParameters defaults."""
        params = ParameterSet.from_tensors(node_tensor)

        assert params.node_ids == (0, 1)
        assert params.node(1).frequency == 2.0
        assert params.node(1).amplitude == 0.3
        assert params.node(0).bias == 0.0
        assert params.node(0).stiffness == 1000.0
        assert params.node(0).damping == 10.0
        assert params.edges == ()

    def test_full_row(self):
        row = [1.0, 0.5, 0.1, 0.2, 500.0, 5.0, 0.3, 0.4]
        params = ParameterSet.from_tensors([row])
        node = params.node(0)

        assert node == NodeParameters(1.0, 0.5, 0.1, 0.2, 500.0, 5.0, 0.3, 0.4)
        np.testing.assert_array_equal(node.as_row(), row)

    def test_zero_edge_entries_are_absent(self, node_tensor):
        params = ParameterSet.from_tensors(node_tensor, np.zeros((2, 2, 3, 2)))
        assert params.edges == ()

    def test_edges_from_tensor(self, node_tensor):
        edge_tensor = np.zeros((2, 2, 2, 2))
        edge_tensor[0, 1, 0] = (1.0, 0.5)
        edge_tensor[0, 1, 1] = (0.2, 0.0)
        edge_tensor[1, 0, 0] = (0.0, -0.5)  # zero weight but non-zero bias is still an edge

        params = ParameterSet.from_tensors(node_tensor, edge_tensor)

        assert len(params.edges) == 3
        assert params.incoming(1) == (
            CouplingEdge(0, 1, 1.0, 0.5),
            CouplingEdge(0, 1, 0.2, 0.0),
        )
        assert params.incoming(0) == (CouplingEdge(1, 0, 0.0, -0.5),)

    def test_dangling_edge_rejected(self, node_tensor):
        edge_tensor = np.zeros((3, 3, 1, 2))
        edge_tensor[0, 2, 0] = (1.0, 0.0)

        with pytest.raises(ConfigError, match="unknown node"):
            ParameterSet.from_tensors(node_tensor, edge_tensor)

    def test_oversized_edge_tensor_without_dangling_entries(self, node_tensor):
        """Extra all-zero rows beyond the node range are not edges."""
        edge_tensor = np.zeros((4, 4, 1, 2))
        edge_tensor[1, 0, 0] = (1.0, 0.0)

        params = ParameterSet.from_tensors(node_tensor, edge_tensor)
        assert params.edges == (CouplingEdge(1, 0, 1.0, 0.0),)

    def test_self_edge_rejected(self, node_tensor):
        edge_tensor = np.zeros((2, 2, 1, 2))
        edge_tensor[1, 1, 0] = (1.0, 0.0)

        with pytest.raises(ConfigError, match="Self-coupling"):
            ParameterSet.from_tensors(node_tensor, edge_tensor)

    def test_non_finite_edge_rejected(self, node_tensor):
        edge_tensor = np.zeros((2, 2, 1, 2))
        edge_tensor[0, 1, 0] = (np.nan, 0.0)

        with pytest.raises(ConfigError):
            ParameterSet.from_tensors(node_tensor, edge_tensor)

    @pytest.mark.parametrize("row", [
        [-1.0, 0.5],
        [1.0, -0.5],
        [np.nan, 0.5],
        [1.0, np.inf],
        [1.0, 0.5, 0.0, 0.0, -1.0],
        [1.0, 0.5, np.nan],
    ])
    def test_invalid_node_values_rejected(self, row):
        with pytest.raises(ConfigError):
            ParameterSet.from_tensors([row])

    def test_wrong_node_rank_rejected(self):
        with pytest.raises(ConfigError, match="2-dimensional"):
            ParameterSet.from_tensors([1.0, 0.5])

    def test_too_few_and_too_many_columns_rejected(self):
        with pytest.raises(ConfigError):
            ParameterSet.from_tensors([[1.0]])
        with pytest.raises(ConfigError):
            ParameterSet.from_tensors([[1.0] * 9])

    def test_wrong_edge_shape_rejected(self, node_tensor):
        with pytest.raises(ConfigError, match="source"):
            ParameterSet.from_tensors(node_tensor, np.zeros((2, 2, 2)))
        with pytest.raises(ConfigError):
            ParameterSet.from_tensors(node_tensor, np.zeros((2, 2, 1, 3)))

    def test_empty_node_set_rejected(self):
        with pytest.raises(ConfigError, match="at least one node"):
            ParameterSet.from_tensors(np.zeros((0, 2)))

    def test_to_tensors_reproduces_edges(self, node_tensor):
        edge_tensor = np.zeros((2, 2, 2, 2))
        edge_tensor[0, 1, 0] = (1.0, 0.5)
        edge_tensor[0, 1, 1] = (0.2, 0.1)
        params = ParameterSet.from_tensors(node_tensor, edge_tensor)

        nodes_out, edges_out = params.to_tensors()

        assert nodes_out.shape == (2, 8)
        np.testing.assert_array_equal(nodes_out[:, :2], node_tensor)
        np.testing.assert_array_equal(edges_out, edge_tensor)


class TestParameterSetFromMappings:
    """Test suite for ParameterSet.from_mappings."""

    def test_mixed_record_forms(self):
        params = ParameterSet.from_mappings(
            {
                0: {'frequency': 1.0, 'amplitude': 0.5},
                1: NodeParameters(2.0, 0.2, bias=0.1),
                2: [3.0, 0.1],
            },
            {
                (0, 1): [(1.0, 0.1), CouplingParameters(0.5, 0.2)],
                (1, 2): {'weight': 2.0},
                (2, 0): (0.5, -0.3),
            },
        )

        assert params.n_nodes == 3
        assert params.node(1).bias == 0.1
        assert params.node(2).frequency == 3.0
        assert len(params.edges) == 4
        assert params.incoming(2) == (CouplingEdge(1, 2, 2.0, 0.0),)
        assert params.incoming(0) == (CouplingEdge(2, 0, 0.5, -0.3),)

    def test_nodes_are_ordered_by_id(self):
        params = ParameterSet.from_mappings({
            5: [1.0, 0.1],
            2: [1.0, 0.1],
            3: [1.0, 0.1],
        })
        assert params.node_ids == (2, 3, 5)

    def test_unknown_field_rejected(self):
        with pytest.raises(ConfigError, match="Unknown node parameter"):
            ParameterSet.from_mappings({0: {'frequency': 1.0, 'amplitude': 0.5, 'gain': 2.0}})

    def test_missing_required_field_rejected(self):
        with pytest.raises(ConfigError, match="Missing"):
            ParameterSet.from_mappings({0: {'frequency': 1.0}})

    def test_non_integer_node_id_rejected(self):
        with pytest.raises(ConfigError, match="integers"):
            ParameterSet.from_mappings({'head': [1.0, 0.5]})

    def test_dangling_edge_rejected(self):
        with pytest.raises(ConfigError, match="unknown node"):
            ParameterSet.from_mappings({0: [1.0, 0.5]}, {(0, 7): (1.0, 0.0)})

    def test_malformed_coupling_record_rejected(self):
        with pytest.raises(ConfigError):
            ParameterSet.from_mappings(
                {0: [1.0, 0.5], 1: [1.0, 0.5]},
                {(0, 1): (1.0, 0.0, 2.0)},
            )
        with pytest.raises(ConfigError):
            ParameterSet.from_mappings(
                {0: [1.0, 0.5], 1: [1.0, 0.5]},
                {(0, 1): {'phase_bias': 0.1}},
            )


class TestParameterSetAccess:
    """Read-only access and immutability."""

    @pytest.fixture
    def params(self):
        return ParameterSet.from_mappings(
            {0: [1.0, 0.5], 1: [1.0, 0.5]},
            {(0, 1): (1.0, 0.0)},
        )

    def test_unknown_node_raises_out_of_range(self, params):
        with pytest.raises(OutOfRangeError):
            params.node(9)
        with pytest.raises(KeyError):
            params.incoming(9)

    def test_out_of_range_message_is_readable(self, params):
        with pytest.raises(OutOfRangeError) as excinfo:
            params.node(9)
        assert str(excinfo.value) == "Unknown node id 9"

    def test_contains_and_len(self, params):
        assert 0 in params
        assert 3 not in params
        assert len(params) == 2

    def test_nodes_mapping_is_read_only(self, params):
        with pytest.raises(TypeError):
            params.nodes[0] = NodeParameters(2.0, 0.1)

    def test_records_are_frozen(self, params):
        with pytest.raises(dataclasses.FrozenInstanceError):
            params.node(0).frequency = 3.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            params.edges[0].weight = 3.0

    def test_as_dict(self, params):
        data = params.as_dict()
        assert data['nodes'][0]['frequency'] == 1.0
        assert data['edges'] == [{'source': 0, 'target': 1, 'weight': 1.0, 'phase_bias': 0.0}]


class TestParameterSources:
    """Test suite for the in-memory parameter sources."""

    def test_tensor_source_copies_input(self):
        nodes = np.array([[1.0, 0.5]])
        source = TensorParameterSource(nodes)
        nodes[0, 0] = 99.0

        assert source.load().node(0).frequency == 1.0

    def test_tensor_source_update(self):
        source = TensorParameterSource([[1.0, 0.5]])
        source.update([[1.0, 0.5], [2.0, 0.5]], np.zeros((2, 2, 1, 2)))

        assert source.load().n_nodes == 2

    def test_tensor_source_rejects_ragged_input(self):
        with pytest.raises(ConfigError):
            TensorParameterSource([[1.0, 0.5], [2.0]])

    def test_each_load_validates(self):
        edges = np.zeros((2, 2, 1, 2))
        edges[0, 1, 0] = (1.0, 0.0)
        source = TensorParameterSource([[1.0, 0.5]], edges)

        with pytest.raises(ConfigError):
            source.load()

    def test_mapping_source(self):
        source = MappingParameterSource({0: [1.0, 0.5], 1: [1.0, 0.5]}, {(1, 0): (0.5, 0.0)})
        params = source.load()

        assert params.edges == (CouplingEdge(1, 0, 0.5, 0.0),)
