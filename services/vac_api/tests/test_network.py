"""Tests for the steady-state flow network."""

import pytest

from vacflow.errors import InfeasibleTopologyError
from vacflow.network import (
    FEEDS,
    JUNCTIONS,
    PRODUCTS,
    FlowSpecification,
    compute_stream_flows,
    junction_imbalance,
    network_totals,
)


@pytest.fixture
def flows():
    return compute_stream_flows()


class TestNominalNetwork:
    def test_all_streams_present(self, flows):
        assert list(flows) == [f"S{i}" for i in range(1, 35)]

    def test_vaporizer_feed_split(self, flows):
        assert flows["S2"] == pytest.approx(9.921516, abs=1e-9)
        assert flows["S34"] == pytest.approx(9.016516, abs=1e-9)

    def test_derived_flows(self, flows):
        assert flows["S7"] == pytest.approx(12.591356, abs=1e-9)
        assert flows["S16"] == pytest.approx(9.455506, abs=1e-9)
        assert flows["S24"] == pytest.approx(2.2606, abs=1e-9)
        assert flows["S26"] == pytest.approx(1.68775, abs=1e-9)

    def test_all_non_negative(self, flows):
        assert all(v >= 0.0 for v in flows.values())

    def test_every_junction_closes(self, flows):
        for name, err in junction_imbalance(flows).items():
            assert abs(err) < 1e-9, name

    def test_feed_equals_products(self, flows):
        total_in, total_out = network_totals(flows)
        assert total_in == pytest.approx(total_out, abs=1e-9)
        assert total_in == pytest.approx(0.905 + 0.47744 + 0.7443)

    def test_topology_declares_every_stream(self):
        named = set(FEEDS) | set(PRODUCTS)
        for inlets, outlets in JUNCTIONS.values():
            named |= set(inlets) | set(outlets)
        assert named == {f"S{i}" for i in range(1, 35)}


class TestInfeasibleSpecifications:
    def test_purge_above_its_feed(self):
        with pytest.raises(InfeasibleTopologyError) as exc:
            compute_stream_flows(FlowSpecification(f_S30=7.0))
        assert "S32" in exc.value.negative_flows
        assert exc.value.negative_flows["S32"] < 0.0

    def test_vaporizer_recycle_above_outlet(self):
        with pytest.raises(InfeasibleTopologyError) as exc:
            compute_stream_flows(FlowSpecification(f_S3=13.0))
        assert "S2" in exc.value.negative_flows

    def test_gas_draw_above_absorber_overhead(self):
        with pytest.raises(InfeasibleTopologyError) as exc:
            compute_stream_flows(FlowSpecification(f_S27=10.0))
        assert "S28" in exc.value.negative_flows
        assert "S28" in str(exc.value)
