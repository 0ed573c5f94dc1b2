"""Unit tests for devices, cables and the topology graph."""

import pytest

from netlab.errors import (
    DuplicateHostnameError,
    InvalidReferenceError,
    PortBusyError,
    PortNotFoundError,
    TopologyError,
)
from netlab.model.graph import TopologyGraph, increment_port
from netlab.model.topology import (
    PC_PORTS,
    ROUTER_PORTS,
    SWITCH_PORTS,
    CableType,
    DeviceClass,
    Router,
    Switch,
    make_device,
)


@pytest.fixture
def graph() -> TopologyGraph:
    return TopologyGraph()


@pytest.fixture
def lab(graph):
    """Router, switch and PC with no cables."""
    return (
        graph,
        graph.add_device("Router0", DeviceClass.ROUTER),
        graph.add_device("Switch0", DeviceClass.SWITCH),
        graph.add_device("PC0", DeviceClass.PC),
    )


class TestDevices:
    """Tests for device creation and lookup."""

    def test_port_catalogs(self, lab):
        """Each device class starts with its own ports in order."""
        graph, router, switch, pc = lab
        assert graph.available_ports(router) == ROUTER_PORTS
        assert graph.available_ports(switch) == SWITCH_PORTS
        assert graph.available_ports(pc) == PC_PORTS
        assert len(SWITCH_PORTS) == 26

    def test_models(self):
        """Routers and switches carry their catalog model."""
        assert make_device("R", DeviceClass.ROUTER).model == "ISR4331"
        assert make_device("S", "SWITCH").model == "2960"
        assert make_device("P", DeviceClass.PC).model == "Generic"

    def test_duplicate_hostname(self, lab):
        """Hostnames are unique."""
        graph, *_ = lab
        with pytest.raises(DuplicateHostnameError):
            graph.add_device("Router0", DeviceClass.SWITCH)

    def test_hostnames_are_case_sensitive(self, lab):
        """A differently cased name is a different device."""
        graph, *_ = lab
        graph.add_device("router0", DeviceClass.ROUTER)
        assert len(graph) == 4

    def test_find_device(self, lab):
        """Lookup is by exact hostname."""
        graph, router, *_ = lab
        assert graph.find_device("Router0") == router
        assert graph.find_device("Router") is None

    def test_declaration_order_index(self, lab):
        """Indexes follow declaration order."""
        graph, router, switch, pc = lab
        assert graph.device_at(0) == router
        assert graph.index_of(pc) == 2
        with pytest.raises(InvalidReferenceError):
            graph.device_at(3)

    def test_unknown_device(self, graph):
        """Unknown ids raise InvalidReferenceError."""
        with pytest.raises(InvalidReferenceError):
            graph.device(42)

    def test_interface_not_found(self, lab):
        """Asking for a missing port raises PortNotFoundError."""
        graph, router, *_ = lab
        with pytest.raises(PortNotFoundError):
            graph.interface(router, "Fa0/9")

    def test_discriminated_devices(self):
        """Device classes round-trip through their discriminator."""
        router = make_device("R", DeviceClass.ROUTER)
        assert isinstance(router, Router)
        assert Router.model_validate(router.model_dump()).device_class is DeviceClass.ROUTER


class TestCables:
    """Tests for cable type inference."""

    def test_router_to_switch_is_straight(self, lab):
        """Unlike devices use straight-through."""
        graph, router, switch, _ = lab
        link_id = graph.connect(router, "Gig0/1", switch, "Gig0/1")
        assert graph.link(link_id).cable_type is CableType.STRAIGHT_THROUGH

    def test_serial_overrides_group(self, graph):
        """Serial ports win over the crossover rule."""
        r0 = graph.add_device("Router0", DeviceClass.ROUTER)
        r1 = graph.add_device("Router1", DeviceClass.ROUTER)
        link_id = graph.connect(r0, "Se0/1/0", r1, "Se0/1/0")
        assert graph.link(link_id).cable_type is CableType.SERIAL

    def test_like_devices_crossover(self, graph):
        """Switch to switch and router to PC need a crossover."""
        s0 = graph.add_device("Switch0", DeviceClass.SWITCH)
        s1 = graph.add_device("Switch1", DeviceClass.SWITCH)
        r0 = graph.add_device("Router0", DeviceClass.ROUTER)
        pc = graph.add_device("PC0", DeviceClass.PC)
        assert graph.link(graph.connect(s0, "Gig0/1", s1, "Gig0/1")).cable_type is CableType.CROSSOVER
        assert graph.link(graph.connect(r0, "Gig0/0", pc, "Fa0")).cable_type is CableType.CROSSOVER

    def test_cable_labels(self):
        """Labels are human readable."""
        assert CableType.SERIAL.label == "Serial Cable"
        assert CableType.STRAIGHT_THROUGH.label == "Copper Straight-Through"


class TestConnect:
    """Tests for connect, disconnect and delete."""

    def test_connect_symmetry(self, lab):
        """Both ends point at each other and one link exists."""
        graph, router, switch, _ = lab
        link_id = graph.connect(router, "Gig0/1", switch, "Fa0/3")

        r_port = graph.interface(router, "Gig0/1")
        s_port = graph.interface(switch, "Fa0/3")
        assert r_port.connected and s_port.connected
        assert (r_port.neighbor.device_id, r_port.neighbor.port) == (switch, "Fa0/3")
        assert (s_port.neighbor.device_id, s_port.neighbor.port) == (router, "Gig0/1")
        assert [link.id for link in graph.links] == [link_id]
        assert graph.are_linked(switch, router)

    def test_busy_port_leaves_state_untouched(self, lab):
        """A busy port is rejected before anything changes."""
        graph, router, switch, pc = lab
        graph.connect(router, "Gig0/1", switch, "Gig0/1")
        with pytest.raises(PortBusyError):
            graph.connect(pc, "Fa0", switch, "Gig0/1")
        assert not graph.interface(pc, "Fa0").connected
        assert len(graph.links) == 1

    def test_self_port_rejected(self, lab):
        """A port cannot be cabled to itself."""
        graph, router, *_ = lab
        with pytest.raises(TopologyError):
            graph.connect(router, "Gig0/0", router, "Gig0/0")

    @pytest.mark.parametrize("blank", ["", "   "])
    def test_blank_port_leaves_state_untouched(self, lab, blank):
        """A blank port name is rejected before either port is created."""
        graph, router, switch, _ = lab
        with pytest.raises(TopologyError):
            graph.connect(router, "Gig9/9", switch, blank)
        assert graph.device(router).interface("Gig9/9") is None
        assert graph.links == []

    def test_unknown_port_is_created(self, lab):
        """Ports outside the catalog are created on first use."""
        graph, router, switch, _ = lab
        graph.connect(router, "Gig0/0/0", switch, "Fa0/1")
        assert graph.interface(router, "Gig0/0/0").connected

    def test_disconnect(self, lab):
        """Disconnect clears both ends and the link."""
        graph, router, switch, _ = lab
        link_id = graph.connect(router, "Gig0/1", switch, "Gig0/1")
        graph.disconnect(link_id)
        assert not graph.interface(router, "Gig0/1").connected
        assert graph.interface(switch, "Gig0/1").neighbor is None
        assert graph.links == []
        with pytest.raises(InvalidReferenceError):
            graph.disconnect(link_id)

    def test_delete_device(self, lab):
        """Deleting a device leaves no reference to it behind."""
        graph, router, switch, pc = lab
        graph.connect(router, "Gig0/1", switch, "Gig0/1")
        graph.connect(pc, "Fa0", switch, "Fa0/1")

        assert graph.delete_device(switch) == 2
        assert switch not in graph
        for _, device in graph.devices():
            for port in device.ports:
                assert port.neighbor is None
        assert graph.links == []

    def test_disconnect_all(self, lab):
        """Every cable is unplugged but devices stay."""
        graph, router, switch, pc = lab
        graph.connect(router, "Gig0/1", switch, "Gig0/1")
        graph.connect(pc, "Fa0", switch, "Fa0/1")
        assert graph.disconnect_all() == 2
        assert len(graph) == 3
        assert graph.neighbors(switch) == []

    def test_auto_port_prefers_pc_nic(self, lab):
        """PCs use Fa0, others their first free port."""
        graph, router, switch, pc = lab
        assert graph.auto_port(pc) == "Fa0"
        graph.connect(router, "Gig0/0", switch, "Fa0/1")
        assert graph.auto_port(router) == "Gig0/1"
        assert graph.auto_port(switch) == "Fa0/2"

    def test_to_networkx(self, lab):
        """The NetworkX view has one edge per link."""
        graph, router, switch, pc = lab
        graph.connect(router, "Gig0/1", switch, "Gig0/1")
        graph.connect(router, "Gig0/2", switch, "Gig0/2")
        nx_graph = graph.to_networkx()
        assert nx_graph.number_of_nodes() == 3
        assert nx_graph.number_of_edges(router, switch) == 2
        assert nx_graph.nodes[pc]["hostname"] == "PC0"


class TestBatchConnect:
    """Tests for connecting several devices to one target."""

    def test_increment_port(self):
        """The last number in the name is bumped."""
        assert increment_port("Fa0/9") == "Fa0/10"
        assert increment_port("Gig0/1/0") == "Gig0/1/1"
        assert increment_port("Fa") == "Fa"

    def test_target_port_increments(self, graph):
        """An explicit target port advances after each link."""
        switch = graph.add_device("Switch0", DeviceClass.SWITCH)
        pcs = [graph.add_device(f"PC{i}", DeviceClass.PC) for i in range(3)]

        result = graph.connect_batch(pcs, switch, target_start_port="Fa0/5")

        assert [o.target_port for o in result.connected] == ["Fa0/5", "Fa0/6", "Fa0/7"]
        assert all(o.source_port == "Fa0" for o in result.connected)
        assert result.stopped == ""

    def test_self_connection_skipped(self, graph):
        """The target itself is skipped, not fatal."""
        switch = graph.add_device("Switch0", DeviceClass.SWITCH)
        pc = graph.add_device("PC0", DeviceClass.PC)

        result = graph.connect_batch([switch, pc], switch)

        assert [o.source for o in result.skipped] == ["Switch0"]
        assert [o.source for o in result.connected] == ["PC0"]
        assert result.connected[0].target_port == "Fa0/1"

    def test_busy_target_stops_batch(self, graph):
        """A busy explicit target port stops the batch."""
        switch = graph.add_device("Switch0", DeviceClass.SWITCH)
        pcs = [graph.add_device(f"PC{i}", DeviceClass.PC) for i in range(3)]
        graph.connect(pcs[2], "Fa0", switch, "Fa0/2")

        result = graph.connect_batch(pcs[:2] + [graph.add_device("PC9", DeviceClass.PC)], switch, "Fa0/1")

        assert len(result.connected) == 1
        assert "busy" in result.stopped

    def test_missing_preferred_source_port(self, graph):
        """A source without the preferred port is skipped."""
        switch = graph.add_device("Switch0", DeviceClass.SWITCH)
        router = graph.add_device("Router0", DeviceClass.ROUTER)
        pc = graph.add_device("PC0", DeviceClass.PC)

        result = graph.connect_batch([router, pc], switch, preferred_source_port="Fa0")

        assert [o.source for o in result.skipped] == ["Router0"]
        assert [o.source for o in result.connected] == ["PC0"]


class TestDeviceRecords:
    """Tests for class-specific device records."""

    def test_router_records(self):
        """Routers keep subinterfaces and DHCP pools."""
        router = Router(hostname="Router0")
        sub = router.configure_roas(20, 20, "10.0.20.1", "255.255.255.0")
        router.add_dhcp_pool("LAN_B", "10.0.20.0", "255.255.255.0", "10.0.20.1")
        assert sub.full_name == "g0/0/0.20"
        assert [p.name for p in router.dhcp_pools] == ["LAN_B"]

    def test_switch_vlan_definition(self):
        """Switch VLANs are renamed in place."""
        switch = Switch(hostname="Switch0")
        switch.add_vlan(10, "A")
        switch.add_vlan(10, "B")
        assert [(v.id, v.name) for v in switch.vlans] == [(10, "B")]
