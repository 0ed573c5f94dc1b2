"""Unit tests for DHCP relay target resolution."""

import pytest

from netlab.errors import InvalidReferenceError, ResolutionFailedError
from netlab.model import addressing
from netlab.model.topology import DeviceClass
from netlab.model.subnets import parse_base_network
from netlab.scenarios import build_exam_session
from netlab.session import LabSession


@pytest.fixture
def wan_lab():
    """Router0 and Router1 on a serial cable, LAN on Router0, WAN free."""
    session = LabSession()
    graph = session.graph
    r0 = graph.add_device("Router0", DeviceClass.ROUTER)
    r1 = graph.add_device("Router1", DeviceClass.ROUTER)
    graph.connect(r0, "Se0/1/0", r1, "Se0/1/0")

    lan = session.forest.add_root(parse_base_network("192.168.1.0/26"))
    wan = session.forest.add_root(parse_base_network("192.168.1.128/30"))
    session.assign_to_router(lan.id, r0, "Gig0/1")
    return session, r0, r1, lan, wan


def fmt(address: int | None) -> str | None:
    return None if address is None else addressing.format(address)


class TestResolve:
    """Tests for the resolution priorities."""

    def test_peer_of_wan_owner(self, wan_lab):
        """A directly linked WAN owner yields network + 2."""
        session, r0, r1, lan, wan = wan_lab
        session.assign_to_router(wan.id, r0, "Se0/1/0")
        assert fmt(session.resolver.resolve(r1)) == "192.168.1.130"

    def test_server_owns_wan(self, wan_lab):
        """A server owning the WAN is reached on first usable."""
        session, r0, r1, lan, wan = wan_lab
        session.assign_to_router(wan.id, r1, "Se0/1/0")
        assert fmt(session.resolver.resolve(r1)) == "192.168.1.129"

    def test_wan_owner_not_linked(self, wan_lab):
        """A WAN owner that is not cabled to the server does not count."""
        session, r0, r1, lan, wan = wan_lab
        session.assign_to_router(wan.id, r0, "Se0/1/0")
        session.graph.disconnect(session.graph.links[0].id)
        assert session.resolver.resolve(r1) is None

    def test_any_owned_leaf(self, wan_lab):
        """Without a WAN, any leaf the server owns is used."""
        session, r0, r1, lan, wan = wan_lab
        assert fmt(session.resolver.resolve(r0)) == "192.168.1.1"

    def test_nothing_found(self, wan_lab):
        """A server with no addressing resolves to None."""
        session, r0, r1, lan, wan = wan_lab
        assert session.resolver.resolve(r1) is None
        with pytest.raises(ResolutionFailedError):
            session.resolver.require(r1)

    def test_non_router_server(self, wan_lab):
        """Only routers serve DHCP."""
        session, *_ = wan_lab
        pc = session.graph.add_device("PC0", DeviceClass.PC)
        assert session.resolver.resolve(pc) is None

    def test_dangling_server(self, wan_lab):
        """An unknown server id raises InvalidReferenceError."""
        session, *_ = wan_lab
        with pytest.raises(InvalidReferenceError):
            session.resolver.resolve(99)


class TestConfigureRelay:
    """Tests for pointing a LAN at a remote DHCP server."""

    def test_configure_relay(self, wan_lab):
        """The helper address and server are stored on the subnet."""
        session, r0, r1, lan, wan = wan_lab
        session.assign_to_router(wan.id, r0, "Se0/1/0")
        node = session.resolver.configure_relay(lan.id, r1, upper_half_only=True)
        assert node.dhcp_enabled
        assert node.dhcp_server_id == r1
        assert node.dhcp_helper_address == "192.168.1.130"
        assert node.dhcp_upper_half_only

    def test_failed_relay_leaves_subnet(self, wan_lab):
        """Nothing changes when no address resolves."""
        session, r0, r1, lan, wan = wan_lab
        with pytest.raises(ResolutionFailedError):
            session.resolver.configure_relay(lan.id, r1)
        assert not lan.dhcp_enabled
        assert lan.dhcp_helper_address == ""


class TestExamScenario:
    """Tests for the built-in exam lab."""

    def test_relay_address(self):
        """LAN A and LAN B relay to Router1 across the WAN."""
        session = build_exam_session()
        router1 = session.graph.find_device("Router1")
        assert fmt(session.resolver.resolve(router1)) == "192.168.1.130"

        lan_a = session.forest.find(1)
        assert lan_a.name == "LAN A"
        assert lan_a.assigned_interface == "Gig0/1.10"
        assert lan_a.dhcp_helper_address == "192.168.1.130"
        assert lan_a.dhcp_upper_half_only

    def test_topology(self):
        """Eleven devices and ten cables."""
        session = build_exam_session()
        summary = session.summary()
        assert summary["devices"] == 11
        assert summary["links"] == 10
        assert summary["subnets"] == 4
        switch0 = session.graph.find_device("Switch0")
        assert session.graph.interface(switch0, "Fa0/2").vlan_id == 20

    def test_rebuild_resets(self):
        """Building twice on one session does not duplicate anything."""
        session = build_exam_session()
        build_exam_session(session)
        assert len(session.graph) == 11
        assert len(session.forest) == 4
