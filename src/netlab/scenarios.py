"""Ready-made lab scenarios.

The exam scenario is the two-router lab used in the practical exam:

    PC0, Laptop0 -- Switch0 -- Router0 ==serial== Router1 -- Switch1 -- PC1, Laptop1
                       |
                    Switch2 -- PC2, Laptop2

LAN A and LAN B are VLAN 10/20 subinterfaces on Router0 and get DHCP
relayed to Router1 across the 192.168.1.128/30 WAN.
"""

from netlab.model.subnets import parse_base_network
from netlab.model.topology import DeviceClass
from netlab.session import LabSession


def build_exam_session(session: LabSession | None = None) -> LabSession:
    """Reset a session (or create one) and load the exam scenario."""
    if session is None:
        session = LabSession()
    session.reset()
    graph = session.graph

    router0 = graph.add_device("Router0", DeviceClass.ROUTER)
    router1 = graph.add_device("Router1", DeviceClass.ROUTER)
    switch0 = graph.add_device("Switch0", DeviceClass.SWITCH)
    switch1 = graph.add_device("Switch1", DeviceClass.SWITCH)
    switch2 = graph.add_device("Switch2", DeviceClass.SWITCH)
    hosts = {
        name: graph.add_device(name, DeviceClass.PC)
        for name in ("PC0", "Laptop0", "PC1", "Laptop1", "PC2", "Laptop2")
    }

    graph.connect(router0, "Gig0/1", switch0, "Gig0/1")
    graph.connect(router1, "Gig0/1", switch1, "Gig0/1")
    graph.connect(switch0, "Gig0/2", switch2, "Gig0/2")
    graph.connect(router0, "Se0/1/0", router1, "Se0/1/0")
    for pc, laptop, switch in (
        ("PC0", "Laptop0", switch0),
        ("PC1", "Laptop1", switch1),
        ("PC2", "Laptop2", switch2),
    ):
        graph.connect(hosts[pc], "Fa0", switch, "Fa0/1")
        graph.connect(hosts[laptop], "Fa0", switch, "Fa0/2")

    session.vlans.add(10, "LAN_A")
    session.vlans.add(20, "LAN_B")

    forest = session.forest
    lan_a = forest.add_root(parse_base_network("192.168.1.32/27"))
    lan_b = forest.add_root(parse_base_network("192.168.1.64/27"))
    lan_c = forest.add_root(parse_base_network("192.168.1.96/27"))
    lan_d = forest.add_root(parse_base_network("192.168.1.128/30"))
    forest.rename(lan_a.id, "LAN A")
    forest.rename(lan_b.id, "LAN B")
    forest.rename(lan_c.id, "LAN C")
    forest.rename(lan_d.id, "LAN D")

    session.assign_to_router(lan_a.id, router0, "Gig0/1", vlan_id=10)
    session.assign_to_router(lan_b.id, router0, "Gig0/1", vlan_id=20)
    session.assign_to_router(lan_c.id, router1, "Gig0/1")
    session.assign_to_router(lan_d.id, router0, "Se0/1/0")

    resolver = session.resolver
    resolver.configure_relay(lan_a.id, router1, upper_half_only=True)
    resolver.configure_relay(lan_b.id, router1, upper_half_only=True)

    for switch in (switch0, switch2):
        session.vlans.assign_ports(graph, switch, [1], vlan_id=10)
        session.vlans.assign_ports(graph, switch, [2], vlan_id=20)

    return session
