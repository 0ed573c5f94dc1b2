"""Network model components."""

from netlab.model.graph import BatchResult, ConnectionOutcome, TopologyGraph, increment_port
from netlab.model.subnets import Assignment, AssignmentState, Network, SubnetForest, parse_base_network
from netlab.model.topology import (
    PC,
    CableType,
    DeviceClass,
    Interface,
    Link,
    Router,
    Switch,
    infer_cable_type,
    make_device,
)
from netlab.model.vlans import VlanDatabase, parse_interface_range

__all__ = [
    "PC",
    "Assignment",
    "AssignmentState",
    "BatchResult",
    "CableType",
    "ConnectionOutcome",
    "DeviceClass",
    "Interface",
    "Link",
    "Network",
    "Router",
    "SubnetForest",
    "Switch",
    "TopologyGraph",
    "VlanDatabase",
    "increment_port",
    "infer_cable_type",
    "make_device",
    "parse_base_network",
    "parse_interface_range",
]
