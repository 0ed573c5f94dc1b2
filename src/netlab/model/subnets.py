"""Subnet forest and VLSM allocator.

A forest of Network nodes. Roots come from a parsed base network; any
unsplit node can later be split again, producing a multi-level tree.
Nodes are stored by id and refer to each other by id only.

State per node:
    Free -> Split     (irreversible, by splitting)
    Free -> Assigned  (by an assign action)

A Split node is never assigned directly; its children cycle through the
same states independently.
"""

import logging
import re
from enum import Enum
from typing import Iterable, Iterator

from pydantic import BaseModel, Field

from netlab.errors import (
    AllocationError,
    AlreadySplitError,
    AssignedLeafCannotSplitError,
    InvalidPartitionError,
    InvalidReferenceError,
    ParseError,
    SubnetError,
)
from netlab.model import addressing

logger = logging.getLogger(__name__)

BASE_NETWORK_PATTERN = re.compile(r"^([0-9]+)\.([0-9]+)\.([0-9]+)\.([0-9]+)/([0-9]+)$")

FREE_TAG = "Free"
SPLIT_TAG = "Split (VLSM Parent)"

# /30 and longer are point-to-point WAN blocks; DHCP is only offered below
WAN_PREFIX = 30


class AssignmentState(str, Enum):
    """Assignment status of a subnet."""

    FREE = "free"
    ASSIGNED = "assigned"
    SPLIT = "split"


class Assignment(BaseModel):
    """Who a subnet belongs to.

    ``owner_id`` is the id of the owning device and is only set while
    the state is ASSIGNED.
    """

    state: AssignmentState = AssignmentState.FREE
    owner_id: int | None = None

    @classmethod
    def free(cls) -> "Assignment":
        return cls()

    @classmethod
    def split(cls) -> "Assignment":
        return cls(state=AssignmentState.SPLIT)

    @classmethod
    def assigned_to(cls, owner_id: int) -> "Assignment":
        return cls(state=AssignmentState.ASSIGNED, owner_id=owner_id)

    @property
    def is_free(self) -> bool:
        return self.state is AssignmentState.FREE

    @property
    def is_assigned(self) -> bool:
        return self.state is AssignmentState.ASSIGNED


class Network(BaseModel):
    """A subnet block in the forest."""

    id: int = Field(default=0, ge=0, description="Forest-unique id (0 until attached)")
    address: int = Field(..., ge=0, le=addressing.ALL_ONES, description="Base address")
    prefix_length: int = Field(..., ge=0, description="CIDR prefix length")
    parent_id: int = Field(default=0, ge=0, description="Parent id, 0 for roots")
    children_ids: list[int] = Field(default_factory=list, description="Child ids in address order")
    is_split: bool = Field(default=False, description="Whether the block was subdivided")
    name: str = Field(default="", description="Optional label (e.g., 'LAN A')")
    assignment: Assignment = Field(default_factory=Assignment)
    assigned_interface: str = Field(default="", description="Port label on the owner")
    associated_vlan_id: int = Field(default=0, ge=0, description="0 = physical/no VLAN")

    # DHCP
    dhcp_enabled: bool = False
    dhcp_upper_half_only: bool = Field(default=False, description="Exclude the lower half from the pool")
    dhcp_server_id: int | None = Field(default=None, description="Serving router id, None = local")
    dhcp_helper_address: str = Field(default="", description="ip helper-address for a remote server")

    @property
    def block_size(self) -> int:
        return addressing.block_size(self.prefix_length)

    @property
    def mask(self) -> int:
        return addressing.mask_for(self.prefix_length)

    @property
    def broadcast(self) -> int:
        return addressing.broadcast_address(self.address, self.prefix_length)

    @property
    def first_usable(self) -> int:
        return addressing.first_usable(self.address, self.prefix_length)

    @property
    def last_usable(self) -> int:
        return addressing.last_usable(self.address, self.prefix_length)

    @property
    def host_capacity(self) -> int:
        return addressing.host_capacity(self.prefix_length)

    @property
    def cidr(self) -> str:
        return addressing.format_cidr(self.address, self.prefix_length)

    @property
    def is_wan(self) -> bool:
        return self.prefix_length >= WAN_PREFIX

    @property
    def is_root(self) -> bool:
        return self.parent_id == 0

    def contains(self, address: int) -> bool:
        return self.address <= address < self.address + self.block_size

    def clear_dhcp(self) -> None:
        self.dhcp_enabled = False
        self.dhcp_upper_half_only = False
        self.dhcp_server_id = None
        self.dhcp_helper_address = ""


def parse_base_network(text: str) -> Network:
    """Parse ``a.b.c.d/nn`` into a detached root network.

    Only the textual shape is checked. Octets above 255 or prefixes
    above 32 are accepted and give deterministic (if meaningless)
    blocks. The address is aligned down to its prefix.

    Raises:
        ParseError: If the text does not have the x.x.x.x/yy shape
    """
    match = BASE_NETWORK_PATTERN.match(text.strip())
    if match is None:
        raise ParseError(text, "Invalid Network Format (expected x.x.x.x/yy)")
    octets = [int(part) for part in match.groups()[:4]]
    prefix = int(match.group(5))
    address = addressing.network_address(addressing.pack_octets(octets), prefix)
    logger.debug("Parsed base network %s as %s", text, addressing.format_cidr(address, prefix))
    return Network(address=address, prefix_length=prefix)


def assignment_label(network: Network, owner_hostname: str | None) -> str:
    """Human-readable assignment text (``Assigned: R0 - Gig0/1``)."""
    if network.is_split or network.assignment.state is AssignmentState.SPLIT:
        return SPLIT_TAG
    if not network.assignment.is_assigned:
        return FREE_TAG
    owner = owner_hostname or "?"
    if network.assigned_interface:
        return f"Assigned: {owner} - {network.assigned_interface}"
    return f"Assigned: {owner}"


class SubnetForest:
    """Owns every subnet node and the VLSM allocator.

    Example:
        forest = SubnetForest()
        roots = forest.plan("192.168.1.0/24", hosts=50)
        wans = forest.split_by_hosts(roots[-1].id, 2)
    """

    def __init__(self, reject_assigned_split: bool = False, max_children: int = 65536) -> None:
        self.reject_assigned_split = reject_assigned_split
        self.max_children = max_children
        self._nodes: dict[int, Network] = {}
        self._next_id = 1

    @staticmethod
    def parse_base_network(text: str) -> Network:
        return parse_base_network(text)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate_by_host_count(self, node: Network, required_hosts: int) -> list[Network]:
        """Partition a block into the smallest subnets holding the hosts.

        Args:
            node: Block to partition (attached or detached)
            required_hosts: Usable hosts each subnet must hold

        Returns:
            Detached child networks covering the whole block

        Raises:
            AllocationError: If the requirement cannot fit in the block
        """
        if required_hosts < 1:
            raise AllocationError(
                "Host requirement must be at least 1",
                {"required_hosts": required_hosts},
            )

        new_prefix = None
        for prefix in range(addressing.ADDRESS_BITS, -1, -1):
            if addressing.host_capacity(prefix) >= required_hosts:
                new_prefix = prefix
                break

        if new_prefix is None or new_prefix < node.prefix_length:
            raise AllocationError(
                f"{node.cidr} holds at most {node.host_capacity} hosts",
                {"network": node.cidr, "required_hosts": required_hosts},
            )

        logger.debug("%d hosts -> /%d blocks inside %s", required_hosts, new_prefix, node.cidr)
        return self._partition(node, new_prefix)

    def allocate_by_subnet_count(self, node: Network, required_subnets: int) -> list[Network]:
        """Partition a block into at least ``required_subnets`` equal subnets.

        The count is rounded up to a power of two; extra subnets are
        returned too and may be ignored by the caller.
        """
        if required_subnets < 1:
            raise AllocationError(
                "Subnet requirement must be at least 1",
                {"required_subnets": required_subnets},
            )

        extra_bits = (required_subnets - 1).bit_length()
        new_prefix = min(node.prefix_length + extra_bits, addressing.ADDRESS_BITS)
        new_prefix = max(new_prefix, node.prefix_length)

        logger.debug("%d subnets -> /%d blocks inside %s", required_subnets, new_prefix, node.cidr)
        return self._partition(node, new_prefix)

    def _partition(self, node: Network, new_prefix: int) -> list[Network]:
        size = addressing.block_size(new_prefix)
        count = node.block_size // size
        if count > self.max_children:
            raise AllocationError(
                f"Splitting {node.cidr} into /{new_prefix} would create {count} subnets",
                {"network": node.cidr, "limit": self.max_children},
            )
        return [
            Network(address=node.address + i * size, prefix_length=new_prefix)
            for i in range(count)
        ]

    # ------------------------------------------------------------------
    # Forest construction
    # ------------------------------------------------------------------

    def _take_id(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        return node_id

    def add_root(self, network: Network) -> Network:
        """Attach a detached network as a new root."""
        network.id = self._take_id()
        network.parent_id = 0
        network.children_ids = []
        self._nodes[network.id] = network
        return network

    def plan(
        self,
        base: str,
        hosts: int | None = None,
        subnets: int | None = None,
    ) -> list[Network]:
        """Start a new addressing plan from a base network.

        The forest is cleared, the base is parsed and divided by host or
        subnet requirement, and the resulting blocks become the roots.
        Nothing is cleared if parsing or allocation fails.
        """
        if (hosts is None) == (subnets is None):
            raise AllocationError("Give exactly one of hosts or subnets")

        base_net = parse_base_network(base)
        if hosts is not None:
            blocks = self.allocate_by_host_count(base_net, hosts)
        else:
            blocks = self.allocate_by_subnet_count(base_net, subnets)  # type: ignore[arg-type]

        self.reset()
        for block in blocks:
            self.add_root(block)
        logger.info("Generated %d subnets from %s", len(blocks), base_net.cidr)
        return blocks

    def split(self, parent_id: int, children: list[Network]) -> list[Network]:
        """Attach children under a leaf and mark it split.

        Raises:
            AlreadySplitError: If the parent has already been split
            AssignedLeafCannotSplitError: If the parent is assigned and
                the forest rejects splitting assigned leaves
            InvalidPartitionError: If the children do not cover the parent
                range exactly
        """
        parent = self.find(parent_id)
        if parent.is_split:
            raise AlreadySplitError(parent_id)
        if self.reject_assigned_split and parent.assignment.is_assigned:
            raise AssignedLeafCannotSplitError(parent_id)
        for child in children:
            if child.id in self._nodes:
                raise InvalidPartitionError(
                    f"Subnet {child.id} is already in the forest",
                    {"subnet": child.id},
                )
        self._check_partition(parent, children)

        for child in children:
            child.id = self._take_id()
            child.parent_id = parent.id
            child.children_ids = []
            child.is_split = False
            self._nodes[child.id] = child
            parent.children_ids.append(child.id)

        parent.is_split = True
        parent.assignment = Assignment.split()
        parent.assigned_interface = ""
        logger.info("Split %s into %d subnets", parent.cidr, len(children))
        return children

    def _check_partition(self, parent: Network, children: list[Network]) -> None:
        if not children:
            raise InvalidPartitionError(f"No subnets to attach under {parent.cidr}")
        prefix = children[0].prefix_length
        size = addressing.block_size(prefix)
        if len(children) * size != parent.block_size:
            raise InvalidPartitionError(
                f"Subnets do not cover {parent.cidr} exactly",
                {"parent": parent.cidr, "children": len(children), "prefix": prefix},
            )
        for index, child in enumerate(children):
            if child.prefix_length != prefix or child.address != parent.address + index * size:
                raise InvalidPartitionError(
                    f"{child.cidr} is not block {index} of {parent.cidr}",
                    {"parent": parent.cidr, "child": child.cidr},
                )

    def split_by_hosts(self, parent_id: int, required_hosts: int) -> list[Network]:
        """VLSM split of a leaf by host requirement."""
        parent = self.find(parent_id)
        if parent.is_split:
            raise AlreadySplitError(parent_id)
        return self.split(parent_id, self.allocate_by_host_count(parent, required_hosts))

    def split_by_subnets(self, parent_id: int, required_subnets: int) -> list[Network]:
        """VLSM split of a leaf by subnet count."""
        parent = self.find(parent_id)
        if parent.is_split:
            raise AlreadySplitError(parent_id)
        return self.split(parent_id, self.allocate_by_subnet_count(parent, required_subnets))

    def reset(self) -> None:
        """Drop every node and restart ids at 1."""
        self._nodes.clear()
        self._next_id = 1

    @classmethod
    def from_records(cls, nodes: Iterable[Network], **kwargs) -> "SubnetForest":
        """Rebuild a forest from loaded nodes.

        Child lists are re-linked from each node's ``parent_id`` once all
        nodes are known and kept in address order; any node with children
        is marked split.

        Raises:
            SubnetError: If two nodes share an id
            InvalidReferenceError: If a parent id matches no node
            InvalidPartitionError: If a node is not aligned to its prefix
                or a parent's children do not cover it exactly
        """
        forest = cls(**kwargs)
        loaded = list(nodes)
        for node in loaded:
            if node.id in forest._nodes or node.id <= 0:
                raise SubnetError(f"Duplicate or invalid subnet id {node.id}", {"subnet": node.id})
            if node.address % node.block_size != 0:
                raise InvalidPartitionError(
                    f"{node.cidr} is not aligned to its prefix",
                    {"subnet": node.id},
                )
            node.children_ids = []
            forest._nodes[node.id] = node

        for node in loaded:
            if node.parent_id == 0:
                continue
            parent = forest._nodes.get(node.parent_id)
            if parent is None:
                raise InvalidReferenceError("subnet", node.parent_id)
            parent.children_ids.append(node.id)
            parent.is_split = True
            parent.assignment = Assignment.split()

        for node in loaded:
            if not node.children_ids:
                continue
            children = sorted(forest.children_of(node.id), key=lambda child: child.address)
            forest._check_partition(node, children)
            node.children_ids = [child.id for child in children]

        forest._next_id = max(forest._nodes, default=0) + 1
        return forest

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def find(self, subnet_id: int) -> Network:
        """Get a node by id.

        Raises:
            InvalidReferenceError: If no such node exists
        """
        try:
            return self._nodes[subnet_id]
        except KeyError:
            raise InvalidReferenceError("subnet", subnet_id) from None

    def get(self, subnet_id: int) -> Network | None:
        return self._nodes.get(subnet_id)

    def children_of(self, subnet_id: int) -> list[Network]:
        return [self._nodes[cid] for cid in self.find(subnet_id).children_ids]

    def root_nodes(self) -> list[Network]:
        return [n for n in self._nodes.values() if n.parent_id == 0]

    def walk(self) -> Iterator[tuple[int, Network]]:
        """Depth-first pre-order over every tree, yielding (depth, node)."""
        stack = [(0, root) for root in reversed(self.root_nodes())]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            for child_id in reversed(tuple(node.children_ids)):
                stack.append((depth + 1, self._nodes[child_id]))

    def leaves(self) -> list[Network]:
        """Unsplit nodes in forest order."""
        return [n for n in self._nodes.values() if not n.is_split]

    @property
    def nodes(self) -> list[Network]:
        return list(self._nodes.values())

    def owned_by(self, device_id: int) -> list[Network]:
        return [
            n for n in self._nodes.values()
            if n.assignment.is_assigned and n.assignment.owner_id == device_id
        ]

    def host_capacity(self, node: Network) -> int:
        return addressing.host_capacity(node.prefix_length)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Network]:
        return iter(list(self._nodes.values()))

    def __contains__(self, subnet_id: object) -> bool:
        return subnet_id in self._nodes

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def _leaf(self, subnet_id: int) -> Network:
        node = self.find(subnet_id)
        if node.is_split:
            raise AlreadySplitError(subnet_id)
        return node

    def rename(self, subnet_id: int, name: str) -> Network:
        node = self.find(subnet_id)
        node.name = name
        return node

    def assign(
        self,
        subnet_id: int,
        owner_id: int,
        interface: str,
        vlan_id: int = 0,
        vlan_name: str | None = None,
    ) -> Network:
        """Bind a leaf to a device port.

        A VLAN id above 0 turns the port into the ``base.vlan``
        subinterface and names an unnamed subnet after the VLAN.
        WAN blocks never keep DHCP settings.

        Raises:
            AlreadySplitError: If the subnet has been split
        """
        node = self._leaf(subnet_id)

        final_interface = interface
        if vlan_id > 0:
            final_interface = f"{interface.split('.', 1)[0]}.{vlan_id}"
            if not node.name and vlan_name:
                node.name = vlan_name

        node.associated_vlan_id = vlan_id
        node.assigned_interface = final_interface
        node.assignment = Assignment.assigned_to(owner_id)
        if node.is_wan:
            node.clear_dhcp()
        logger.debug("Assigned %s to device %d %s", node.cidr, owner_id, final_interface)
        return node

    def release(self, subnet_id: int) -> Network:
        """Return an assigned leaf to the free pool."""
        node = self._leaf(subnet_id)
        node.assignment = Assignment.free()
        node.assigned_interface = ""
        node.associated_vlan_id = 0
        node.clear_dhcp()
        return node

    def release_owner(self, device_id: int) -> int:
        """Free every subnet owned by a device, returning how many."""
        owned = self.owned_by(device_id)
        for node in owned:
            self.release(node.id)
        return len(owned)

    def release_server(self, device_id: int) -> int:
        """Disable DHCP on every subnet relayed to a device, returning how many."""
        served = [node for node in self._nodes.values() if node.dhcp_server_id == device_id]
        for node in served:
            node.clear_dhcp()
        return len(served)

    def configure_dhcp(
        self,
        subnet_id: int,
        server_id: int | None = None,
        helper_address: str = "",
        upper_half_only: bool = False,
    ) -> Network:
        """Enable a DHCP pool for a LAN leaf.

        ``server_id`` None means the owning router serves the pool
        itself; otherwise ``helper_address`` is the relay target.
        """
        node = self._leaf(subnet_id)
        if node.is_wan:
            raise SubnetError(
                f"DHCP is only available on LAN subnets, not {node.cidr}",
                {"subnet": subnet_id},
            )
        node.dhcp_enabled = True
        node.dhcp_server_id = server_id
        node.dhcp_helper_address = helper_address
        node.dhcp_upper_half_only = upper_half_only
        return node

    def disable_dhcp(self, subnet_id: int) -> Network:
        node = self.find(subnet_id)
        node.clear_dhcp()
        return node
