"""DHCP relay target resolution.

Finds the address a remote DHCP server router is reachable at, for use
as an ``ip helper-address``. The search only looks one cable away:

1. A /30 owned by the server itself -> its first usable address.
2. A /30 owned by another router cabled directly to the server -> the
   peer side of that point-to-point block (network + 2).
3. Any other leaf owned by the server -> its first usable address.
4. Otherwise nothing; the caller has to ask for a manual address.
"""

import logging

from netlab.errors import InvalidReferenceError, ResolutionFailedError
from netlab.model import addressing
from netlab.model.graph import TopologyGraph
from netlab.model.subnets import Network, SubnetForest
from netlab.model.topology import DeviceClass

logger = logging.getLogger(__name__)

P2P_PREFIX = 30
# Owner of a /30 takes network+1, the far side network+2
PEER_OFFSET = 2


class RelayResolver:
    """Resolves relay targets over one forest and one graph.

    Example:
        resolver = RelayResolver(forest, graph)
        helper = resolver.resolve(router1_id)   # e.g. 192.168.1.130 as int
    """

    def __init__(self, forest: SubnetForest, graph: TopologyGraph) -> None:
        self.forest = forest
        self.graph = graph

    def resolve(self, server_id: int) -> int | None:
        """Best address for reaching the server router, or None.

        Raises:
            InvalidReferenceError: If ``server_id`` is not a device
        """
        server = self.graph.device(server_id)
        if server.device_class is not DeviceClass.ROUTER:
            logger.debug("%s is not a router, no relay target", server.hostname)
            return None

        adjacency = self.graph.to_networkx()
        leaves = self.forest.leaves()

        for net in leaves:
            if net.prefix_length != P2P_PREFIX or not net.assignment.is_assigned:
                continue
            owner_id = net.assignment.owner_id
            if owner_id == server_id:
                return self._found(server.hostname, net, net.first_usable, "owns WAN")
            if owner_id is not None and self._is_router(owner_id) and adjacency.has_edge(owner_id, server_id):
                return self._found(server.hostname, net, net.address + PEER_OFFSET, "is WAN peer")

        for net in leaves:
            if net.assignment.is_assigned and net.assignment.owner_id == server_id:
                return self._found(server.hostname, net, net.first_usable, "owns")

        logger.info("No relay address found for %s", server.hostname)
        return None

    def require(self, server_id: int) -> int:
        """Like ``resolve`` but a miss is an error.

        Raises:
            ResolutionFailedError: If no address could be found
        """
        address = self.resolve(server_id)
        if address is None:
            raise ResolutionFailedError(self.graph.hostname(server_id))
        return address

    def configure_relay(
        self,
        subnet_id: int,
        server_id: int,
        upper_half_only: bool = False,
    ) -> Network:
        """Point a LAN's DHCP at a remote server router.

        The subnet is left untouched if no relay address resolves.
        """
        self.forest.find(subnet_id)
        helper = addressing.format(self.require(server_id))
        return self.forest.configure_dhcp(
            subnet_id,
            server_id=server_id,
            helper_address=helper,
            upper_half_only=upper_half_only,
        )

    def _is_router(self, device_id: int) -> bool:
        try:
            return self.graph.device(device_id).device_class is DeviceClass.ROUTER
        except InvalidReferenceError:
            return False

    @staticmethod
    def _found(hostname: str, net: Network, address: int, why: str) -> int:
        logger.debug("%s %s %s, relay via %s", hostname, why, net.cidr, addressing.format(address))
        return address
