"""Save-file persistence for lab sessions.

The save file is plain text made of ``[SECTION]`` headers followed by
pipe-delimited rows. Blank lines and ``#`` comments are ignored:

    [DEVICES]
    0|Router0|ROUTER|100.0|80.0|1.0|1.0|1.0
    [CONNECTIONS]
    Router0|Gig0/1|Switch0|Gig0/1
    [VLANS]
    10|LAN_A
    [SUBNETS]
    1|192.168.1.32|27|0|LAN A|Assigned: Router0 - Gig0/1.10|Gig0/1.10|10|1|1|1|192.168.1.130
    [DEVICE_CONFIGS]
    0|secret|vty|admin|pass|192.168.1.2|1|NONE
    [INTERFACE_CONFIGS]
    2|Fa0/1|10|0
    0|Gig0/1.10|10|0|192.168.1.33|255.255.255.224
    [STATIC_ROUTES]
    0|0.0.0.0|0.0.0.0|192.168.1.130

Devices are referenced by their index column; subnet owners are stored
as the assignment text and mapped back by exact hostname.
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from netlab.config import NetlabSettings
from netlab.errors import NetlabError, SaveFileError
from netlab.model import addressing
from netlab.model.subnets import (
    FREE_TAG,
    SPLIT_TAG,
    Assignment,
    Network,
    SubnetForest,
    assignment_label,
)
from netlab.model.topology import DeviceClass, Router, Switch
from netlab.session import LabSession

logger = logging.getLogger(__name__)

SECTIONS = (
    "DEVICES",
    "CONNECTIONS",
    "VLANS",
    "SUBNETS",
    "DEVICE_CONFIGS",
    "INTERFACE_CONFIGS",
    "STATIC_ROUTES",
)

SEPARATOR = "|"
NO_HELPER = "NONE"
NO_ALLOWED_IP = "NONE"
LOCAL_SERVER = -1
ASSIGNED_PREFIX = "Assigned: "

# id|network|prefix|parent|name|assignment|iface are required, the rest optional
MIN_SUBNET_FIELDS = 7
DHCP_SUBNET_FIELDS = 12


# ----------------------------------------------------------------------
# Writing
# ----------------------------------------------------------------------


def _row(*fields: object) -> str:
    text = [str(f) for f in fields]
    for value in text:
        if SEPARATOR in value or "\n" in value or "\r" in value:
            raise SaveFileError(
                f"Value {value!r} cannot be stored in a save file",
                {"value": value},
            )
    return SEPARATOR.join(text)


def _flag(value: bool) -> str:
    return "1" if value else "0"


def dumps(session: LabSession) -> str:
    """Serialize a session to save-file text.

    Raises:
        SaveFileError: If a name or label contains a separator or newline
    """
    graph = session.graph
    index_of = {device_id: i for i, device_id in enumerate(graph.device_ids())}
    lines: list[str] = []

    lines.append("[DEVICES]")
    for device_id, device in graph.devices():
        lines.append(_row(
            index_of[device_id],
            device.hostname,
            device.device_class.value,
            device.position.x,
            device.position.y,
            device.color.r,
            device.color.g,
            device.color.b,
        ))

    lines.append("[CONNECTIONS]")
    for link in graph.links:
        lines.append(_row(
            graph.hostname(link.device_a),
            link.port_a,
            graph.hostname(link.device_b),
            link.port_b,
        ))

    lines.append("[VLANS]")
    for vlan_id, name in session.vlans.items():
        lines.append(_row(vlan_id, name))

    lines.append("[SUBNETS]")
    for _, node in session.forest.walk():
        server = LOCAL_SERVER
        if node.dhcp_server_id is not None and node.dhcp_server_id in index_of:
            server = index_of[node.dhcp_server_id]
        lines.append(_row(
            node.id,
            addressing.format(node.address),
            node.prefix_length,
            node.parent_id,
            node.name,
            assignment_label(node, session.owner_hostname(node)),
            node.assigned_interface,
            node.associated_vlan_id,
            _flag(node.dhcp_enabled),
            _flag(node.dhcp_upper_half_only),
            server,
            node.dhcp_helper_address or NO_HELPER,
        ))

    lines.append("[DEVICE_CONFIGS]")
    for device_id, device in graph.devices():
        mgmt = device.management
        lines.append(_row(
            index_of[device_id],
            mgmt.enable_secret,
            mgmt.vty_password,
            mgmt.ssh_username,
            mgmt.ssh_password,
            mgmt.management_svi_ip,
            _flag(mgmt.enable_telnet),
            mgmt.allowed_telnet_ip or NO_ALLOWED_IP,
        ))

    lines.append("[INTERFACE_CONFIGS]")
    for device_id, device in graph.devices():
        if isinstance(device, Switch):
            for port in device.ports:
                if port.vlan_id > 1 or port.is_trunk:
                    lines.append(_row(index_of[device_id], port.name, port.vlan_id, _flag(port.is_trunk)))
        elif isinstance(device, Router):
            for sub in device.subinterfaces:
                lines.append(_row(
                    index_of[device_id], sub.full_name, sub.vlan_id, 0, sub.ip_address, sub.subnet_mask,
                ))

    lines.append("[STATIC_ROUTES]")
    for route in session.static_routes:
        if route.router_id not in index_of:
            continue
        lines.append(_row(index_of[route.router_id], route.destination, route.mask, route.next_hop))

    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Reading
# ----------------------------------------------------------------------


def _split_sections(text: str) -> dict[str, list[tuple[int, list[str]]]]:
    """Group data rows by section, keeping line numbers for errors."""
    sections: dict[str, list[tuple[int, list[str]]]] = {name: [] for name in SECTIONS}
    current: str | None = None
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = line[1:-1].strip().upper()
            if current not in sections:
                logger.warning("Ignoring unknown section [%s] at line %d", current, lineno)
                current = None
            continue
        if current is None:
            logger.warning("Ignoring line %d outside any known section", lineno)
            continue
        sections[current].append((lineno, line.split(SEPARATOR)))
    return sections


def _int(value: str, lineno: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise SaveFileError(f"Line {lineno}: expected a number, got {value!r}", {"line": lineno}) from None


def _float(value: str, lineno: int) -> float:
    try:
        return float(value.strip())
    except ValueError:
        raise SaveFileError(f"Line {lineno}: expected a number, got {value!r}", {"line": lineno}) from None


def _too_short(lineno: int, section: str, needed: int) -> None:
    logger.warning("Line %d: [%s] row needs at least %d fields, skipped", lineno, section, needed)


def owner_from_label(label: str, interface: str) -> str | None:
    """Hostname named by an assignment label, or None if unassigned.

    Accepts ``Assigned: HOST - IFACE`` as well as a bare hostname.
    """
    label = label.strip()
    if not label or label in (FREE_TAG, SPLIT_TAG):
        return None
    host = label[len(ASSIGNED_PREFIX):] if label.startswith(ASSIGNED_PREFIX) else label
    suffix = f" - {interface}"
    if interface and host.endswith(suffix):
        host = host[: -len(suffix)]
    return host.strip() or None


def loads(text: str, session: LabSession | None = None) -> LabSession:
    """Rebuild a session from save-file text.

    The file is read into a new session. When ``session`` is given, its
    contents are replaced only once the whole file has loaded, so a
    failed load leaves it as it was. Cables naming an unknown host or a
    busy port are skipped with a warning.

    Raises:
        SaveFileError: If a row holds a malformed number, address or
            name, or the device list or subnet hierarchy is inconsistent
    """
    target = session
    if target is None:
        session = LabSession()
    else:
        session = LabSession(
            forest=SubnetForest(
                reject_assigned_split=target.forest.reject_assigned_split,
                max_children=target.forest.max_children,
            )
        )
    sections = _split_sections(text)
    graph = session.graph

    # file index -> device id
    devices: dict[int, int] = {}
    for lineno, fields in sections["DEVICES"]:
        if len(fields) < 3:
            _too_short(lineno, "DEVICES", 3)
            continue
        index = _int(fields[0], lineno)
        try:
            device_class = DeviceClass(fields[2].strip().upper())
        except ValueError:
            raise SaveFileError(f"Line {lineno}: unknown device type {fields[2]!r}", {"line": lineno}) from None
        try:
            device_id = graph.add_device(fields[1].strip(), device_class)
        except NetlabError as e:
            raise SaveFileError(f"Line {lineno}: {e.message}", {"line": lineno, **e.details}) from e
        except ValidationError as e:
            raise _invalid_row(lineno, e) from e
        device = graph.device(device_id)
        if len(fields) >= 5:
            device.position.x = _float(fields[3], lineno)
            device.position.y = _float(fields[4], lineno)
        if len(fields) >= 8:
            device.color.r = _float(fields[5], lineno)
            device.color.g = _float(fields[6], lineno)
            device.color.b = _float(fields[7], lineno)
        devices[index] = device_id

    for lineno, fields in sections["CONNECTIONS"]:
        if len(fields) < 4:
            _too_short(lineno, "CONNECTIONS", 4)
            continue
        host_a, port_a, host_b, port_b = (f.strip() for f in fields[:4])
        device_a = graph.find_device(host_a)
        device_b = graph.find_device(host_b)
        if device_a is None or device_b is None:
            logger.warning("Line %d: cable %s <--> %s names an unknown device, skipped", lineno, host_a, host_b)
            continue
        try:
            graph.connect(device_a, port_a, device_b, port_b)
        except NetlabError as e:
            logger.warning("Line %d: cable skipped: %s", lineno, e.message)

    for lineno, fields in sections["VLANS"]:
        if len(fields) < 2:
            _too_short(lineno, "VLANS", 2)
            continue
        try:
            session.vlans.add(_int(fields[0], lineno), fields[1])
        except SaveFileError:
            raise
        except NetlabError as e:
            raise SaveFileError(f"Line {lineno}: {e.message}", {"line": lineno}) from e

    nodes: list[Network] = []
    for lineno, fields in sections["SUBNETS"]:
        if len(fields) < MIN_SUBNET_FIELDS:
            _too_short(lineno, "SUBNETS", MIN_SUBNET_FIELDS)
            continue
        nodes.append(_subnet_from_row(session, devices, lineno, fields))
    try:
        session.forest = SubnetForest.from_records(
            nodes,
            reject_assigned_split=session.forest.reject_assigned_split,
            max_children=session.forest.max_children,
        )
    except NetlabError as e:
        raise SaveFileError(f"Inconsistent subnet hierarchy: {e.message}", e.details) from e

    for lineno, fields in sections["DEVICE_CONFIGS"]:
        if len(fields) < 8:
            _too_short(lineno, "DEVICE_CONFIGS", 8)
            continue
        device_id = _device_for(devices, _int(fields[0], lineno), lineno)
        if device_id is None:
            continue
        mgmt = graph.device(device_id).management
        mgmt.enable_secret = fields[1]
        mgmt.vty_password = fields[2]
        mgmt.ssh_username = fields[3]
        mgmt.ssh_password = fields[4]
        mgmt.management_svi_ip = fields[5]
        mgmt.enable_telnet = fields[6].strip() == "1"
        mgmt.allowed_telnet_ip = "" if fields[7] == NO_ALLOWED_IP else fields[7]

    for lineno, fields in sections["INTERFACE_CONFIGS"]:
        if len(fields) < 4:
            _too_short(lineno, "INTERFACE_CONFIGS", 4)
            continue
        device_id = _device_for(devices, _int(fields[0], lineno), lineno)
        if device_id is None:
            continue
        device = graph.device(device_id)
        vlan_id = _int(fields[2], lineno)
        if isinstance(device, Router):
            if len(fields) < 6:
                _too_short(lineno, "INTERFACE_CONFIGS", 6)
                continue
            name = fields[1]
            _, _, suffix = name.partition(".")
            sub_id = int(suffix) if suffix.isdigit() else vlan_id
            device.configure_roas(sub_id, vlan_id, fields[4], fields[5], interface_name=name)
        else:
            try:
                port = device.add_port(fields[1])
            except ValidationError as e:
                raise _invalid_row(lineno, e) from e
            port.vlan_id = max(vlan_id, 1)
            port.is_trunk = fields[3].strip() == "1"

    for lineno, fields in sections["STATIC_ROUTES"]:
        if len(fields) < 4:
            _too_short(lineno, "STATIC_ROUTES", 4)
            continue
        device_id = _device_for(devices, _int(fields[0], lineno), lineno)
        if device_id is None:
            continue
        try:
            session.add_static_route(device_id, fields[1], fields[2], fields[3])
        except NetlabError as e:
            logger.warning("Line %d: route skipped: %s", lineno, e.message)

    logger.info("Loaded %s", session.summary())
    if target is None:
        return session
    target.graph = session.graph
    target.forest = session.forest
    target.vlans = session.vlans
    target.static_routes = session.static_routes
    return target


def _invalid_row(lineno: int, error: ValidationError) -> SaveFileError:
    problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors())
    return SaveFileError(f"Line {lineno}: invalid value ({problems})", {"line": lineno})


def _device_for(devices: dict[int, int], index: int, lineno: int) -> int | None:
    device_id = devices.get(index)
    if device_id is None:
        logger.warning("Line %d: no device with index %d, skipped", lineno, index)
    return device_id


def _subnet_from_row(
    session: LabSession,
    devices: dict[int, int],
    lineno: int,
    fields: list[str],
) -> Network:
    try:
        address = addressing.parse(fields[1])
    except NetlabError as e:
        raise SaveFileError(f"Line {lineno}: {e.message}", {"line": lineno, **e.details}) from e

    interface = fields[6]
    try:
        node = Network(
            id=_int(fields[0], lineno),
            address=address,
            prefix_length=_int(fields[2], lineno),
            parent_id=_int(fields[3], lineno),
            name=fields[4],
            assigned_interface=interface,
        )
    except ValidationError as e:
        raise _invalid_row(lineno, e) from e

    host = owner_from_label(fields[5], interface)
    if host is not None:
        owner_id = session.graph.find_device(host)
        if owner_id is None:
            logger.warning("Line %d: owner %s of %s not found, left free", lineno, host, node.cidr)
            node.assigned_interface = ""
        else:
            node.assignment = Assignment.assigned_to(owner_id)

    if len(fields) >= 8:
        node.associated_vlan_id = _int(fields[7], lineno)
    if len(fields) >= DHCP_SUBNET_FIELDS:
        node.dhcp_enabled = fields[8].strip() == "1"
        node.dhcp_upper_half_only = fields[9].strip() == "1"
        server = _int(fields[10], lineno)
        if server != LOCAL_SERVER:
            node.dhcp_server_id = devices.get(server)
            if node.dhcp_server_id is None:
                logger.warning("Line %d: DHCP server index %d unknown, using local", lineno, server)
        helper = fields[11].strip()
        node.dhcp_helper_address = "" if helper == NO_HELPER else helper
    return node


class SaveFile:
    """Reads and writes lab sessions at one path.

    Example:
        store = SaveFile(Path("network_save.dat"))
        store.save(session)
        restored = store.load()
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @classmethod
    def from_settings(cls, settings: NetlabSettings) -> "SaveFile":
        return cls(settings.save_file)

    def save(self, session: LabSession) -> None:
        """Write the session to disk.

        Raises:
            SaveFileError: If the session cannot be encoded or written
        """
        text = dumps(session)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                f.write(text)
        except OSError as e:
            raise SaveFileError(f"Cannot write save file: {e}", {"path": str(self.path)}) from e
        logger.info("Saved lab to %s", self.path)

    def load(self, session: LabSession | None = None) -> LabSession:
        """Read the session from disk.

        Raises:
            SaveFileError: If the file is missing, unreadable or malformed
        """
        if not self.path.exists():
            raise SaveFileError(f"Save file not found: {self.path}", {"path": str(self.path)})
        try:
            with open(self.path) as f:
                text = f.read()
        except OSError as e:
            raise SaveFileError(f"Cannot read save file: {e}", {"path": str(self.path)}) from e
        return loads(text, session)
