"""Lab loader from YAML to a LabSession.

Loads a lab description from YAML, validates it with Pydantic, and
builds the topology graph (and optionally an initial addressing plan).

Example lab file:
    devices:
      - {hostname: Router0, class: router}
      - {hostname: Switch0, class: switch}
      - {hostname: PC0, class: pc}
    links:
      - {a: Router0, a_port: Gig0/1, b: Switch0, b_port: Gig0/1}
      - {a: PC0, b: Switch0}          # ports picked automatically
    vlans:
      10: DATA
    addressing:
      base: 192.168.1.0/24
      hosts: 50
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from netlab.config import NetlabSettings
from netlab.errors import LabLoadError, LabValidationError, NetlabError
from netlab.model.topology import DeviceClass
from netlab.session import LabSession


class DeviceSpec(BaseModel):
    """A device entry in the lab file."""

    hostname: str = Field(..., min_length=1, description="Unique hostname")
    device_class: DeviceClass = Field(..., alias="class", description="router, switch or pc")

    model_config = {"populate_by_name": True}

    @field_validator("device_class", mode="before")
    @classmethod
    def normalize_class(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class LinkSpec(BaseModel):
    """A cable entry in the lab file."""

    a: str = Field(..., description="First device hostname")
    b: str = Field(..., description="Second device hostname")
    a_port: str | None = Field(default=None, description="Port on a (auto if omitted)")
    b_port: str | None = Field(default=None, description="Port on b (auto if omitted)")


class AddressingSpec(BaseModel):
    """Initial addressing plan."""

    base: str = Field(..., description="Base network, e.g. 192.168.1.0/24")
    hosts: int | None = Field(default=None, ge=1, description="Hosts per subnet")
    subnets: int | None = Field(default=None, ge=1, description="Number of subnets")

    @model_validator(mode="after")
    def one_requirement(self) -> "AddressingSpec":
        if (self.hosts is None) == (self.subnets is None):
            raise ValueError("addressing needs exactly one of 'hosts' or 'subnets'")
        return self


class LabFile(BaseModel):
    """Root model for a lab YAML file."""

    devices: list[DeviceSpec] = Field(..., min_length=1, description="Lab devices")
    links: list[LinkSpec] = Field(default_factory=list, description="Cables")
    vlans: dict[int, str] = Field(default_factory=dict, description="VLAN id -> name")
    addressing: AddressingSpec | None = Field(default=None, description="Initial plan")


class LabLoader:
    """Loads and validates lab descriptions from YAML files."""

    def __init__(self, settings: NetlabSettings | None = None) -> None:
        self.settings = settings

    def load(self, path: Path | str) -> LabSession:
        """Load a lab from a YAML file.

        Raises:
            LabLoadError: If the file cannot be read
            LabValidationError: If the lab data is invalid
        """
        path = Path(path)
        raw_data = self._load_yaml(path)
        lab_file = self._validate_lab_file(raw_data)
        return self.build(lab_file)

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        """Load raw YAML data from file."""
        if not path.exists():
            raise LabLoadError(f"Lab file not found: {path}", {"path": str(path)})

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise LabLoadError(f"Invalid YAML in lab file: {e}", {"path": str(path)}) from e
        except OSError as e:
            raise LabLoadError(f"Cannot read lab file: {e}", {"path": str(path)}) from e

        if not isinstance(data, dict):
            raise LabLoadError("Lab file must contain a YAML mapping", {"path": str(path)})

        return data

    def _validate_lab_file(self, data: dict[str, Any]) -> LabFile:
        """Validate raw data against the LabFile schema."""
        try:
            return LabFile.model_validate(data)
        except ValidationError as e:
            raise LabValidationError(
                f"Lab validation failed: {e.error_count()} errors",
                {"errors": e.errors()},
            ) from e

    def build(self, lab_file: LabFile) -> LabSession:
        """Build a session from validated lab data."""
        session = LabSession.from_settings(self.settings) if self.settings is not None else LabSession()
        graph = session.graph

        seen: set[str] = set()
        for entry in lab_file.devices:
            if entry.hostname in seen:
                raise LabValidationError(f"Duplicate device name: {entry.hostname}", {"device": entry.hostname})
            seen.add(entry.hostname)
            graph.add_device(entry.hostname, entry.device_class)

        for link in lab_file.links:
            for name in (link.a, link.b):
                if name not in seen:
                    raise LabValidationError(f"Link references unknown device: {name}", {"device": name})
            device_a = graph.find_device(link.a)
            device_b = graph.find_device(link.b)
            port_a = link.a_port or graph.auto_port(device_a)
            port_b = link.b_port or graph.auto_port(device_b)
            if port_a is None or port_b is None:
                raise LabValidationError(
                    f"No free port for link {link.a} <--> {link.b}",
                    {"a": link.a, "b": link.b},
                )
            try:
                graph.connect(device_a, port_a, device_b, port_b)
            except NetlabError as e:
                raise LabValidationError(e.message, e.details) from e

        for vlan_id, name in lab_file.vlans.items():
            try:
                session.vlans.add(vlan_id, name)
            except NetlabError as e:
                raise LabValidationError(e.message, e.details) from e

        if lab_file.addressing is not None:
            plan = lab_file.addressing
            try:
                session.forest.plan(plan.base, hosts=plan.hosts, subnets=plan.subnets)
            except NetlabError as e:
                raise LabValidationError(e.message, e.details) from e

        return session


def load_lab(path: Path | str, settings: NetlabSettings | None = None) -> LabSession:
    """Convenience function to load a lab file."""
    return LabLoader(settings).load(path)
