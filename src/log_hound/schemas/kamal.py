"""Kamal deploy file schema.

Only the parts of ``config/deploy.yml`` needed to reach the running
containers are modelled: the service name, the servers and the SSH user.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import pydantic
import yaml
from pydantic import BaseModel, Field

from log_hound.core.exceptions import ConfigError


DEFAULT_DEPLOY_FILE = "config/deploy.yml"
BASE_DEPLOY_FILENAME = "deploy.yml"
PRIMARY_ROLE = "web"


class KamalRole(BaseModel):
    """Kamal 1.x role with options; only the hosts matter here"""
    hosts: List[str] = Field(default_factory=list)


class KamalSSH(BaseModel):
    user: Optional[str] = None


class KamalDeployFile(BaseModel):
    """
    Raw deploy file. Every field is optional so a destination file can
    override only part of the base file.

    ``servers`` is one of:
      - a plain list of hosts
      - a Kamal 2.x role map: ``{web: [host, ...], job: [...]}``
      - a Kamal 1.x role map: ``{web: {hosts: [...], cmd: ...}, ...}``
    """
    service: Optional[str] = None
    servers: Optional[Union[List[str], Dict[str, Union[List[str], KamalRole]]]] = None
    ssh: Optional[KamalSSH] = None

    def merged_over(self, base: "KamalDeployFile") -> "KamalDeployFile":
        """Return this file's values with gaps filled from ``base``."""
        return KamalDeployFile(
            service=self.service if self.service is not None else base.service,
            servers=self.servers if self.servers is not None else base.servers,
            ssh=self.ssh if self.ssh is not None else base.ssh,
        )


def _role_hosts(role: Union[List[str], KamalRole]) -> List[str]:
    if isinstance(role, KamalRole):
        return list(role.hosts)
    return list(role)


def flatten_servers(servers) -> List[str]:
    """Flatten a servers section, ``web`` role first, duplicates removed."""
    if isinstance(servers, dict):
        hosts: List[str] = []
        if PRIMARY_ROLE in servers:
            hosts.extend(_role_hosts(servers[PRIMARY_ROLE]))
        for role, value in servers.items():
            if role != PRIMARY_ROLE:
                hosts.extend(_role_hosts(value))
    else:
        hosts = list(servers)

    seen = set()
    unique = []
    for host in hosts:
        if host not in seen:
            seen.add(host)
            unique.append(host)
    return unique


def _read_deploy_file(path: Path) -> KamalDeployFile:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Failed to read Kamal config: {e}", path=str(path))
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse Kamal YAML: {e}", path=str(path))
    return _validate(data, str(path))


def _validate(data, source: Optional[str] = None) -> KamalDeployFile:
    if not isinstance(data, dict):
        raise ConfigError("Kamal config must be a mapping", path=source)
    try:
        return KamalDeployFile.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid Kamal config: {e}", path=source)


@dataclass(frozen=True)
class KamalConfig:
    """Resolved deployment: which service runs on which servers."""
    service: str
    servers: List[str]
    ssh_user: str = "root"
    destination: Optional[str] = None

    @property
    def container_filter(self) -> str:
        # Kamal names containers {service}-{role}-{version}
        return self.service

    @classmethod
    def from_deploy_file(
        cls,
        raw: KamalDeployFile,
        destination: Optional[str] = None,
        source: Optional[str] = None
    ) -> "KamalConfig":
        if not raw.service:
            raise ConfigError("Missing 'service' in Kamal config", path=source)
        if raw.servers is None:
            raise ConfigError("Missing 'servers' in Kamal config", path=source)

        servers = flatten_servers(raw.servers)
        if not servers:
            raise ConfigError("No servers found in Kamal config", path=source)

        ssh_user = (raw.ssh.user if raw.ssh else None) or "root"
        return cls(
            service=raw.service,
            servers=servers,
            ssh_user=ssh_user,
            destination=destination,
        )

    @classmethod
    def load(cls, path: Union[str, Path] = DEFAULT_DEPLOY_FILE) -> "KamalConfig":
        """
        Load a deploy file.

        ``deploy.<destination>.yml`` is merged over a sibling ``deploy.yml``
        when one exists; destination values win field by field.
        """
        path = Path(path)
        raw = _read_deploy_file(path)

        destination = None
        name = path.name
        if name != BASE_DEPLOY_FILENAME and name.startswith("deploy.") and name.endswith(".yml"):
            destination = name[len("deploy."):-len(".yml")] or None
            base_path = path.parent / BASE_DEPLOY_FILENAME
            if destination and base_path.exists():
                raw = raw.merged_over(_read_deploy_file(base_path))

        return cls.from_deploy_file(raw, destination=destination, source=str(path))
