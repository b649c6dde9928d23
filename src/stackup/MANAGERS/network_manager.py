# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Network management for services, handling host port claims and service discovery.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import PortConflictError, PortUnavailableError
from ..MODELS.service_definition import PortMapping, ServiceDefinition
from ..UTILS.port_finder import is_port_free

WILDCARD_IPS = (None, "", "0.0.0.0", "::")


def _ips_overlap(a: Optional[str], b: Optional[str]) -> bool:
    return a in WILDCARD_IPS or b in WILDCARD_IPS or a == b


class NetworkManager:
    """
    Manages host port ownership and service discovery variables.
    """
    def __init__(self):
        """
        Initializes the network manager.
        """
        self.service_ports: Dict[str, List[PortMapping]] = {}  # service_name -> claimed mappings
        self.host_port_to_service: Dict[Tuple[str, int], List[Tuple[Optional[str], str]]] = {}  # (protocol, port) -> [(host_ip, service)]

    def claim_ports(self, service_def: ServiceDefinition) -> List[PortMapping]:
        """
        Records the host ports a service publishes.

        :param service_def: The service definition.
        :return: The mappings that claim a host port.
        :raises PortConflictError: If another claim overlaps.
        """
        claimed = []
        for mapping in service_def.ports:
            if self._claim(service_def.name, mapping):
                claimed.append(mapping)
        self.service_ports[service_def.name] = claimed
        return claimed

    def _claim(self, service_name: str, mapping: PortMapping) -> bool:
        # 0 or missing host port means the engine picks one
        if not mapping.host_port:
            return False
        key = (mapping.protocol, mapping.host_port)
        owners = self.host_port_to_service.setdefault(key, [])
        for host_ip, owner in owners:
            if _ips_overlap(host_ip, mapping.host_ip):
                raise PortConflictError(mapping.host_port, mapping.protocol,
                                        sorted({owner, service_name}))
        owners.append((mapping.host_ip, service_name))
        return True

    @classmethod
    def find_conflicts(cls, services: Iterable[ServiceDefinition]) -> List[PortConflictError]:
        """
        Checks every published host port and collects all collisions.
        """
        manager = cls()
        conflicts = []
        for svc in services:
            for mapping in svc.ports:
                try:
                    manager._claim(svc.name, mapping)
                except PortConflictError as e:
                    conflicts.append(e)
        return conflicts

    def check_available(self, service_names: Optional[Iterable[str]] = None):
        """
        Verifies that claimed host ports are not already bound on this host.

        :raises PortUnavailableError: For the first port in use.
        """
        names = list(service_names) if service_names is not None else list(self.service_ports)
        for name in names:
            for mapping in self.service_ports.get(name, []):
                if not is_port_free(mapping.host_port, mapping.host_ip, mapping.protocol):
                    raise PortUnavailableError(mapping.host_port, name)

    def get_service_discovery_env(self, all_services: List[str]) -> Dict[str, str]:
        """
        Generates environment variables for service discovery.
        Example: DB_HOST=127.0.0.1, DB_PORT=5432
        """
        env = {}
        for name in all_services:
            prefix = name.upper().replace('-', '_').replace('.', '_')
            env[f"{prefix}_HOST"] = "127.0.0.1"
            ports = self.service_ports.get(name)
            if ports:
                env[f"{prefix}_PORT"] = str(ports[0].host_port)
        return env
