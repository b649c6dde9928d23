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
Unit tests for host port claims.
"""
import socket

import pytest

from stackup.errors import PortConflictError, PortUnavailableError
from stackup.MANAGERS.network_manager import NetworkManager
from stackup.MODELS.service_definition import PortMapping, ServiceDefinition


def service(name, *ports):
    return ServiceDefinition(name=name, image=name, ports=list(ports))


class TestNetworkManager:
    """Tests for NetworkManager."""

    def test_claim_ports(self):
        mgr = NetworkManager()
        claimed = mgr.claim_ports(service('db', PortMapping(host_port=5432, container_port=5432),
                                          PortMapping(container_port=9000)))
        assert [m.host_port for m in claimed] == [5432]

    def test_conflict_between_services(self):
        mgr = NetworkManager()
        mgr.claim_ports(service('adminer', PortMapping(host_port=8080, container_port=8080)))
        with pytest.raises(PortConflictError) as exc:
            mgr.claim_ports(service('web', PortMapping(host_port=8080, container_port=80)))
        assert exc.value.port == 8080
        assert exc.value.services == ['adminer', 'web']

    def test_different_protocol_or_ip_does_not_conflict(self):
        mgr = NetworkManager()
        mgr.claim_ports(service('dns', PortMapping(host_port=53, container_port=53, protocol='udp')))
        mgr.claim_ports(service('web', PortMapping(host_port=53, container_port=53)))
        mgr.claim_ports(service('a', PortMapping(host_ip='127.0.0.1', host_port=8000, container_port=80)))
        mgr.claim_ports(service('b', PortMapping(host_ip='127.0.0.2', host_port=8000, container_port=80)))

    def test_wildcard_ip_overlaps_specific_ip(self):
        mgr = NetworkManager()
        mgr.claim_ports(service('a', PortMapping(host_ip='127.0.0.1', host_port=8000, container_port=80)))
        with pytest.raises(PortConflictError):
            mgr.claim_ports(service('b', PortMapping(host_ip='0.0.0.0', host_port=8000, container_port=80)))

    def test_find_conflicts_collects_all(self):
        conflicts = NetworkManager.find_conflicts([
            service('a', PortMapping(host_port=1000, container_port=1), PortMapping(host_port=2000, container_port=2)),
            service('b', PortMapping(host_port=1000, container_port=1)),
            service('c', PortMapping(host_port=2000, container_port=2)),
        ])
        assert [(c.port, c.services) for c in conflicts] == [(1000, ['a', 'b']), (2000, ['a', 'c'])]

    def test_example_ports_are_unique(self):
        assert NetworkManager.find_conflicts([
            service('db', PortMapping(host_port=5432, container_port=5432)),
            service('adminer', PortMapping(host_port=8080, container_port=8080)),
            service('backend', PortMapping(host_port=8000, container_port=8000)),
        ]) == []

    def test_check_available_detects_bound_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('127.0.0.1', 0))
            s.listen(1)
            port = s.getsockname()[1]
            mgr = NetworkManager()
            mgr.claim_ports(service('web', PortMapping(host_ip='127.0.0.1', host_port=port, container_port=80)))
            with pytest.raises(PortUnavailableError):
                mgr.check_available()

    def test_get_service_discovery_env(self):
        mgr = NetworkManager()
        mgr.claim_ports(service('my-db', PortMapping(host_port=5433, container_port=5432)))
        env = mgr.get_service_discovery_env(['my-db', 'adminer'])
        assert env == {'MY_DB_HOST': '127.0.0.1', 'MY_DB_PORT': '5433', 'ADMINER_HOST': '127.0.0.1'}
