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
Exception hierarchy shared by the loader, resolver and orchestrator.
"""
from typing import List, Optional, Sequence


class StackupError(Exception):
    """Base class for every error raised by stackup."""


class ConfigurationError(StackupError):
    """
    The descriptor cannot be brought up as declared.

    Raised before any service is started. When several problems are found at
    once, ``problems`` holds each of them.
    """

    def __init__(self, message: str, problems: Optional[Sequence["ConfigurationError"]] = None):
        super().__init__(message)
        self.problems: List[ConfigurationError] = list(problems) if problems else [self]

    @classmethod
    def from_problems(cls, problems: Sequence["ConfigurationError"]) -> "ConfigurationError":
        """Combine several problems into a single error."""
        if len(problems) == 1:
            return problems[0]
        lines = "\n".join(f"  - {p}" for p in problems)
        return cls(f"{len(problems)} configuration problems found:\n{lines}", problems)


class DanglingDependencyError(ConfigurationError):
    """A service depends on a name that is not declared."""

    def __init__(self, service: str, dependency: str):
        super().__init__(f"Service '{service}' depends on undefined service '{dependency}'")
        self.service = service
        self.dependency = dependency


class DependencyCycleError(ConfigurationError):
    """The depends_on relation contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")
        self.cycle = list(cycle)


class PortConflictError(ConfigurationError):
    """Two services publish the same host port."""

    def __init__(self, port: int, protocol: str, services: Sequence[str]):
        super().__init__(
            f"Host port {port}/{protocol} is published by more than one service: {', '.join(services)}"
        )
        self.port = port
        self.protocol = protocol
        self.services = list(services)


class MissingFileError(ConfigurationError):
    """A file referenced by a service does not exist."""

    def __init__(self, service: str, kind: str, path: str):
        super().__init__(f"Service '{service}': {kind} not found: {path}")
        self.service = service
        self.kind = kind
        self.path = path


class PortUnavailableError(StackupError):
    """A host port claimed by a service is already bound on this host."""

    def __init__(self, port: int, service: str):
        super().__init__(f"Port {port} is already in use, cannot start service {service}")
        self.port = port
        self.service = service


class ServiceStartError(StackupError):
    """The engine refused to start a service."""

    def __init__(self, service: str, reason: str):
        super().__init__(f"Failed to start service '{service}': {reason}")
        self.service = service
        self.reason = reason


class ReadinessTimeoutError(StackupError):
    """A dependency did not reach its required condition in time."""

    def __init__(self, service: str, condition: str, timeout: float):
        super().__init__(
            f"Service '{service}' did not reach condition '{condition}' within {timeout:.0f}s"
        )
        self.service = service
        self.condition = condition
        self.timeout = timeout


class EngineError(StackupError):
    """A container engine command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"Command '{' '.join(command[:3])} ...' failed: {detail}")
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
