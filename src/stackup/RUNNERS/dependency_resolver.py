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
Dependency resolution for services to determine startup and shutdown order.
"""
import heapq
from typing import Iterable, List, Optional, Set, Tuple

from ..errors import ConfigurationError, DanglingDependencyError, DependencyCycleError
from ..MODELS.orchestration_config import OrchestrationConfig


class DependencyResolver:
    """
    Resolves the startup and shutdown order of services based on their dependencies.
    """
    def find_dangling(self, config: OrchestrationConfig) -> List[Tuple[str, str]]:
        """
        Lists (service, dependency) pairs whose dependency is not declared.
        """
        return [
            (name, dep)
            for name, svc in config.services.items()
            for dep in svc.dependency_names
            if dep not in config.services
        ]

    def find_cycle(self, config: OrchestrationConfig) -> Optional[List[str]]:
        """
        Finds one dependency cycle, returned as a closed path (first == last).

        :param config: The orchestration configuration.
        :return: The cycle, or None if the graph is acyclic.
        """
        services = config.services
        visited: Set[str] = set()
        path: List[str] = []
        on_path: Set[str] = set()

        def visit(name: str) -> Optional[List[str]]:
            """
            Depth-first walk; a dependency already on the current path closes a cycle.
            """
            if name in on_path:
                return path[path.index(name):] + [name]
            if name in visited or name not in services:
                return None
            on_path.add(name)
            path.append(name)
            for dep in services[name].dependency_names:
                cycle = visit(dep)
                if cycle:
                    return cycle
            path.pop()
            on_path.remove(name)
            visited.add(name)
            return None

        for name in services:
            cycle = visit(name)
            if cycle:
                return cycle
        return None

    def select(self, config: OrchestrationConfig, services: Optional[Iterable[str]] = None) -> Set[str]:
        """
        The requested services plus everything they transitively depend on.
        All services when nothing is requested.
        """
        if not services:
            return set(config.services)
        selected: Set[str] = set()
        pending = list(services)
        while pending:
            name = pending.pop()
            if name in selected:
                continue
            if name not in config.services:
                raise ConfigurationError(f"No such service: {name}")
            selected.add(name)
            pending.extend(config.services[name].dependency_names)
        return selected

    def resolve_order(self, config: OrchestrationConfig, services: Optional[Iterable[str]] = None) -> List[str]:
        """
        Determines the order to start services using a topological sort.
        Services whose dependencies are satisfied at the same time keep
        their declaration order.

        :param config: The orchestration configuration.
        :param services: Restrict to these services and their dependencies.
        :return: Service names in the order they should be started.
        :raises DanglingDependencyError: If a dependency is not declared.
        :raises DependencyCycleError: If a circular dependency is detected.
        """
        dangling = self.find_dangling(config)
        if dangling:
            raise ConfigurationError.from_problems([DanglingDependencyError(s, d) for s, d in dangling])
        cycle = self.find_cycle(config)
        if cycle:
            raise DependencyCycleError(cycle)

        selected = self.select(config, services)
        index = config.declaration_index()
        remaining = {
            name: set(config.services[name].dependency_names) & selected
            for name in selected
        }
        dependents = {name: [] for name in selected}
        for name, deps in remaining.items():
            for dep in deps:
                dependents[dep].append(name)

        ready = [(index[name], name) for name, deps in remaining.items() if not deps]
        heapq.heapify(ready)
        ordered = []
        while ready:
            _, name = heapq.heappop(ready)
            ordered.append(name)
            for dependent in dependents[name]:
                remaining[dependent].discard(name)
                if not remaining[dependent]:
                    heapq.heappush(ready, (index[dependent], dependent))
        return ordered

    def shutdown_order(self, config: OrchestrationConfig, services: Optional[Iterable[str]] = None) -> List[str]:
        """
        Reverse of the startup order: dependents stop before their dependencies.
        """
        return list(reversed(self.resolve_order(config, services)))
