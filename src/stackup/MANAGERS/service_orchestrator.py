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
Orchestration for multiple services: concurrent bring-up in dependency order,
teardown, and status.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, FIRST_EXCEPTION, wait
from typing import Dict, Iterable, List, Optional

from ..errors import ServiceStartError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..RUNNERS.container_command import ContainerCommandBuilder
from ..RUNNERS.container_engine import ContainerEngine, Executor
from ..RUNNERS.dependency_resolver import DependencyResolver
from .container_manager import ContainerManager
from .health_monitor import HealthChecker
from .network_manager import NetworkManager
from .process_manager import ProcessManager
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

MODES = ("container", "native")


class ServiceOrchestrator:
    """
    Orchestrates multiple services based on their dependencies.

    A service's start is issued only after every dependency's start was
    issued and its depends_on condition holds. Services with no such
    relation between them start concurrently.
    """
    def __init__(self,
                 config: OrchestrationConfig,
                 mode: str = "container",
                 dry_run: bool = False,
                 readiness_timeout: float = 60.0,
                 max_workers: Optional[int] = None,
                 executor: Optional[Executor] = None,
                 docker_bin: str = "docker"):
        """
        Initializes the orchestrator.

        :param config: Configuration for all services.
        :param mode: 'container' to use the engine CLI, 'native' for host processes.
        :param dry_run: Log what would be done without doing it.
        :param readiness_timeout: Seconds to wait for a dependency condition.
        :param max_workers: Upper bound on concurrent starts.
        :param executor: Runs engine commands; defaults to subprocess.
        :param docker_bin: Engine executable.
        """
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode!r}, expected one of {', '.join(MODES)}")
        self.config = config
        self.mode = mode
        self.dry_run = dry_run
        self.max_workers = max_workers
        self.resolver = DependencyResolver()
        self.network_manager = NetworkManager()
        self.health_checker = HealthChecker(timeout=readiness_timeout)
        self.builder = ContainerCommandBuilder(config, docker_bin=docker_bin)
        self.engine = ContainerEngine(executor, dry_run=dry_run)
        self.managers: Dict[str, ServiceManager] = {}

        for name, svc_def in config.services.items():
            self.network_manager.claim_ports(svc_def)
            if mode == "container":
                self.managers[name] = ContainerManager(svc_def, config, self.engine, self.builder)
            else:
                self.managers[name] = ProcessManager(svc_def, config, dry_run=dry_run)

        self.start_log: List[str] = []
        self._started: List[str] = []
        self._lock = threading.Lock()
        self._abort = threading.Event()
        self._failure: Optional[Exception] = None

    def build(self, services: Optional[Iterable[str]] = None):
        """
        Builds images for services declared with build instructions.
        """
        for name in self.resolver.resolve_order(self.config, services):
            self.managers[name].build()

    def up(self, services: Optional[Iterable[str]] = None, build: bool = True) -> List[str]:
        """
        Starts services in dependency order.

        :param services: Only these services and their dependencies.
        :param build: Build images before starting (container mode).
        :return: The resolved start order.
        :raises StackupError: On the first failure; services already started
            by this call are stopped again before it propagates.
        """
        order = self.resolver.resolve_order(self.config, services)
        logger.info("Starting services in order: %s", ", ".join(order))

        if not self.dry_run:
            self.network_manager.check_available(order)

        if self.mode == "container":
            if build:
                for name in order:
                    self.managers[name].build()
            self.engine.run(self.builder.network_create_command(), check=False)

        discovery_env = self.network_manager.get_service_discovery_env(list(self.config.services))
        self._start_all(order, discovery_env)
        return order

    def _start_all(self, order: List[str], discovery_env: Dict[str, str]):
        self.start_log = []
        self._started = []
        self._abort.clear()
        self._failure = None

        futures: Dict[str, Future] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers or max(len(order), 1),
                                thread_name_prefix="stackup-start") as pool:
            # Submitted in topological order, so every dependency already has a future.
            for name in order:
                futures[name] = pool.submit(self._start_one, name, futures, discovery_env)
            wait(futures.values(), return_when=FIRST_EXCEPTION)
            if self._abort.is_set():
                for future in futures.values():
                    future.cancel()

        if self._failure is not None:
            logger.error("Bring-up failed: %s", self._failure)
            self._rollback()
            raise self._failure

    def _start_one(self, name: str, futures: Dict[str, Future], discovery_env: Dict[str, str]):
        try:
            svc = self.config.services[name]
            for dep in svc.depends_on:
                if dep.name not in futures:
                    continue
                futures[dep.name].result()
                if not self.dry_run:
                    self.health_checker.wait_for(self.managers[dep.name], dep.condition, self._abort)

            if self._abort.is_set():
                raise ServiceStartError(name, "bring-up aborted")
            with self._lock:
                self.start_log.append(name)
            logger.info("Starting service: %s", name)
            self.managers[name].start(extra_env=discovery_env)
            with self._lock:
                self._started.append(name)
        except Exception as e:
            with self._lock:
                if self._failure is None:
                    self._failure = e
            self._abort.set()
            raise

    def _rollback(self):
        for name in reversed(self._started):
            try:
                self.managers[name].stop()
            except Exception:
                logger.exception("Failed to stop %s during rollback", name)

    def down(self, services: Optional[Iterable[str]] = None):
        """
        Stops services in reverse dependency order.

        :param services: Only these services; all of them when omitted.
        """
        selected = set(services) if services else set(self.config.services)
        for name in self.resolver.shutdown_order(self.config):
            if name in selected:
                logger.info("Stopping service: %s", name)
                self.managers[name].stop()
        if self.mode == "container" and not services:
            self.engine.run(self.builder.network_remove_command(), check=False)

    def ps(self) -> Dict[str, str]:
        """
        Returns the status of all services.

        :return: Service names and their statuses.
        """
        return {name: manager.status() for name, manager in self.managers.items()}
