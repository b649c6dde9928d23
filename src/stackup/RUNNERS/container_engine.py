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
Execution of container engine CLI commands, with a dry-run mode that only logs them.
"""
import logging
import os
import subprocess
from typing import Callable, Dict, List, Optional

from ..errors import EngineError

logger = logging.getLogger(__name__)

Executor = Callable[[List[str], Dict[str, str]], subprocess.CompletedProcess]


def run_subprocess(command: List[str], env: Dict[str, str]) -> subprocess.CompletedProcess:
    """
    Default executor: runs the command and captures its output.
    """
    return subprocess.run(command, env=env, capture_output=True, text=True, shell=False)


class ContainerEngine:
    """
    Runs engine commands such as ``docker run`` through an executor.
    """
    def __init__(self, executor: Optional[Executor] = None, dry_run: bool = False):
        """
        :param executor: Callable taking (argv, env) and returning a CompletedProcess.
        :param dry_run: Log commands instead of executing them.
        """
        self.executor = executor or run_subprocess
        self.dry_run = dry_run
        self.history: List[List[str]] = []

    def run(self, command: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """
        Runs one engine command with the host environment.

        :param command: Full argv, engine binary first.
        :param check: Raise EngineError on a non-zero exit status.
        :return: The completed process.
        """
        self.history.append(list(command))
        if self.dry_run:
            logger.info("[dry-run] %s", " ".join(command))
            return subprocess.CompletedProcess(command, 0, "", "")

        logger.debug("Running: %s", " ".join(command))
        try:
            result = self.executor(command, os.environ.copy())
        except FileNotFoundError as e:
            raise EngineError(command, 127, f"{command[0]}: command not found") from e
        if check and result.returncode != 0:
            raise EngineError(command, result.returncode, result.stderr or "")
        return result
