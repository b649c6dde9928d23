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
Log aggregation and tailing for native services.
"""
import os
import time
from typing import Callable, Dict, List, TextIO

import click


class LogAggregator:
    """
    Aggregates and tails logs from multiple service log files.
    """
    def __init__(self, log_dir: str, echo: Callable[[str], None] = click.echo):
        """
        Initializes the log aggregator.

        :param log_dir: The directory where log files are stored.
        :param echo: Output function for prefixed lines.
        """
        self.log_dir = log_dir
        self.echo = echo

    def log_path(self, name: str) -> str:
        return os.path.join(self.log_dir, f"{name}.log")

    def _emit(self, name: str, width: int, line: str):
        self.echo(f"{name:{width}} | {line.rstrip()}")

    def show_logs(self, service_names: List[str]):
        """
        Prints everything logged so far, service by service.
        """
        width = max((len(n) for n in service_names), default=0)
        for name in service_names:
            path = self.log_path(name)
            if not os.path.exists(path):
                continue
            with open(path, 'r') as f:
                for line in f:
                    self._emit(name, width, line)

    def tail_logs(self, service_names: List[str], poll_interval: float = 0.1):
        """
        Follows the logs of the specified services until interrupted.

        :param service_names: Names of the services to tail.
        """
        width = max((len(n) for n in service_names), default=0)
        files: Dict[str, TextIO] = {}
        try:
            while True:
                for name in service_names:
                    if name not in files:
                        path = self.log_path(name)
                        if os.path.exists(path):
                            f = open(path, 'r')
                            f.seek(0, os.SEEK_END)
                            files[name] = f

                    if name in files:
                        line = files[name].readline()
                        while line:
                            self._emit(name, width, line)
                            line = files[name].readline()

                time.sleep(poll_interval)
        except KeyboardInterrupt:
            pass
        finally:
            for f in files.values():
                f.close()
