import os
import shutil
import subprocess
import threading

import pytest

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture
def example_project(tmp_path):
    """A copy of the db / adminer / backend example project."""
    target = tmp_path / "example"
    shutil.copytree(os.path.join(FIXTURES, "example"), target)
    return target


class FakeExecutor:
    """
    Stands in for the docker CLI. Records every command, the content and
    permissions of every ``--env-file``, and answers ``inspect`` with canned
    output.
    """

    def __init__(self, state="running 0", health="healthy", fail_on=None):
        self.commands = []
        self.envs = []
        self.env_files = {}
        self.state = state
        self.health = health
        self.fail_on = fail_on or (lambda command: False)
        self._lock = threading.Lock()

    def __call__(self, command, env):
        with self._lock:
            self.commands.append(list(command))
            self.envs.append(dict(env))
            if "--env-file" in command:
                path = command[command.index("--env-file") + 1]
                with open(path, encoding="utf-8") as f:
                    self.env_files[path] = (f.read().splitlines(), os.stat(path).st_mode & 0o777)
        if self.fail_on(command):
            return subprocess.CompletedProcess(command, 1, "", "engine said no")
        if command[1] == "inspect":
            if "Health" in command[3]:
                out = self.health() if callable(self.health) else self.health
            else:
                out = self.state
            return subprocess.CompletedProcess(command, 0, out + "\n", "")
        return subprocess.CompletedProcess(command, 0, "", "")

    def runs(self):
        """Container names passed to ``docker run``, in call order."""
        return [c[c.index("--name") + 1] for c in self.commands if c[1] == "run"]


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def make_executor():
    return FakeExecutor


@pytest.fixture
def ports_free(monkeypatch):
    """Skip the host port availability check."""
    from stackup.MANAGERS.network_manager import NetworkManager
    monkeypatch.setattr(NetworkManager, "check_available", lambda self, names=None: None)
