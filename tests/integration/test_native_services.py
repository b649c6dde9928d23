"""
Native mode: services run as host processes.
"""
import sys
import time

import pytest
import yaml

from stackup.errors import ServiceStartError
from stackup.MANAGERS.health_monitor import HealthChecker
from stackup.MANAGERS.service_orchestrator import ServiceOrchestrator
from stackup.PARSERS.descriptor_loader import DescriptorLoader


def write_compose(tmp_path, services):
    compose_file = tmp_path / "compose.yaml"
    with open(compose_file, 'w') as f:
        yaml.dump({'services': services}, f)
    return DescriptorLoader(context={}).load(str(compose_file))


def test_native_up_down(tmp_path):
    config = write_compose(tmp_path, {
        'migrate': {
            'image': 'python',
            'command': [sys.executable, '-c', "print('migrated')"],
        },
        'app': {
            'image': 'python',
            'command': [sys.executable, '-c',
                        "import os, time; print('app', os.environ['MIGRATE_HOST'], os.environ['MODE'], flush=True); time.sleep(30)"],
            'environment': {'MODE': 'prod'},
            'depends_on': {'migrate': {'condition': 'service_completed_successfully'}},
        },
    })
    orchestrator = ServiceOrchestrator(config, mode='native')
    orchestrator.health_checker = HealthChecker(timeout=20, poll_interval=0.05)

    orchestrator.up()
    assert orchestrator.start_log == ['migrate', 'app']

    status = orchestrator.ps()
    assert status['migrate'] == 'exited(0)'
    assert status['app'] == 'running'

    time.sleep(1)
    orchestrator.down()
    assert orchestrator.ps()['app'] != 'running'

    logs = tmp_path / ".stackup" / "logs"
    assert 'migrated' in (logs / "migrate.log").read_text()
    assert 'app 127.0.0.1 prod' in (logs / "app.log").read_text()


def test_native_failed_dependency_blocks_dependents(tmp_path):
    config = write_compose(tmp_path, {
        'migrate': {'image': 'python', 'command': [sys.executable, '-c', 'raise SystemExit(3)']},
        'app': {
            'image': 'python',
            'command': [sys.executable, '-c', 'import time; time.sleep(30)'],
            'depends_on': {'migrate': {'condition': 'service_completed_successfully'}},
        },
    })
    orchestrator = ServiceOrchestrator(config, mode='native')
    orchestrator.health_checker = HealthChecker(timeout=20, poll_interval=0.05)
    with pytest.raises(ServiceStartError, match='exited with code 3'):
        orchestrator.up()
    assert orchestrator.start_log == ['migrate']
    assert orchestrator.ps()['app'] == 'stopped'


def test_native_healthcheck(tmp_path):
    marker = tmp_path / "ready"
    config = write_compose(tmp_path, {
        'db': {
            'image': 'python',
            'command': [sys.executable, '-c',
                        f"import pathlib, time; time.sleep(0.3); pathlib.Path({str(marker)!r}).touch(); time.sleep(30)"],
            'healthcheck': {'test': ['CMD', sys.executable, '-c',
                                     f"import os, sys; sys.exit(0 if os.path.exists({str(marker)!r}) else 1)"],
                            'timeout': '5s'},
        },
        'web': {
            'image': 'python',
            'command': [sys.executable, '-c', 'import time; time.sleep(30)'],
            'depends_on': {'db': {'condition': 'service_healthy'}},
        },
    })
    orchestrator = ServiceOrchestrator(config, mode='native')
    orchestrator.health_checker = HealthChecker(timeout=20, poll_interval=0.05)
    try:
        orchestrator.up()
        assert marker.exists()
        assert orchestrator.ps() == {'db': 'running', 'web': 'running'}
    finally:
        orchestrator.down()


def test_native_service_without_command(tmp_path):
    config = write_compose(tmp_path, {'db': {'image': 'postgres'}})
    with pytest.raises(ServiceStartError, match='no entrypoint or command'):
        ServiceOrchestrator(config, mode='native').up()
