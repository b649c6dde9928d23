"""
Unit tests for engine command lines.
"""
import os

from stackup.MODELS.service_definition import HealthCheck
from stackup.PARSERS.compose_parser import ComposeParser
from stackup.RUNNERS.container_command import ContainerCommandBuilder


def load_example(example_project):
    return ComposeParser(context={}).parse(str(example_project / "docker-compose.yaml"))


def test_run_command_for_backend(example_project):
    config = load_example(example_project)
    builder = ContainerCommandBuilder(config)
    cmd = builder.run_command(config.services['backend'], '/tmp/backend.env')

    assert cmd[:3] == ['docker', 'run', '-d']
    assert cmd[cmd.index('--name') + 1] == 'example-backend-1'
    assert cmd[cmd.index('--network') + 1] == 'example_default'
    assert cmd[cmd.index('--network-alias') + 1] == 'backend'
    assert cmd[cmd.index('-p') + 1] == '8000:8000'
    assert cmd[cmd.index('-v') + 1] == f"{example_project}:/usr/src/app:z"
    assert cmd[cmd.index('--env-file') + 1] == '/tmp/backend.env'
    assert not any('s3cret' in part for part in cmd)
    assert cmd[-1] == 'example-backend'


def test_run_command_for_image_service(example_project):
    config = load_example(example_project)
    cmd = ContainerCommandBuilder(config).run_command(config.services['db'])
    assert cmd[-1] == 'postgres:12.13-alpine'
    assert '--env-file' not in cmd


def test_build_command(example_project):
    config = load_example(example_project)
    cmd = ContainerCommandBuilder(config).build_command(config.services['backend'])
    assert cmd == ['docker', 'build', '-t', 'example-backend',
                   '-f', os.path.join(str(example_project), 'devel.Dockerfile'),
                   str(example_project)]


def test_entrypoint_and_health_flags(example_project):
    config = load_example(example_project)
    svc = config.services['db'].model_copy(update={
        'entrypoint': ['docker-entrypoint.sh', '-v'],
        'command': ['postgres'],
        'health_check': HealthCheck(test=['CMD', 'pg_isready', '-U', 'app'], interval=2, retries=5),
        'container_name': 'pg',
    })
    cmd = ContainerCommandBuilder(config, docker_bin='podman').run_command(svc)
    assert cmd[0] == 'podman'
    assert cmd[cmd.index('--name') + 1] == 'pg'
    assert cmd[cmd.index('--entrypoint') + 1] == 'docker-entrypoint.sh'
    assert cmd[cmd.index('--health-cmd') + 1] == 'pg_isready -U app'
    assert cmd[cmd.index('--health-interval') + 1] == '2s'
    assert cmd[cmd.index('--health-retries') + 1] == '5'
    assert cmd[-3:] == ['postgres:12.13-alpine', '-v', 'postgres']


def test_named_volume_is_project_scoped(example_project):
    config = ComposeParser(context={}).parse_from_string(
        "services:\n  db:\n    image: postgres\n    volumes:\n      - pgdata:/var/lib/postgresql/data:ro\n"
        "volumes:\n  pgdata:\n",
        project_dir=str(example_project), project_name='shop')
    cmd = ContainerCommandBuilder(config).run_command(config.services['db'])
    assert cmd[cmd.index('-v') + 1] == 'shop_pgdata:/var/lib/postgresql/data:ro'
