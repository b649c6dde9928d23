import pytest
import yaml

from stackup.errors import ConfigurationError
from stackup.MODELS.service_definition import DependencyCondition
from stackup.PARSERS.compose_parser import ComposeParser, normalize_project_name


def test_parse_example(example_project):
    parser = ComposeParser(context={})
    config = parser.parse(str(example_project / "docker-compose.yaml"))

    assert list(config.services) == ['db', 'adminer', 'backend']
    assert config.project_name == 'example'
    assert config.project_dir == str(example_project)

    db = config.services['db']
    assert db.image == 'postgres:12.13-alpine'
    assert db.build is None
    assert [(p.host_port, p.container_port) for p in db.ports] == [(5432, 5432)]
    assert [f.path for f in db.env_files] == ['.env']
    assert db.depends_on == []

    adminer = config.services['adminer']
    assert adminer.image == 'adminer:latest'
    assert adminer.dependency_names == ['db']
    assert adminer.env_files == []

    backend = config.services['backend']
    assert backend.image is None
    assert backend.build.context == '.'
    assert backend.build.dockerfile == './devel.Dockerfile'
    assert [(p.host_port, p.container_port) for p in backend.ports] == [(8000, 8000)]
    assert backend.volumes[0].source == './'
    assert backend.volumes[0].target == '/usr/src/app'
    assert backend.volumes[0].mode == 'z'
    assert backend.volumes[0].selinux_relabel == 'z'
    assert not backend.volumes[0].read_only


def _parse(services, **extra):
    doc = {'services': services}
    doc.update(extra)
    return ComposeParser(context={'PG_TAG': '12.13'}).parse_from_string(yaml.dump(doc), project_dir='/srv/My App')


def test_port_syntaxes():
    config = _parse({'web': {'image': 'nginx', 'ports': [
        '127.0.0.1:8080:80',
        '53:53/udp',
        '9000-9001:9000-9001',
        '3000',
        6000,
        {'target': 443, 'published': '8443', 'host_ip': '0.0.0.0'},
    ]}})
    ports = [(p.host_ip, p.host_port, p.container_port, p.protocol) for p in config.services['web'].ports]
    assert ports == [
        ('127.0.0.1', 8080, 80, 'tcp'),
        (None, 53, 53, 'udp'),
        (None, 9000, 9000, 'tcp'),
        (None, 9001, 9001, 'tcp'),
        (None, None, 3000, 'tcp'),
        (None, None, 6000, 'tcp'),
        ('0.0.0.0', 8443, 443, 'tcp'),
    ]
    assert config.services['web'].ports[0].render() == '127.0.0.1:8080:80'
    assert config.services['web'].ports[1].render() == '53:53/udp'


@pytest.mark.parametrize('port', ['80:abc', '1-2:3', 'a:b:c:d', '9001-9000'])
def test_invalid_port(port):
    with pytest.raises(ConfigurationError, match='invalid port'):
        _parse({'web': {'image': 'nginx', 'ports': [port]}})


def test_depends_on_mapping_and_conditions():
    config = _parse({
        'db': {'image': 'postgres', 'healthcheck': {'test': 'pg_isready', 'interval': '1m30s', 'timeout': '500ms'}},
        'web': {'image': 'nginx', 'depends_on': {'db': {'condition': 'service_healthy'}}},
    })
    dep = config.services['web'].depends_on[0]
    assert dep.name == 'db'
    assert dep.condition == DependencyCondition.HEALTHY
    hc = config.services['db'].health_check
    assert hc.test == ['CMD-SHELL', 'pg_isready']
    assert hc.interval == 90.0
    assert hc.timeout == 0.5


def test_unknown_condition():
    with pytest.raises(ConfigurationError, match='unknown depends_on condition'):
        _parse({'web': {'image': 'nginx', 'depends_on': {'db': {'condition': 'whenever'}}}})


def test_environment_and_env_files():
    config = _parse({'web': {
        'image': 'nginx:${PG_TAG}',
        'environment': ['A=1', 'PG_TAG', 'UNSET_NAME'],
        'env_file': ['.env', {'path': 'local.env', 'required': False}],
    }, 'api': {'image': 'api', 'environment': {'DEBUG': True, 'N': 3}}})
    web = config.services['web']
    assert web.image == 'nginx:12.13'
    assert web.environment == {'A': '1', 'PG_TAG': '12.13'}
    assert [(f.path, f.required) for f in web.env_files] == [('.env', True), ('local.env', False)]
    assert config.services['api'].environment == {'DEBUG': 'true', 'N': '3'}


def test_image_and_build_are_exclusive():
    with pytest.raises(ConfigurationError, match="both 'image' and 'build'"):
        _parse({'web': {'image': 'nginx', 'build': '.'}})
    with pytest.raises(ConfigurationError, match="either 'image' or 'build'"):
        _parse({'web': {'ports': ['80:80']}})


def test_volume_syntaxes():
    config = _parse({'web': {'image': 'nginx', 'volumes': [
        'data:/var/lib/data',
        './conf:/etc/nginx:ro,Z',
        '/cache',
        {'type': 'bind', 'source': './src', 'target': '/src', 'read_only': True, 'bind': {'selinux': 'z'}},
    ]}}, volumes={'data': None})
    vols = config.services['web'].volumes
    assert (vols[0].source, vols[0].is_bind) == ('data', False)
    assert vols[1].read_only and vols[1].selinux_relabel == 'Z'
    assert vols[2].source == '' and vols[2].target == '/cache'
    assert vols[3].mode == 'ro,z'
    assert config.volumes == ['data']


def test_unknown_volume_mode():
    with pytest.raises(ConfigurationError, match='unknown volume mode'):
        _parse({'web': {'image': 'nginx', 'volumes': ['./a:/a:rx']}})


def test_command_string_is_split():
    config = _parse({'web': {'image': 'python', 'command': 'python -m http.server "8 0"'}})
    assert config.services['web'].command == ['python', '-m', 'http.server', '8 0']


def test_all_service_problems_reported():
    with pytest.raises(ConfigurationError) as exc:
        _parse({'a': {'ports': ['1:1']}, 'b': 'not a mapping'})
    assert len(exc.value.problems) == 2


@pytest.mark.parametrize('content,message', [
    ('services: [', 'Invalid YAML'),
    ('- a\n- b\n', 'mapping at the top level'),
    ('version: "3"\n', 'declares no services'),
])
def test_invalid_documents(content, message):
    with pytest.raises(ConfigurationError, match=message):
        ComposeParser(context={}).parse_from_string(content)


def test_project_env_file_feeds_interpolation(tmp_path, monkeypatch):
    monkeypatch.delenv('PG_TAG', raising=False)
    (tmp_path / '.env').write_text('PG_TAG=13.1\n')
    (tmp_path / 'compose.yaml').write_text('services:\n  db:\n    image: postgres:${PG_TAG}\n')
    config = ComposeParser().parse(str(tmp_path / 'compose.yaml'))
    assert config.services['db'].image == 'postgres:13.1'


def test_normalize_project_name():
    assert normalize_project_name('My App.v2') == 'myappv2'
    assert normalize_project_name('__') == 'default'


@pytest.mark.parametrize('body,message', [
    ({'ports': 8000}, 'ports must be a list'),
    ({'environment': ['A=1', 5]}, 'invalid environment entry'),
    ({'environment': 'A=1'}, 'environment must be a list or a mapping'),
    ({'build': ['.']}, 'build must be a path or a mapping'),
    ({'healthcheck': 'x'}, 'healthcheck must be a mapping'),
    ({'healthcheck': {'test': 5}}, 'healthcheck test must be a string or a list'),
    ({'healthcheck': {'test': 'true', 'interval': [1]}}, 'invalid duration'),
    ({'depends_on': {'db': 'yes'}}, 'depends_on options'),
    ({'command': 42}, 'command must be a string or a list'),
    ({'command': 'echo "unterminated'}, 'cannot parse command'),
    ({'volumes': [{'target': '/data', 'bind': 'z'}]}, 'bind options must be a mapping'),
])
def test_malformed_service_fields(body, message):
    service = {'image': 'app'}
    service.update(body)
    with pytest.raises(ConfigurationError, match=message):
        _parse({'app': service, 'db': {'image': 'postgres'}})
