"""
Unit tests for descriptor loading and validation.
"""
import pytest

from stackup.errors import (
    ConfigurationError,
    DanglingDependencyError,
    DependencyCycleError,
    MissingFileError,
    PortConflictError,
)
from stackup.PARSERS.descriptor_loader import DescriptorLoader


def test_load_example(example_project):
    config = DescriptorLoader(context={}).load(str(example_project))
    assert list(config.services) == ['db', 'adminer', 'backend']


def test_find_descriptor_prefers_compose_yaml(tmp_path):
    (tmp_path / 'docker-compose.yml').write_text('services: {}\n')
    (tmp_path / 'compose.yaml').write_text('services: {}\n')
    assert DescriptorLoader.find_descriptor(str(tmp_path)).endswith('compose.yaml')


def test_find_descriptor_missing(tmp_path):
    with pytest.raises(ConfigurationError, match='No compose file found'):
        DescriptorLoader.find_descriptor(str(tmp_path))


def test_dangling_dependency(tmp_path):
    content = "services:\n  adminer:\n    image: adminer\n    depends_on: [db]\n"
    with pytest.raises(DanglingDependencyError, match="undefined service 'db'"):
        DescriptorLoader(context={}).load_from_string(content, project_dir=str(tmp_path))


def test_cycle(tmp_path):
    content = ("services:\n"
               "  a:\n    image: a\n    depends_on: [b]\n"
               "  b:\n    image: b\n    depends_on: [a]\n")
    with pytest.raises(DependencyCycleError, match='a -> b -> a'):
        DescriptorLoader(context={}).load_from_string(content, project_dir=str(tmp_path))


def test_port_collision(tmp_path):
    content = ("services:\n"
               "  adminer:\n    image: adminer\n    ports: ['8080:8080']\n"
               "  web:\n    image: nginx\n    ports: ['8080:80']\n")
    with pytest.raises(PortConflictError):
        DescriptorLoader(context={}).load_from_string(content, project_dir=str(tmp_path))


def test_missing_files(example_project):
    (example_project / '.env').unlink()
    (example_project / 'devel.Dockerfile').unlink()
    with pytest.raises(ConfigurationError) as exc:
        DescriptorLoader(context={}).load(str(example_project / 'docker-compose.yaml'))
    problems = exc.value.problems
    assert all(isinstance(p, MissingFileError) for p in problems)
    assert sorted((p.service, p.kind) for p in problems) == [
        ('backend', 'build file'), ('backend', 'env file'), ('db', 'env file'),
    ]


def test_missing_files_ignored_without_checks(example_project):
    (example_project / '.env').unlink()
    config = DescriptorLoader(context={}, check_files=False).load(str(example_project))
    assert 'backend' in config.services


def test_optional_env_file(tmp_path):
    content = "services:\n  web:\n    image: nginx\n    env_file:\n      - path: local.env\n        required: false\n"
    config = DescriptorLoader(context={}).load_from_string(content, project_dir=str(tmp_path))
    assert config.services['web'].env_files[0].required is False


def test_undefined_named_volume(tmp_path):
    content = "services:\n  db:\n    image: postgres\n    volumes: ['pgdata:/data']\n"
    with pytest.raises(ConfigurationError, match="undefined volume 'pgdata'"):
        DescriptorLoader(context={}).load_from_string(content, project_dir=str(tmp_path))


def test_every_problem_is_reported(tmp_path):
    content = ("services:\n"
               "  a:\n    image: a\n    depends_on: [ghost]\n    ports: ['80:80']\n"
               "  b:\n    image: b\n    depends_on: [c]\n    ports: ['80:80']\n"
               "  c:\n    image: c\n    depends_on: [b]\n")
    loader = DescriptorLoader(context={})
    config = loader.parser.parse_from_string(content, project_dir=str(tmp_path))
    kinds = sorted(type(p).__name__ for p in loader.validate(config))
    assert kinds == ['DanglingDependencyError', 'DependencyCycleError', 'PortConflictError']
    with pytest.raises(ConfigurationError, match='3 configuration problems'):
        loader.check(config)
