"""Pytest configuration and shared fixtures."""

import pytest

from exe_service.services.sandbox.client import DockerClientFactory
from exe_service.services.sandbox.registry import SandboxRegistry

from fakes import FakeClock, FakeDockerClient, make_config


@pytest.fixture
def fake_docker():
    """Fake docker client; all containers are torn down afterwards."""
    client = FakeDockerClient()
    yield client
    client.shutdown()


@pytest.fixture
def sandbox_config():
    return make_config()


@pytest.fixture
def stateful_config():
    return make_config(stateful_mode=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return SandboxRegistry(clock=clock)


@pytest.fixture
def client_factory(fake_docker, sandbox_config):
    return DockerClientFactory(sandbox_config, client=fake_docker)
