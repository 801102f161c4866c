"""conftest: Shared fixtures for vlbi_init tests."""

import os

import pytest
from loguru import logger
from session_data import (
    SESSION,
    YEAR,
    build_vgosdb_dump,
    standard_observations,
    write_ngs,
    write_vso,
)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda msg: messages.append(msg.record['message']), level='DEBUG')
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def data_root(tmp_path):
    """Empty data root directory."""
    return str(tmp_path)


@pytest.fixture
def ngs_file(data_root):
    """Standard session as an NGS file, at its data root location."""
    path = os.path.join(data_root, 'NGS', YEAR)
    os.makedirs(path)
    fn = os.path.join(path, SESSION)
    write_ngs(fn, standard_observations())
    return fn


@pytest.fixture
def vso_file(data_root):
    """Standard session as a VSO table, at its data root location."""
    path = os.path.join(data_root, 'VSO', YEAR)
    os.makedirs(path)
    fn = os.path.join(path, SESSION)
    write_vso(fn, standard_observations())
    return fn


@pytest.fixture
def vgosdb_dump():
    """Standard session as an in-memory vgosDB dump."""
    return build_vgosdb_dump()
