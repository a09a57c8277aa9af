"""
conftest.py
~~~~~~~~~~~

Shared fixtures. The model store directory is pointed at a temporary
directory before any test module imports the API server, which reloads
saved networks at import time.
"""

import os
import tempfile

import numpy as np
import pytest

os.environ.setdefault('VENTURI_MODEL_DIR', tempfile.mkdtemp(prefix='venturi-models-'))

from venturi.activations import Activation  # noqa: E402
from venturi.network import Network  # noqa: E402


@pytest.fixture
def rng():
    """Seeded generator so weight initialization is reproducible."""
    return np.random.default_rng(1234)


@pytest.fixture
def small_network(rng):
    """A 3-3-3 sigmoid network."""
    return Network(3, 3, 3, 0.3, Activation.SIGMOID, rng=rng)


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def make_record():
    """Build one CSV record in label,pixel... form."""
    def _make(label: int, pixels) -> str:
        return ','.join([str(label)] + [str(int(p)) for p in pixels])
    return _make
