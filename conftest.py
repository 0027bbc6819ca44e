import os
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def logical_imager_dir() -> Path:
    """Provide a real extraction tool output directory for manual runs."""
    env_path = os.environ.get("LOGICAL_IMAGER_DIR")
    if not env_path or not Path(env_path).is_dir():
        pytest.skip("LOGICAL_IMAGER_DIR not set to an extraction output directory")
    return Path(env_path)
