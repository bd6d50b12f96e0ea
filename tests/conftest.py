import pytest

from subworlds.config import Config


@pytest.fixture(scope="function")
def config(tmp_path):
    return Config(staging_dir=str(tmp_path / "records"), abort_on_failure=True)
