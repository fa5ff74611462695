import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import zkattest`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from zkattest.config import get_config_manager  # noqa: E402
from zkattest.provable import PrivateKey  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless ZKATTEST_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('ZKATTEST_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set ZKATTEST_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _reset_config():
    get_config_manager().reset()
    yield
    get_config_manager().reset()


@pytest.fixture
def issuer_key() -> PrivateKey:
    return PrivateKey.generate()


@pytest.fixture
def owner_key() -> PrivateKey:
    return PrivateKey.generate()
