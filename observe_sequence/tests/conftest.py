import pytest

from observe_sequence import reactive
from observe_sequence.config import ObserveSequenceConfig, reset_config, set_config


@pytest.fixture(autouse=True)
def _fresh_batch():  # pyright: ignore[reportUnusedFunction]
    # Nothing queued by a previous test may leak into the next flush
    token = reactive.BATCH.set(reactive.GlobalBatch())
    yield
    reactive.BATCH.reset(token)


@pytest.fixture(autouse=True)
def _default_config():  # pyright: ignore[reportUnusedFunction]
    token = set_config(ObserveSequenceConfig())
    yield
    reset_config(token)
