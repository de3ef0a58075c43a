"""Pytest configuration and fixtures."""

import os

# The global config is read on first import of lifecopilot
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'DEBUG')
os.environ.setdefault('OPENSEARCH_ENDPOINT', 'test-collection.us-east-1.aoss.amazonaws.com')
os.environ.setdefault('RECOMPUTE_MAX_WORKERS', '4')
os.environ.setdefault('RECOMPUTE_RETRY_DELAY', '0.01')
os.environ.setdefault('OPENSEARCH_LOOKUP_DELAY', '0.01')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')

import pytest  # noqa: E402

from lifecopilot.models.core import EmbeddableItem, EmbeddingStatus, EntityKind  # noqa: E402
from lifecopilot.services.projection import SeededProjector  # noqa: E402
from lifecopilot.utils.config import ProjectionConfig, RecomputeConfig  # noqa: E402
from lifecopilot.utils.timestamp_utils import to_datetime  # noqa: E402
from tests.fakes.fake_embedder import FakeEmbedder  # noqa: E402
from tests.fakes.fake_store import FakeStore  # noqa: E402


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def projection_config():
    return ProjectionConfig(scale=1000.0, bound=10000.0, seed_components=4, top_k=5)


@pytest.fixture
def projector(projection_config):
    return SeededProjector(projection_config)


@pytest.fixture
def recompute_config():
    return RecomputeConfig(max_workers=4, serialize=False, not_found_retries=3, retry_delay=0.01)


@pytest.fixture
def make_item(store):
    """Insert an item straight into the fake store, bypassing the services."""
    counter = {'n': 0}

    def _make(owner_id='user-1',
              kind=EntityKind.GOAL,
              name='Item',
              description='',
              embedding=None,
              goal_ids=None,
              frequency=None,
              item_id=None):
        counter['n'] += 1
        item = EmbeddableItem(id=item_id or f'{kind.value}-{counter["n"]}',
                              owner_id=owner_id,
                              kind=kind,
                              name=name,
                              description=description,
                              created_at=to_datetime(1_700_000_000 + counter['n']),
                              goal_ids=list(goal_ids or []),
                              frequency=frequency,
                              embedding=embedding,
                              embedding_status=EmbeddingStatus.READY if embedding is not None else EmbeddingStatus.PENDING)
        store.insert_item(item)
        return item

    return _make
