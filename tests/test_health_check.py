"""Tests for component health reporting."""

from unittest.mock import MagicMock

from lifecopilot.utils.health_check import get_health_status


def make_components(embed_ok=True, store_ok=True, embed_dimension=1536, index_dimension=1536):
    embedder = MagicMock(model_id='amazon.titan-embed-text-v1', dimension=embed_dimension)
    embedder.health_check.return_value = embed_ok
    store = MagicMock()
    store.health_check.return_value = store_ok
    store.config.endpoint = 'test.aoss.amazonaws.com'
    store.config.index_name = 'life_copilot'
    store.config.dimension = index_dimension
    return embedder, store


def test_all_healthy():
    status = get_health_status(*make_components())
    assert status['healthy'] is True
    assert status['bedrock_embed']['dimension'] == 1536
    assert status['opensearch']['index'] == 'life_copilot'


def test_unreachable_store_is_unhealthy():
    status = get_health_status(*make_components(store_ok=False))
    assert status['healthy'] is False
    assert status['opensearch']['healthy'] is False
    assert status['bedrock_embed']['healthy'] is True


def test_dimension_disagreement_is_a_configuration_fault():
    status = get_health_status(*make_components(embed_dimension=1024))
    assert status['healthy'] is False
    assert '1024' in status['configuration']['error']
