"""
Health reporting for the embedding provider and the document store.
"""

from typing import Any, Dict

from .bedrock_embed import BedrockEmbed
from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


def get_health_status(embedder: BedrockEmbed, store: OpenSearchClient) -> Dict[str, Any]:
    """Probe the live clients a service is using.

    The index mapping fixes the vector size, so an embedding model whose
    dimension differs from the index is reported as a configuration fault.

    Returns:
        Dictionary keyed by component, each with a ``healthy`` flag
    """
    status = {
        'bedrock_embed': {
            'healthy': embedder.health_check(),
            'model': embedder.model_id,
            'dimension': embedder.dimension
        },
        'opensearch': {
            'healthy': store.health_check(),
            'endpoint': store.config.endpoint,
            'index': store.config.index_name
        },
        'configuration': {
            'healthy': embedder.dimension == store.config.dimension,
            'projection_scale': config.projection.scale,
            'projection_bound': config.projection.bound,
            'recompute_serialized': config.recompute.serialize
        }
    }
    if not status['configuration']['healthy']:
        status['configuration']['error'] = (f'Embedding dimension {embedder.dimension} does not match '
                                            f'index dimension {store.config.dimension}')

    unhealthy = sorted(name for name, component in status.items() if not component['healthy'])
    if unhealthy:
        logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')
    else:
        logger.debug('All components healthy')

    status['healthy'] = not unhealthy
    status['service_name'] = 'Life Copilot'
    return status
