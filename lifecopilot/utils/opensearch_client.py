"""
OpenSearch client wrapper used as the life map's document store.
"""

import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import OpenSearchException
from requests_aws4auth import AWS4Auth

from ..models.core import (Coordinates, EmbeddableItem, EmbeddingStatus, EntityKind, SimilarityScores,
                           TemporaryEntity)
from .config import OpenSearchConfig
from .logging_config import get_logger

logger = get_logger(__name__)

ITEM_INDEX = 'item'
TEMP_INDEX = 'temp'


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist (or was deleted mid-flight)."""
    pass


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return datetime.fromtimestamp(0, tz=timezone.utc)


def item_to_document(item: EmbeddableItem) -> Dict[str, Any]:
    """Serialize an item for indexing. Pending items carry no embedding field."""
    document = {
        'id': item.id,
        'owner_id': item.owner_id,
        'kind': item.kind.value,
        'name': item.name,
        'description': item.description,
        'goal_ids': list(item.goal_ids),
        'frequency': item.frequency,
        'status': item.status,
        'embedding_status': item.embedding_status.value,
        'coordinates': item.coordinates.to_dict(),
        'created_at': item.created_at.isoformat(),
    }
    if item.embedding is not None:
        document['embedding'] = item.embedding
    return document


def document_to_item(doc: Dict[str, Any]) -> EmbeddableItem:
    return EmbeddableItem(id=doc['id'],
                          owner_id=doc['owner_id'],
                          kind=EntityKind(doc['kind']),
                          name=doc.get('name', ''),
                          description=doc.get('description', ''),
                          created_at=_parse_datetime(doc.get('created_at')),
                          goal_ids=list(doc.get('goal_ids') or []),
                          frequency=doc.get('frequency'),
                          status=doc.get('status'),
                          embedding=doc.get('embedding'),
                          embedding_status=EmbeddingStatus(doc.get('embedding_status', EmbeddingStatus.PENDING.value)),
                          coordinates=Coordinates.from_dict(doc.get('coordinates')))


def temp_entity_to_document(entity: TemporaryEntity) -> Dict[str, Any]:
    document = {
        'id': entity.id,
        'owner_id': entity.owner_id,
        'thread_id': entity.thread_id,
        'type': entity.type,
        'name': entity.name,
        'description': entity.description,
        'embedding_status': entity.embedding_status.value,
        'coordinates': entity.coordinates.to_dict(),
        'created_at': entity.created_at.isoformat(),
    }
    if entity.embedding is not None:
        document['embedding'] = entity.embedding
    if entity.similarity_scores is not None:
        document['similarity_scores'] = entity.similarity_scores.to_dict()
    return document


def document_to_temp_entity(doc: Dict[str, Any]) -> TemporaryEntity:
    return TemporaryEntity(id=doc['id'],
                           owner_id=doc.get('owner_id', ''),
                           thread_id=doc['thread_id'],
                           type=doc.get('type', 'event'),
                           name=doc.get('name', ''),
                           description=doc.get('description', ''),
                           created_at=_parse_datetime(doc.get('created_at')),
                           embedding=doc.get('embedding'),
                           embedding_status=EmbeddingStatus(doc.get('embedding_status', EmbeddingStatus.PENDING.value)),
                           coordinates=Coordinates.from_dict(doc.get('coordinates')),
                           similarity_scores=SimilarityScores.from_dict(doc.get('similarity_scores')))


class OpenSearchClient:
    """OpenSearch document store with AWS authentication and error handling.

    Documents carry their own ``id`` field; the OpenSearch ``_id`` is assigned by
    the cluster and looked up by term query before updates and deletes.
    """

    def __init__(self, config: OpenSearchConfig):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
        """
        self.config = config

        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        self.client = OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                                 http_auth=auth,
                                 use_ssl=True,
                                 verify_certs=True,
                                 connection_class=RequestsHttpConnection)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def _index_name(self, index_type: str) -> str:
        return f'{self.config.index_name}_{index_type}'

    def _embedding_mapping(self) -> Dict[str, Any]:
        return {
            'type': 'knn_vector',
            'dimension': self.config.dimension,
            'method': {
                'name': 'hnsw',
                'space_type': 'cosinesimil',
                'engine': 'nmslib'
            }
        }

    def create_index_if_not_exists(self, index_type: str = ITEM_INDEX, sync_wait: float = 15.0) -> str:
        """
        Create index if it doesn't exist.

        Args:
            index_type: Type of index (item or temp)
            sync_wait: Seconds to wait after creation for the collection to sync

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self._index_name(index_type)

        properties = {
            'id': {
                'type': 'keyword'
            },
            'owner_id': {
                'type': 'keyword'
            },
            'name': {
                'type': 'text'
            },
            'description': {
                'type': 'text'
            },
            'embedding_status': {
                'type': 'keyword'
            },
            'embedding': self._embedding_mapping(),
            'coordinates': {
                'properties': {
                    'x': {
                        'type': 'float'
                    },
                    'y': {
                        'type': 'float'
                    }
                }
            },
            'created_at': {
                'type': 'date'
            }
        }
        if index_type == ITEM_INDEX:
            properties.update({
                'kind': {
                    'type': 'keyword'
                },
                'goal_ids': {
                    'type': 'keyword'
                },
                'frequency': {
                    'type': 'keyword'
                },
                'status': {
                    'type': 'keyword'
                }
            })
        else:
            properties.update({
                'thread_id': {
                    'type': 'keyword'
                },
                'type': {
                    'type': 'keyword'
                },
                'similarity_scores': {
                    'type': 'object',
                    'enabled': False
                }
            })

        index_body = {'mappings': {'properties': properties}, 'settings': {'index': {'knn': True}}}

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                return 'exists'

            response = self.client.indices.create(index=index_name, body=index_body)
            logger.info(f'Created index {index_name}')
            if not response.get('acknowledged', False):
                return 'failed'
            if sync_wait > 0:
                logger.info(f'Waiting {sync_wait}s for index {index_name} sync-up...')
                time.sleep(sync_wait)
            return 'created'

        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def _write_params(self) -> Dict[str, Any]:
        return {'refresh': self.config.refresh} if self.config.refresh else {}

    def _insert(self, document: Dict[str, Any], index_type: str) -> str:
        index_name = self._index_name(index_type)
        try:
            response = self.client.index(index=index_name, body=document, **self._write_params())
            if response.get('result') not in ['created', 'updated']:
                raise OpenSearchError(f'Unexpected result indexing document: {response}')
            logger.debug(f"Indexed document {document['id']} in {index_name}")
            return document['id']

        except OpenSearchException as e:
            logger.error(f'Error indexing document: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')

    def _search(self,
                filters: List[Dict[str, Any]],
                index_type: str,
                include_embedding: bool = True,
                size: Optional[int] = None) -> List[Dict[str, Any]]:
        """Run a filtered search sorted by creation time, returning raw hits."""
        index_name = self._index_name(index_type)
        search_body = {
            'size': size or self.config.max_results,
            'query': {
                'bool': {
                    'filter': filters
                }
            },
            'sort': [{
                'created_at': {
                    'order': 'asc'
                }
            }, {
                'id': {
                    'order': 'asc'
                }
            }]
        }
        if not include_embedding:
            search_body['_source'] = {'excludes': ['embedding']}

        try:
            response = self.client.search(index=index_name, body=search_body)
            return response['hits']['hits']

        except OpenSearchException as e:
            logger.error(f'Error searching {index_name}: {e}')
            raise OpenSearchError(f'Search failed: {e}')

    def _find_hit(self, doc_id: str, index_type: str) -> Optional[Dict[str, Any]]:
        """
        Look up a document by its ``id`` field.

        Search only sees a write after the next index refresh, so a miss is
        retried with exponential backoff before the document is declared absent.

        Returns:
            The raw hit, or None if it never became visible
        """
        retries = self.config.lookup_retries
        for attempt in range(retries + 1):
            hits = self._search([{'term': {'id': doc_id}}], index_type, size=1)
            if hits:
                return hits[0]

            if attempt < retries:
                delay = self.config.lookup_delay * (2**attempt) + random.uniform(0, self.config.lookup_delay)
                logger.debug(f'Document {doc_id} not visible in {self._index_name(index_type)} yet, '
                             f'retrying in {delay:.2f}s ({attempt + 1}/{retries})')
                time.sleep(delay)

        return None

    def _patch(self, doc_id: str, fields: Dict[str, Any], index_type: str) -> None:
        hit = self._find_hit(doc_id, index_type)
        if hit is None:
            raise NotFoundError(f'Document {doc_id} not found in {self._index_name(index_type)}')

        try:
            self.client.update(index=self._index_name(index_type),
                               id=hit['_id'],
                               body={'doc': fields},
                               **self._write_params())
            logger.debug(f'Patched document {doc_id} fields: {sorted(fields)}')

        except OpenSearchException as e:
            logger.error(f'Error patching document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to patch document: {e}')

    def _delete(self, hit: Dict[str, Any], index_type: str) -> bool:
        index_name = self._index_name(index_type)
        try:
            response = self.client.delete(index=index_name, id=hit['_id'], **self._write_params())
            return response.get('result') == 'deleted'

        except OpenSearchException as e:
            # OpenSearchException args: (status_code, error_type, error_info)
            if len(e.args) >= 2 and (e.args[0] == 404 or e.args[1] == 'not_found'):
                logger.warning(f"Document {hit['_id']} not found for deletion")
                return False
            logger.error(f"Error deleting document {hit['_id']}: {e}")
            raise OpenSearchError(f'Failed to delete document: {e}')

    # Embeddable items

    def insert_item(self, item: EmbeddableItem) -> str:
        return self._insert(item_to_document(item), ITEM_INDEX)

    def get_item(self, item_id: str) -> EmbeddableItem:
        """
        Get an item by id.

        Raises:
            NotFoundError: If no such item exists
        """
        hit = self._find_hit(item_id, ITEM_INDEX)
        if hit is None:
            raise NotFoundError(f'Item {item_id} not found')
        return document_to_item(hit['_source'])

    def list_items(self, owner_id: str, kind: EntityKind, goal_id: Optional[str] = None) -> List[EmbeddableItem]:
        """
        List one owner's items of one kind, oldest first.

        Args:
            owner_id: Owner to filter on
            kind: Entity kind to filter on
            goal_id: Only items linked to this goal

        Returns:
            Items ordered by (created_at, id)
        """
        filters = [{'term': {'owner_id': owner_id}}, {'term': {'kind': kind.value}}]
        if goal_id:
            filters.append({'term': {'goal_ids': goal_id}})
        hits = self._search(filters, ITEM_INDEX)
        items = [document_to_item(hit['_source']) for hit in hits]
        logger.debug(f'Listed {len(items)} {kind.value} items for owner {owner_id}')
        return items

    def patch_item(self, item_id: str, fields: Dict[str, Any]) -> None:
        self._patch(item_id, fields, ITEM_INDEX)

    def delete_item(self, item_id: str) -> bool:
        hit = self._find_hit(item_id, ITEM_INDEX)
        if hit is None:
            logger.warning(f'No document found for item {item_id}')
            return False
        return self._delete(hit, ITEM_INDEX)

    # Temporary entities

    def insert_temp_entity(self, entity: TemporaryEntity) -> str:
        return self._insert(temp_entity_to_document(entity), TEMP_INDEX)

    def get_temp_entity(self, entity_id: str) -> TemporaryEntity:
        hit = self._find_hit(entity_id, TEMP_INDEX)
        if hit is None:
            raise NotFoundError(f'Temporary entity {entity_id} not found')
        return document_to_temp_entity(hit['_source'])

    def list_temp_entities(self, thread_id: str) -> List[TemporaryEntity]:
        hits = self._search([{'term': {'thread_id': thread_id}}], TEMP_INDEX, include_embedding=False)
        return [document_to_temp_entity(hit['_source']) for hit in hits]

    def patch_temp_entity(self, entity_id: str, fields: Dict[str, Any]) -> None:
        self._patch(entity_id, fields, TEMP_INDEX)

    def delete_temp_entity(self, entity_id: str) -> bool:
        hit = self._find_hit(entity_id, TEMP_INDEX)
        if hit is None:
            logger.warning(f'No document found for temporary entity {entity_id}')
            return False
        return self._delete(hit, TEMP_INDEX)

    def delete_temp_entities(self, thread_id: str) -> int:
        """
        Delete every temporary entity of a thread.

        Returns:
            Number of entities deleted
        """
        hits = self._search([{'term': {'thread_id': thread_id}}], TEMP_INDEX, include_embedding=False)
        deleted = sum(1 for hit in hits if self._delete(hit, TEMP_INDEX))
        logger.debug(f'Deleted {deleted} temporary entities for thread {thread_id}')
        return deleted

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self._index_name(ITEM_INDEX))
            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
