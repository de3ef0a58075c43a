"""
Option Evaluator: places a what-if option on the life map and scores it
against the user's goals and projects.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from ..models.core import (TEMP_ENTITY_TYPES, Coordinates, EmbeddableItem, EmbeddingStatus, EntityKind,
                           SimilarityScores, TemporaryEntity)
from ..utils.bedrock_embed import BedrockEmbed, EmbeddingProviderError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, OpenSearchError
from ..utils.timestamp_utils import to_datetime
from .coordinate_recalculation import compose_text
from .life_map import UnauthorizedError
from .projection import SeededProjector
from .similarity import DimensionMismatchError, rank_by_similarity

logger = get_logger(__name__)

# Matches returned to the agent for narration
TOP_GOAL_MATCHES = 2
TOP_PROJECT_MATCHES = 1

ANALYSIS_ERRORS = (EmbeddingProviderError, OpenSearchError, DimensionMismatchError)


class OptionEvaluationError(Exception):
    """Custom exception for option evaluation errors."""
    pass


def _validate_type(option_type: str) -> None:
    if option_type not in TEMP_ENTITY_TYPES:
        raise ValueError(f"Option type must be one of {', '.join(TEMP_ENTITY_TYPES)}, got {option_type!r}")


class OptionEvaluator:
    """Evaluates decision options as temporary entities.

    Temporary entities are projected in probe mode, so evaluating an option
    never moves or rewrites persisted coordinates. A new entity is analysed in
    memory and written once, so it never has to be found again straight after
    it was indexed.
    """

    def __init__(self, store: OpenSearchClient, embedder: BedrockEmbed, projector: SeededProjector, top_k: int = 5):
        self.store = store
        self.embedder = embedder
        self.projector = projector
        self.top_k = top_k

        logger.info('Initialized OptionEvaluator')

    def _ready_items(self, items: List[EmbeddableItem], dimension: int) -> List[EmbeddableItem]:
        ready = []
        for item in items:
            if not item.is_ready:
                continue
            if len(item.embedding) != dimension:
                logger.warning(f'Ignoring {item.id} for option scoring: dimension {len(item.embedding)} != {dimension}')
                continue
            ready.append(item)
        return ready

    def _analyse(self, user_id: str, name: str,
                 description: str) -> Tuple[List[float], Coordinates, SimilarityScores, Dict[str, str]]:
        """Embed an option and place it against the user's ready goals and projects.

        Returns:
            Embedding, probe coordinates, ranked scores and a name lookup for the scored items
        """
        embedding = self.embedder.embed(compose_text(name, description))

        goals = self._ready_items(self.store.list_items(user_id, EntityKind.GOAL), len(embedding))
        projects = self._ready_items(self.store.list_items(user_id, EntityKind.PROJECT), len(embedding))

        batch = [(item.id, item.embedding) for item in goals + projects]
        projection = self.projector.project(batch, probe=embedding)
        coordinates = projection.probe or Coordinates()

        scores = SimilarityScores(goals=rank_by_similarity(embedding, [(g.id, g.embedding) for g in goals], self.top_k),
                                  projects=rank_by_similarity(embedding, [(p.id, p.embedding) for p in projects],
                                                              self.top_k))

        logger.debug(f'Scored option against {len(goals)} goals and {len(projects)} projects')
        return embedding, coordinates, scores, {item.id: item.name for item in goals + projects}

    def evaluate_option(self, user_id: str, thread_id: str, option_type: str, name: str,
                        description: str) -> Dict[str, Any]:
        """Create a temporary entity for an option and analyse it.

        Similarity is scored against the requesting user's goals and projects
        only.

        Args:
            user_id: Owner of the goals and projects to compare against
            thread_id: Conversation the temporary entity belongs to
            option_type: goal, project or event
            name: Option name
            description: Option description

        Returns:
            Dictionary with temp_entity_id, top_matches and message

        Raises:
            ValueError: If arguments are missing or the type is unknown
            OptionEvaluationError: If embedding or storage fails; the entity
                is stored with a failed status when analysis fails
        """
        if not user_id or not user_id.strip():
            raise ValueError('User ID is required')
        if not thread_id or not thread_id.strip():
            raise ValueError('Thread ID is required')
        _validate_type(option_type)
        if not name or not name.strip():
            raise ValueError('Option name is required')

        entity = TemporaryEntity(id=str(uuid.uuid4()),
                                 owner_id=user_id,
                                 thread_id=thread_id,
                                 type=option_type,
                                 name=name.strip(),
                                 description=description or '',
                                 created_at=to_datetime())

        try:
            embedding, coordinates, scores, names = self._analyse(user_id, entity.name, entity.description)
        except ANALYSIS_ERRORS as e:
            logger.error(f'Error evaluating option {entity.id} ({name}): {e}')
            entity.embedding_status = EmbeddingStatus.FAILED
            try:
                self.store.insert_temp_entity(entity)
            except OpenSearchError as store_error:
                logger.warning(f'Could not store failed temporary entity {entity.id}: {store_error}')
            raise OptionEvaluationError(f'Option evaluation failed: {e}')

        entity.embedding = embedding
        entity.embedding_status = EmbeddingStatus.READY
        entity.coordinates = coordinates
        entity.similarity_scores = scores
        try:
            self.store.insert_temp_entity(entity)
        except OpenSearchError as e:
            logger.error(f'Store error creating temporary entity: {e}')
            raise OptionEvaluationError(f'Option evaluation failed: {e}')

        top_matches = [{
            'type': 'goal',
            'name': names[s.id],
            'score': s.score
        } for s in scores.goals[:TOP_GOAL_MATCHES]]
        top_matches += [{
            'type': 'project',
            'name': names[s.id],
            'score': s.score
        } for s in scores.projects[:TOP_PROJECT_MATCHES]]

        logger.debug(f'Evaluated option {entity.id} for thread {thread_id}')
        return {
            'temp_entity_id': entity.id,
            'coordinates': coordinates.to_dict(),
            'top_matches': top_matches,
            'message': (f'I\'ve added "{entity.name}" to your life map for analysis. '
                        'It appears to be most aligned with your existing goals and projects shown above.'),
        }

    def _get_owned(self, user_id: str, entity_id: str) -> TemporaryEntity:
        try:
            entity = self.store.get_temp_entity(entity_id)
        except OpenSearchError as e:
            logger.error(f'Store error loading temporary entity {entity_id}: {e}')
            raise OptionEvaluationError(f'Loading temporary entity failed: {e}')
        if entity.owner_id != user_id:
            logger.warning(f'User {user_id} attempted to access temporary entity {entity_id} owned by another user')
            raise UnauthorizedError(f'Temporary entity {entity_id} does not belong to user {user_id}')
        return entity

    def get_temp_entity(self, user_id: str, entity_id: str) -> TemporaryEntity:
        return self._get_owned(user_id, entity_id)

    def update_temp_entity(self,
                           user_id: str,
                           entity_id: str,
                           name: Optional[str] = None,
                           description: Optional[str] = None,
                           option_type: Optional[str] = None) -> bool:
        """Edit a temporary entity, re-analysing it when its text changes.

        The new fields and the new analysis are written in a single patch.

        Returns:
            True if anything was written
        """
        entity = self._get_owned(user_id, entity_id)

        updates: Dict[str, Any] = {}
        if option_type is not None and option_type != entity.type:
            _validate_type(option_type)
            updates['type'] = option_type
        if name is not None:
            if not name.strip():
                raise ValueError('Option name is required')
            if name.strip() != entity.name:
                updates['name'] = name.strip()
        if description is not None and description != entity.description:
            updates['description'] = description
        if not updates:
            return False

        if 'name' in updates or 'description' in updates:
            try:
                embedding, coordinates, scores, _ = self._analyse(user_id, updates.get('name', entity.name),
                                                                  updates.get('description', entity.description))
                updates.update({
                    'embedding': embedding,
                    'embedding_status': EmbeddingStatus.READY.value,
                    'coordinates': coordinates.to_dict(),
                    'similarity_scores': scores.to_dict(),
                })
            except ANALYSIS_ERRORS as e:
                logger.error(f'Error re-evaluating option {entity_id}: {e}')
                updates['embedding_status'] = EmbeddingStatus.FAILED.value
                self._patch(entity_id, updates)
                raise OptionEvaluationError(f'Option evaluation failed: {e}')

        self._patch(entity_id, updates)
        logger.debug(f'Updated temporary entity {entity_id} fields {sorted(updates)}')
        return True

    def _patch(self, entity_id: str, fields: Dict[str, Any]) -> None:
        try:
            self.store.patch_temp_entity(entity_id, fields)
        except OpenSearchError as e:
            logger.error(f'Store error updating temporary entity {entity_id}: {e}')
            raise OptionEvaluationError(f'Updating temporary entity failed: {e}')

    def remove_temp_entity(self, user_id: str, entity_id: str) -> bool:
        self._get_owned(user_id, entity_id)
        try:
            deleted = self.store.delete_temp_entity(entity_id)
        except OpenSearchError as e:
            logger.error(f'Store error deleting temporary entity {entity_id}: {e}')
            raise OptionEvaluationError(f'Deleting temporary entity failed: {e}')

        logger.debug(f'Removed temporary entity {entity_id}')
        return deleted

    def list_temp_entities(self, user_id: str, thread_id: str) -> List[TemporaryEntity]:
        """The user's temporary entities in a thread, oldest first."""
        try:
            entities = self.store.list_temp_entities(thread_id)
        except OpenSearchError as e:
            logger.error(f'Store error listing temporary entities for thread {thread_id}: {e}')
            raise OptionEvaluationError(f'Listing temporary entities failed: {e}')
        return [entity for entity in entities if entity.owner_id == user_id]

    def clear_temp_entities(self, user_id: str, thread_id: str) -> int:
        """
        Delete every temporary entity of a conversation thread.

        Nothing is deleted if the thread holds another user's entities.

        Returns:
            Number of entities deleted

        Raises:
            UnauthorizedError: If any entity in the thread belongs to another user
        """
        if not user_id or not user_id.strip():
            raise ValueError('User ID is required')
        if not thread_id or not thread_id.strip():
            raise ValueError('Thread ID is required')

        try:
            owners = {entity.owner_id for entity in self.store.list_temp_entities(thread_id)}
            if owners - {user_id}:
                logger.warning(f'User {user_id} attempted to clear thread {thread_id} holding other users\' entities')
                raise UnauthorizedError(f'Thread {thread_id} does not belong to user {user_id}')
            deleted = self.store.delete_temp_entities(thread_id)
        except OpenSearchError as e:
            logger.error(f'Store error clearing temporary entities for thread {thread_id}: {e}')
            raise OptionEvaluationError(f'Clearing temporary entities failed: {e}')

        logger.debug(f'Cleared {deleted} temporary entities for thread {thread_id}')
        return deleted
