"""
Life Map Service for goal, project and habit operations.
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.core import DEFAULT_STATUS, EmbeddableItem, EntityKind
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import config
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import ITEM_INDEX, TEMP_INDEX, NotFoundError, OpenSearchClient, OpenSearchError
from ..utils.timestamp_utils import to_datetime
from .coordinate_recalculation import CoordinateRecalculationService
from .projection import SeededProjector
from .scheduler import RecomputeScheduler
from .similarity import rank_by_similarity

logger = get_logger(__name__)

# Fields whose change alters an item's composed text
TEXT_FIELDS = ('name', 'description', 'goal_ids', 'frequency')


class LifeMapError(Exception):
    """Custom exception for life map errors."""
    pass


class UnauthorizedError(Exception):
    """Raised when a user touches an entity they do not own. Nothing is written."""
    pass


class LifeMapService:
    """Entity operations for the life map.

    Creates and text edits return as soon as the record is written; embedding
    and coordinate work happens later on the recompute scheduler.
    """

    def __init__(self,
                 store: Optional[OpenSearchClient] = None,
                 embedder: Optional[BedrockEmbed] = None,
                 scheduler: Optional[RecomputeScheduler] = None):
        """Initialize the life map service."""
        if store is None:
            store = OpenSearchClient(config.opensearch)
            try:
                store.create_index_if_not_exists(index_type=ITEM_INDEX)
                store.create_index_if_not_exists(index_type=TEMP_INDEX)
            except OpenSearchError as e:
                logger.warning(f'Failed to create OpenSearch indexes: {e}')

        self.store = store
        self.embedder = embedder or BedrockEmbed(config.bedrock_embed)
        self.projector = SeededProjector(config.projection)
        self.recalculation = CoordinateRecalculationService(self.store, self.embedder, self.projector)
        self.scheduler = scheduler or RecomputeScheduler(self.recalculation.recalculate, config.recompute)

        logger.info('Initialized LifeMapService')

    def _get_owned(self, user_id: str, item_id: str, kind: Optional[EntityKind] = None) -> EmbeddableItem:
        item = self.store.get_item(item_id)
        if item.owner_id != user_id:
            logger.warning(f'User {user_id} attempted to access {item_id} owned by another user')
            raise UnauthorizedError(f'Item {item_id} does not belong to user {user_id}')
        if kind is not None and item.kind != kind:
            raise NotFoundError(f'{kind.value.capitalize()} {item_id} not found')
        return item

    def _validate_goal_ids(self, user_id: str, goal_ids: Iterable[str]) -> List[str]:
        validated = []
        for goal_id in goal_ids:
            self._get_owned(user_id, goal_id, EntityKind.GOAL)
            if goal_id not in validated:
                validated.append(goal_id)
        return validated

    def _create(self,
                user_id: str,
                kind: EntityKind,
                name: str,
                description: str,
                goal_ids: Iterable[str] = (),
                frequency: Optional[str] = None) -> str:
        if not user_id or not user_id.strip():
            raise ValueError('User ID is required')
        if not name or not name.strip():
            raise ValueError(f'{kind.value.capitalize()} name is required')

        try:
            item = EmbeddableItem(id=str(uuid.uuid4()),
                                  owner_id=user_id,
                                  kind=kind,
                                  name=name.strip(),
                                  description=description or '',
                                  created_at=to_datetime(),
                                  goal_ids=self._validate_goal_ids(user_id, goal_ids),
                                  frequency=frequency,
                                  status=DEFAULT_STATUS.get(kind))
            self.store.insert_item(item)
        except OpenSearchError as e:
            logger.error(f'Store error creating {kind.value}: {e}')
            raise LifeMapError(f'{kind.value.capitalize()} creation failed: {e}')

        self.scheduler.schedule(user_id, kind, item.id)
        logger.debug(f'Created {kind.value} {item.id} for user {user_id}')
        return item.id

    def _update(self, user_id: str, item_id: str, kind: EntityKind, **fields: Any) -> bool:
        """Patch the given fields and reschedule recompute if the composed text changed.

        Returns:
            True if a recompute was scheduled
        """
        updates = {key: value for key, value in fields.items() if value is not None}

        try:
            item = self._get_owned(user_id, item_id, kind)
            if 'goal_ids' in updates:
                updates['goal_ids'] = self._validate_goal_ids(user_id, updates['goal_ids'])
            if not updates:
                return False

            text_changed = any(key in updates and updates[key] != getattr(item, key) for key in TEXT_FIELDS)
            self.store.patch_item(item_id, updates)
        except OpenSearchError as e:
            logger.error(f'Store error updating {kind.value} {item_id}: {e}')
            raise LifeMapError(f'{kind.value.capitalize()} update failed: {e}')

        if text_changed:
            self.scheduler.schedule(user_id, kind, item_id)
        logger.debug(f'Updated {kind.value} {item_id} fields {sorted(updates)}')
        return text_changed

    def _delete(self, user_id: str, item_id: str, kind: EntityKind) -> bool:
        # Surviving items keep their coordinates until their next edit
        try:
            self._get_owned(user_id, item_id, kind)
            deleted = self.store.delete_item(item_id)
        except OpenSearchError as e:
            logger.error(f'Store error deleting {kind.value} {item_id}: {e}')
            raise LifeMapError(f'{kind.value.capitalize()} deletion failed: {e}')

        logger.debug(f'Deleted {kind.value} {item_id}')
        return deleted

    def _list(self, user_id: str, kind: EntityKind, goal_id: Optional[str] = None) -> List[EmbeddableItem]:
        if goal_id is not None:
            self._get_owned(user_id, goal_id, EntityKind.GOAL)
        try:
            return self.store.list_items(user_id, kind, goal_id=goal_id)
        except OpenSearchError as e:
            logger.error(f'Store error listing {kind.value} items: {e}')
            raise LifeMapError(f'Listing {kind.value} items failed: {e}')

    def get_item(self, user_id: str, item_id: str) -> EmbeddableItem:
        return self._get_owned(user_id, item_id)

    # Goals

    def create_goal(self, user_id: str, name: str, description: str) -> str:
        return self._create(user_id, EntityKind.GOAL, name, description)

    def update_goal(self,
                    user_id: str,
                    goal_id: str,
                    name: Optional[str] = None,
                    description: Optional[str] = None,
                    status: Optional[str] = None) -> bool:
        return self._update(user_id, goal_id, EntityKind.GOAL, name=name, description=description, status=status)

    def delete_goal(self, user_id: str, goal_id: str) -> bool:
        return self._delete(user_id, goal_id, EntityKind.GOAL)

    def list_goals(self, user_id: str) -> List[EmbeddableItem]:
        return self._list(user_id, EntityKind.GOAL)

    # Projects

    def create_project(self, user_id: str, name: str, description: str, goal_ids: Iterable[str] = ()) -> str:
        return self._create(user_id, EntityKind.PROJECT, name, description, goal_ids=goal_ids)

    def update_project(self,
                       user_id: str,
                       project_id: str,
                       name: Optional[str] = None,
                       description: Optional[str] = None,
                       goal_ids: Optional[List[str]] = None,
                       status: Optional[str] = None) -> bool:
        return self._update(user_id,
                            project_id,
                            EntityKind.PROJECT,
                            name=name,
                            description=description,
                            goal_ids=goal_ids,
                            status=status)

    def delete_project(self, user_id: str, project_id: str) -> bool:
        return self._delete(user_id, project_id, EntityKind.PROJECT)

    def list_projects(self, user_id: str) -> List[EmbeddableItem]:
        return self._list(user_id, EntityKind.PROJECT)

    def list_projects_by_goal(self, user_id: str, goal_id: str) -> List[EmbeddableItem]:
        return self._list(user_id, EntityKind.PROJECT, goal_id=goal_id)

    def find_similar_projects(self, user_id: str, project_id: str, limit: int = 5) -> List[Tuple[EmbeddableItem, float]]:
        """Rank the user's other projects by embedding similarity to one project.

        Only projects with a ready embedding take part. A project whose own
        embedding is not ready yet has no neighbours.

        Returns:
            (project, score) pairs, most similar first
        """
        project = self._get_owned(user_id, project_id, EntityKind.PROJECT)
        if not project.is_ready:
            logger.debug(f'Project {project_id} has no embedding yet; no similar projects')
            return []

        dimension = len(project.embedding)
        others = {
            item.id: item
            for item in self.list_projects(user_id)
            if item.id != project_id and item.is_ready and len(item.embedding) == dimension
        }
        ranked = rank_by_similarity(project.embedding, [(item.id, item.embedding) for item in others.values()], limit)
        return [(others[score.id], score.score) for score in ranked]

    def link_project_to_goal(self, user_id: str, project_id: str, goal_id: str) -> bool:
        """Add a goal link. Returns False if the project was already linked."""
        project = self._get_owned(user_id, project_id, EntityKind.PROJECT)
        if goal_id in project.goal_ids:
            return False
        return self.update_project(user_id, project_id, goal_ids=project.goal_ids + [goal_id])

    def unlink_project_from_goal(self, user_id: str, project_id: str, goal_id: str) -> bool:
        """Remove a goal link. Returns False if the project was not linked."""
        project = self._get_owned(user_id, project_id, EntityKind.PROJECT)
        if goal_id not in project.goal_ids:
            return False
        return self.update_project(user_id, project_id, goal_ids=[g for g in project.goal_ids if g != goal_id])

    # Habits

    def create_habit(self,
                     user_id: str,
                     name: str,
                     description: str,
                     frequency: str,
                     goal_ids: Iterable[str] = ()) -> str:
        return self._create(user_id, EntityKind.HABIT, name, description, goal_ids=goal_ids, frequency=frequency)

    def update_habit(self,
                     user_id: str,
                     habit_id: str,
                     name: Optional[str] = None,
                     description: Optional[str] = None,
                     frequency: Optional[str] = None,
                     goal_ids: Optional[List[str]] = None,
                     status: Optional[str] = None) -> bool:
        return self._update(user_id,
                            habit_id,
                            EntityKind.HABIT,
                            name=name,
                            description=description,
                            frequency=frequency,
                            goal_ids=goal_ids,
                            status=status)

    def delete_habit(self, user_id: str, habit_id: str) -> bool:
        return self._delete(user_id, habit_id, EntityKind.HABIT)

    def list_habits(self, user_id: str) -> List[EmbeddableItem]:
        return self._list(user_id, EntityKind.HABIT)

    def list_habits_by_goal(self, user_id: str, goal_id: str) -> List[EmbeddableItem]:
        return self._list(user_id, EntityKind.HABIT, goal_id=goal_id)

    # Visualization

    def get_visualization_data(self, user_id: str, thread_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Read model for the life map: items with coordinates, never embeddings.

        Args:
            user_id: Owner whose map is drawn
            thread_id: Conversation whose temporary entities are overlaid

        Returns:
            Dictionary with goals, projects, habits and temp_entities
        """
        if not user_id or not user_id.strip():
            raise ValueError('User ID is required')

        def _item_view(item: EmbeddableItem) -> Dict[str, Any]:
            view = {
                'id': item.id,
                'name': item.name,
                'description': item.description,
                'coordinates': item.coordinates.to_dict(),
                'status': item.status,
                'embedding_status': item.embedding_status.value,
            }
            if item.kind in (EntityKind.PROJECT, EntityKind.HABIT):
                view['goal_ids'] = list(item.goal_ids)
            if item.kind == EntityKind.HABIT:
                view['frequency'] = item.frequency
            return view

        try:
            temp_entities = self.store.list_temp_entities(thread_id) if thread_id else []
        except OpenSearchError as e:
            logger.error(f'Store error listing temporary entities: {e}')
            raise LifeMapError(f'Loading visualization data failed: {e}')

        return {
            'goals': [_item_view(item) for item in self.list_goals(user_id)],
            'projects': [_item_view(item) for item in self.list_projects(user_id)],
            'habits': [_item_view(item) for item in self.list_habits(user_id)],
            'temp_entities': [{
                'id': entity.id,
                'name': entity.name,
                'description': entity.description,
                'type': entity.type,
                'coordinates': entity.coordinates.to_dict(),
                'similarity_scores': entity.similarity_scores.to_dict() if entity.similarity_scores else None,
            } for entity in temp_entities if entity.owner_id == user_id],
        }
