"""
Coordinate Recalculation Service: re-embeds an edited item and re-projects its
whole (owner, kind) collection.
"""

from typing import List, Optional, Tuple

from ..models.core import EmbeddableItem, EmbeddingStatus, EntityKind, ProjectionResult
from ..utils.bedrock_embed import BedrockEmbed, EmbeddingProviderError
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import NotFoundError, OpenSearchClient, OpenSearchError
from .projection import SeededProjector
from .similarity import DimensionMismatchError

logger = get_logger(__name__)


class CoordinateRecalculationError(Exception):
    """Custom exception for coordinate recalculation errors."""
    pass


def compose_text(name: str, description: str) -> str:
    return f'{name}: {description}'


def compose_item_text(item: EmbeddableItem, goal_names: Optional[List[str]] = None) -> str:
    """Build the text an item is embedded from.

    The concatenation order is part of the embedding's meaning and must stay
    stable: name and description, then habit frequency, then linked goals.
    """
    text = compose_text(item.name, item.description)
    if item.kind == EntityKind.HABIT and item.frequency:
        text += f' [Frequency: {item.frequency}]'
    if item.kind in (EntityKind.PROJECT, EntityKind.HABIT):
        for goal_name in goal_names or []:
            text += f' [Goal: {goal_name}]'
    return text


class CoordinateRecalculationService:
    """Regenerates one item's embedding and the coordinates of every item sharing its owner and kind.

    Steps are not transactional. If embedding fails nothing is written. If a
    coordinate write fails midway the unwritten items keep stale coordinates
    until the next edit in the same collection recomputes the whole batch.
    """

    def __init__(self, store: OpenSearchClient, embedder: BedrockEmbed, projector: SeededProjector):
        self.store = store
        self.embedder = embedder
        self.projector = projector

    def _goal_names(self, item: EmbeddableItem) -> List[str]:
        names = []
        for goal_id in item.goal_ids:
            try:
                goal = self.store.get_item(goal_id)
            except NotFoundError:
                logger.debug(f'Linked goal {goal_id} of {item.id} no longer exists')
                continue
            if goal.owner_id != item.owner_id:
                logger.warning(f'Ignoring goal {goal_id} linked to {item.id} from another owner')
                continue
            names.append(goal.name)
        return names

    def build_text(self, item: EmbeddableItem) -> str:
        if item.kind in (EntityKind.PROJECT, EntityKind.HABIT):
            return compose_item_text(item, self._goal_names(item))
        return compose_item_text(item)

    def _build_batch(self, item: EmbeddableItem, embedding: List[float]) -> List[Tuple[str, List[float]]]:
        """Batch of (id, embedding) for the item's collection, ordered by (created_at, id).

        The triggering item uses its new embedding. Peers without a ready
        embedding of the same dimension are left out and keep their current
        coordinates.
        """
        peers = self.store.list_items(item.owner_id, item.kind)
        entries = [(item.created_at, item.id, embedding)]
        for peer in peers:
            if peer.id == item.id:
                continue
            if peer.owner_id != item.owner_id or peer.kind != item.kind:
                logger.warning(f'Store returned {peer.id} outside collection ({item.owner_id}, {item.kind.value})')
                continue
            if not peer.is_ready:
                logger.debug(f'Leaving {peer.id} out of projection: embedding {peer.embedding_status.value}')
                continue
            if len(peer.embedding) != len(embedding):
                logger.warning(f'Leaving {peer.id} out of projection: dimension {len(peer.embedding)} != {len(embedding)}')
                continue
            entries.append((peer.created_at, peer.id, peer.embedding))

        entries.sort(key=lambda entry: (entry[0], entry[1]))
        return [(item_id, vector) for _, item_id, vector in entries]

    def recalculate(self, item_id: str) -> ProjectionResult:
        """Re-embed an item and re-project its whole (owner, kind) collection.

        Args:
            item_id: Item that was created or whose text changed

        Returns:
            The projection that was persisted

        Raises:
            NotFoundError: If the item was deleted before the job ran
            EmbeddingProviderError: If embedding fails (no writes happened)
            CoordinateRecalculationError: If reading or writing the store fails
        """
        try:
            item = self.store.get_item(item_id)
            text = self.build_text(item)
        except OpenSearchError as e:
            logger.error(f'Store error loading {item_id} for recalculation: {e}')
            raise CoordinateRecalculationError(f'Coordinate recalculation failed: {e}')

        try:
            embedding = self.embedder.embed(text)
        except EmbeddingProviderError as e:
            logger.error(f'Embedding failed for {item_id}, leaving stored state untouched: {e}')
            raise

        try:
            batch = self._build_batch(item, embedding)
            result = self.projector.project(batch)

            for peer_id, coordinates in result.coordinates.items():
                try:
                    self.store.patch_item(peer_id, {'coordinates': coordinates.to_dict()})
                except NotFoundError:
                    if peer_id == item.id:
                        raise
                    logger.warning(f'Skipping coordinates for {peer_id}: deleted during recalculation')

            self.store.patch_item(item.id, {'embedding': embedding, 'embedding_status': EmbeddingStatus.READY.value})

            logger.info(f'Recalculated {len(result.coordinates)} {item.kind.value} coordinates '
                        f'for owner {item.owner_id} after change to {item.id}')
            return result

        except NotFoundError:
            logger.warning(f'Item {item_id} was deleted during recalculation')
            raise
        except (OpenSearchError, DimensionMismatchError) as e:
            logger.error(f'Error recalculating coordinates for {item_id}: {e}')
            raise CoordinateRecalculationError(f'Coordinate recalculation failed: {e}')
