"""
Core data models for the life map.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EntityKind(str, Enum):
    """Category of an embeddable item. Coordinates are computed per kind."""
    GOAL = 'goal'
    PROJECT = 'project'
    HABIT = 'habit'
    TASK_CONTEXT = 'task_context'  # Placed by recompute only; no CRUD here
    TEMP = 'temp'


class EmbeddingStatus(str, Enum):
    """Whether an item's embedding can be used for projection and scoring.

    A freshly created item is PENDING until its recompute job has stored a real
    embedding; it holds no vector at all rather than a zero placeholder.
    """
    PENDING = 'pending'
    READY = 'ready'
    FAILED = 'failed'


# Option types the agent may evaluate
TEMP_ENTITY_TYPES = ('goal', 'project', 'event')

DEFAULT_STATUS = {
    EntityKind.GOAL: 'active',
    EntityKind.PROJECT: 'planning',
    EntityKind.HABIT: 'active',
}


@dataclass
class Coordinates:
    """Position of an item on the 2D life map."""
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Coordinates':
        if not data:
            return cls()
        return cls(x=float(data.get('x', 0.0)), y=float(data.get('y', 0.0)))


@dataclass
class EmbeddableItem:
    """A goal, project, habit or task context owned by a single user."""
    id: str
    owner_id: str  # Projection and recompute never cross owners
    kind: EntityKind
    name: str
    description: str
    created_at: datetime
    goal_ids: List[str] = field(default_factory=list)
    frequency: Optional[str] = None  # Habits only
    status: Optional[str] = None
    embedding: Optional[List[float]] = None
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    coordinates: Coordinates = field(default_factory=Coordinates)

    @property
    def is_ready(self) -> bool:
        return self.embedding_status == EmbeddingStatus.READY and self.embedding is not None


@dataclass
class SimilarityScore:
    """Cosine similarity of a temporary entity against one persisted item."""
    id: str
    score: float


@dataclass
class SimilarityScores:
    """Ranked goal and project matches for a temporary entity."""
    goals: List[SimilarityScore] = field(default_factory=list)
    projects: List[SimilarityScore] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            'goals': [{'id': s.id, 'score': s.score} for s in self.goals],
            'projects': [{'id': s.id, 'score': s.score} for s in self.projects],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['SimilarityScores']:
        if not data:
            return None
        return cls(goals=[SimilarityScore(id=s['id'], score=float(s['score'])) for s in data.get('goals', [])],
                   projects=[SimilarityScore(id=s['id'], score=float(s['score'])) for s in data.get('projects', [])])


@dataclass
class TemporaryEntity:
    """Thread-scoped scratch option used for what-if decision analysis.

    Temporary entities are never part of a coordinate recompute batch.
    """
    id: str
    owner_id: str
    thread_id: str
    type: str  # goal, project or event
    name: str
    description: str
    created_at: datetime
    embedding: Optional[List[float]] = None
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    coordinates: Coordinates = field(default_factory=Coordinates)
    similarity_scores: Optional[SimilarityScores] = None


@dataclass
class ProjectionResult:
    """Output of one projection run."""
    coordinates: Dict[str, Coordinates] = field(default_factory=dict)
    probe: Optional[Coordinates] = None
