"""
Tool handlers the conversational agent calls to manage and analyse the life map.
"""

from typing import Any, Dict, List, Optional

from ..models.core import EmbeddableItem, TemporaryEntity
from ..utils.logging_config import get_logger
from .life_map import LifeMapService
from .option_evaluator import OptionEvaluator

logger = get_logger(__name__)


def _summary(item: EmbeddableItem) -> Dict[str, Any]:
    summary = {'id': item.id, 'name': item.name, 'description': item.description, 'status': item.status}
    if item.goal_ids:
        summary['goal_ids'] = list(item.goal_ids)
    if item.frequency:
        summary['frequency'] = item.frequency
    return summary


def _temp_summary(entity: TemporaryEntity) -> Dict[str, Any]:
    return {
        'id': entity.id,
        'thread_id': entity.thread_id,
        'type': entity.type,
        'name': entity.name,
        'description': entity.description,
        'embedding_status': entity.embedding_status.value,
        'coordinates': entity.coordinates.to_dict(),
        'similarity_scores': entity.similarity_scores.to_dict() if entity.similarity_scores else None,
    }


class AgentTools:
    """JSON-friendly results for each agent tool; errors propagate to the caller."""

    def __init__(self, life_map: LifeMapService, evaluator: OptionEvaluator):
        self.life_map = life_map
        self.evaluator = evaluator

    # Goals

    def create_goal(self, user_id: str, name: str, description: str) -> Dict[str, Any]:
        goal_id = self.life_map.create_goal(user_id, name, description)
        return {
            'goal_id': goal_id,
            'message': f'Created goal "{name}". I\'ll calculate its position in your life map based on its description.',
        }

    def list_goals(self, user_id: str) -> List[Dict[str, Any]]:
        return [_summary(goal) for goal in self.life_map.list_goals(user_id)]

    def update_goal(self,
                    user_id: str,
                    goal_id: str,
                    name: Optional[str] = None,
                    description: Optional[str] = None,
                    status: Optional[str] = None) -> Dict[str, Any]:
        self.life_map.update_goal(user_id, goal_id, name=name, description=description, status=status)
        return {'message': 'Updated goal successfully.'}

    def delete_goal(self, user_id: str, goal_id: str) -> Dict[str, Any]:
        self.life_map.delete_goal(user_id, goal_id)
        return {'message': 'Deleted goal successfully.'}

    # Projects

    def create_project(self, user_id: str, name: str, description: str, goal_ids: List[str]) -> Dict[str, Any]:
        project_id = self.life_map.create_project(user_id, name, description, goal_ids)
        return {
            'project_id': project_id,
            'message': f'Created project "{name}" linked to {len(goal_ids)} goal(s).',
        }

    def list_projects(self, user_id: str) -> List[Dict[str, Any]]:
        return [_summary(project) for project in self.life_map.list_projects(user_id)]

    def list_projects_by_goal(self, user_id: str, goal_id: str) -> List[Dict[str, Any]]:
        return [_summary(project) for project in self.life_map.list_projects_by_goal(user_id, goal_id)]

    def find_similar_projects(self, user_id: str, project_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        similar = self.life_map.find_similar_projects(user_id, project_id, limit=limit)
        return [dict(_summary(project), score=score) for project, score in similar]

    def update_project(self,
                       user_id: str,
                       project_id: str,
                       name: Optional[str] = None,
                       description: Optional[str] = None,
                       goal_ids: Optional[List[str]] = None,
                       status: Optional[str] = None) -> Dict[str, Any]:
        self.life_map.update_project(user_id,
                                     project_id,
                                     name=name,
                                     description=description,
                                     goal_ids=goal_ids,
                                     status=status)
        return {'message': 'Updated project successfully.'}

    def delete_project(self, user_id: str, project_id: str) -> Dict[str, Any]:
        self.life_map.delete_project(user_id, project_id)
        return {'message': 'Deleted project successfully.'}

    def link_project_to_goal(self, user_id: str, project_id: str, goal_id: str) -> Dict[str, Any]:
        if self.life_map.link_project_to_goal(user_id, project_id, goal_id):
            return {'message': 'Linked project to goal.'}
        return {'message': 'Project was already linked to that goal.'}

    def unlink_project_from_goal(self, user_id: str, project_id: str, goal_id: str) -> Dict[str, Any]:
        if self.life_map.unlink_project_from_goal(user_id, project_id, goal_id):
            return {'message': 'Unlinked project from goal.'}
        return {'message': 'Project was not linked to that goal.'}

    # Habits

    def create_habit(self,
                     user_id: str,
                     name: str,
                     description: str,
                     frequency: str,
                     goal_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        habit_id = self.life_map.create_habit(user_id, name, description, frequency, goal_ids or [])
        return {
            'habit_id': habit_id,
            'message': f'Created {frequency} habit "{name}".',
        }

    def list_habits(self, user_id: str) -> List[Dict[str, Any]]:
        return [_summary(habit) for habit in self.life_map.list_habits(user_id)]

    def list_habits_by_goal(self, user_id: str, goal_id: str) -> List[Dict[str, Any]]:
        return [_summary(habit) for habit in self.life_map.list_habits_by_goal(user_id, goal_id)]

    def update_habit(self,
                     user_id: str,
                     habit_id: str,
                     name: Optional[str] = None,
                     description: Optional[str] = None,
                     frequency: Optional[str] = None,
                     goal_ids: Optional[List[str]] = None,
                     status: Optional[str] = None) -> Dict[str, Any]:
        self.life_map.update_habit(user_id,
                                   habit_id,
                                   name=name,
                                   description=description,
                                   frequency=frequency,
                                   goal_ids=goal_ids,
                                   status=status)
        return {'message': 'Updated habit successfully.'}

    def delete_habit(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        self.life_map.delete_habit(user_id, habit_id)
        return {'message': 'Deleted habit successfully.'}

    # Decision analysis

    def evaluate_option(self, user_id: str, thread_id: str, option_type: str, name: str,
                        description: str) -> Dict[str, Any]:
        result = self.evaluator.evaluate_option(user_id, thread_id, option_type, name, description)
        logger.debug(f"Option {result['temp_entity_id']} matched {len(result['top_matches'])} items")
        return result

    def get_temp_entity(self, user_id: str, entity_id: str) -> Dict[str, Any]:
        return _temp_summary(self.evaluator.get_temp_entity(user_id, entity_id))

    def list_temp_entities(self, user_id: str, thread_id: str) -> List[Dict[str, Any]]:
        return [_temp_summary(entity) for entity in self.evaluator.list_temp_entities(user_id, thread_id)]

    def update_temp_entity(self,
                           user_id: str,
                           entity_id: str,
                           name: Optional[str] = None,
                           description: Optional[str] = None,
                           option_type: Optional[str] = None) -> Dict[str, Any]:
        if not self.evaluator.update_temp_entity(
                user_id, entity_id, name=name, description=description, option_type=option_type):
            return {'message': 'Nothing to update on that option.'}
        return {'message': 'Updated the option and its analysis.'}

    def remove_temp_entity(self, user_id: str, entity_id: str) -> Dict[str, Any]:
        self.evaluator.remove_temp_entity(user_id, entity_id)
        return {'message': 'Removed the option from the map.'}

    def clear_temp_entities(self, user_id: str, thread_id: str) -> Dict[str, Any]:
        self.evaluator.clear_temp_entities(user_id, thread_id)
        return {'message': 'Cleared all temporary analysis entities from the map.'}

    def get_visualization_data(self, user_id: str, thread_id: Optional[str] = None) -> Dict[str, Any]:
        return self.life_map.get_visualization_data(user_id, thread_id)
