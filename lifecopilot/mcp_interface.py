"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP

from lifecopilot.services.agent_tools import AgentTools
from lifecopilot.services.coordinate_recalculation import CoordinateRecalculationError
from lifecopilot.services.life_map import LifeMapError, LifeMapService, UnauthorizedError
from lifecopilot.services.option_evaluator import OptionEvaluationError, OptionEvaluator
from lifecopilot.utils.config import config
from lifecopilot.utils.health_check import get_health_status
from lifecopilot.utils.logging_config import get_logger
from lifecopilot.utils.opensearch_client import NotFoundError

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Life Copilot')
life_map = LifeMapService()
evaluator = OptionEvaluator(life_map.store, life_map.embedder, life_map.projector, top_k=config.projection.top_k)
tools = AgentTools(life_map, evaluator)

SERVICE_ERRORS = (LifeMapError, OptionEvaluationError, CoordinateRecalculationError, NotFoundError, UnauthorizedError,
                  ValueError)


def _run_tool(name: str, handler: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a tool handler, turning service errors into tool-call errors for the agent."""
    try:
        return handler(*args, **kwargs)
    except SERVICE_ERRORS as e:
        logger.warning(f'MCP tool {name} rejected: {e}')
        raise Exception(f'{name} failed: {e}')
    except Exception as e:
        logger.error(f'Unexpected error in MCP tool {name}: {e}', exc_info=True)
        raise Exception(f'{name} failed: internal error')


@mcp.tool()
def create_goal(user_id: str, name: str, description: str) -> Dict[str, Any]:
    """Create a new life goal for the user.

    Args:
        user_id: User ID
        name: The name of the goal
        description: A detailed description of what the goal entails

    Returns:
        The new goal's ID and a confirmation message
    """
    return _run_tool('create_goal', tools.create_goal, user_id, name, description)


@mcp.tool()
def list_goals(user_id: str) -> List[Dict[str, Any]]:
    """List all of the user's goals."""
    return _run_tool('list_goals', tools.list_goals, user_id)


@mcp.tool()
def update_goal(user_id: str,
                goal_id: str,
                name: Optional[str] = None,
                description: Optional[str] = None,
                status: Optional[str] = None) -> Dict[str, Any]:
    """Update an existing goal.

    Args:
        user_id: User ID
        goal_id: The ID of the goal to update
        name: New name for the goal
        description: New description for the goal
        status: New status: active, completed, or archived
    """
    return _run_tool('update_goal', tools.update_goal, user_id, goal_id, name=name, description=description, status=status)


@mcp.tool()
def delete_goal(user_id: str, goal_id: str) -> Dict[str, Any]:
    """Delete a goal."""
    return _run_tool('delete_goal', tools.delete_goal, user_id, goal_id)


@mcp.tool()
def create_project(user_id: str, name: str, description: str, goal_ids: List[str]) -> Dict[str, Any]:
    """Create a new project linked to one or more goals.

    Args:
        user_id: User ID
        name: The name of the project
        description: A detailed description of the project
        goal_ids: IDs of the goals this project supports
    """
    return _run_tool('create_project', tools.create_project, user_id, name, description, goal_ids)


@mcp.tool()
def list_projects(user_id: str) -> List[Dict[str, Any]]:
    """List all of the user's projects."""
    return _run_tool('list_projects', tools.list_projects, user_id)


@mcp.tool()
def list_projects_by_goal(user_id: str, goal_id: str) -> List[Dict[str, Any]]:
    """List the user's projects linked to one goal."""
    return _run_tool('list_projects_by_goal', tools.list_projects_by_goal, user_id, goal_id)


@mcp.tool()
def find_similar_projects(user_id: str, project_id: str, limit: int = 5) -> List[Dict[str, Any]]:
    """Find the user's projects most similar in meaning to one project.

    Args:
        user_id: User ID
        project_id: The project to compare against
        limit: Maximum number of projects to return

    Returns:
        Similar projects with their similarity score, most similar first
    """
    return _run_tool('find_similar_projects', tools.find_similar_projects, user_id, project_id, limit=limit)


@mcp.tool()
def update_project(user_id: str,
                   project_id: str,
                   name: Optional[str] = None,
                   description: Optional[str] = None,
                   goal_ids: Optional[List[str]] = None,
                   status: Optional[str] = None) -> Dict[str, Any]:
    """Update an existing project.

    Args:
        user_id: User ID
        project_id: The ID of the project to update
        name: New name for the project
        description: New description for the project
        goal_ids: New list of goal IDs
        status: New status: planning, in-progress, or completed
    """
    return _run_tool('update_project',
                     tools.update_project,
                     user_id,
                     project_id,
                     name=name,
                     description=description,
                     goal_ids=goal_ids,
                     status=status)


@mcp.tool()
def delete_project(user_id: str, project_id: str) -> Dict[str, Any]:
    """Delete a project."""
    return _run_tool('delete_project', tools.delete_project, user_id, project_id)


@mcp.tool()
def link_project_to_goal(user_id: str, project_id: str, goal_id: str) -> Dict[str, Any]:
    """Link a project to an additional goal."""
    return _run_tool('link_project_to_goal', tools.link_project_to_goal, user_id, project_id, goal_id)


@mcp.tool()
def unlink_project_from_goal(user_id: str, project_id: str, goal_id: str) -> Dict[str, Any]:
    """Remove a project's link to a goal."""
    return _run_tool('unlink_project_from_goal', tools.unlink_project_from_goal, user_id, project_id, goal_id)


@mcp.tool()
def create_habit(user_id: str,
                 name: str,
                 description: str,
                 frequency: str,
                 goal_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    """Create a recurring habit, optionally supporting goals.

    Args:
        user_id: User ID
        name: The name of the habit
        description: What the habit involves
        frequency: How often, e.g. daily or weekly
        goal_ids: IDs of the goals this habit supports
    """
    return _run_tool('create_habit', tools.create_habit, user_id, name, description, frequency, goal_ids)


@mcp.tool()
def list_habits(user_id: str) -> List[Dict[str, Any]]:
    """List all of the user's habits."""
    return _run_tool('list_habits', tools.list_habits, user_id)


@mcp.tool()
def list_habits_by_goal(user_id: str, goal_id: str) -> List[Dict[str, Any]]:
    """List the user's habits supporting one goal."""
    return _run_tool('list_habits_by_goal', tools.list_habits_by_goal, user_id, goal_id)


@mcp.tool()
def update_habit(user_id: str,
                 habit_id: str,
                 name: Optional[str] = None,
                 description: Optional[str] = None,
                 frequency: Optional[str] = None,
                 goal_ids: Optional[List[str]] = None,
                 status: Optional[str] = None) -> Dict[str, Any]:
    """Update an existing habit."""
    return _run_tool('update_habit',
                     tools.update_habit,
                     user_id,
                     habit_id,
                     name=name,
                     description=description,
                     frequency=frequency,
                     goal_ids=goal_ids,
                     status=status)


@mcp.tool()
def delete_habit(user_id: str, habit_id: str) -> Dict[str, Any]:
    """Delete a habit."""
    return _run_tool('delete_habit', tools.delete_habit, user_id, habit_id)


@mcp.tool()
def evaluate_option(user_id: str, thread_id: str, type: str, name: str, description: str) -> Dict[str, Any]:
    """Create a temporary entity to evaluate a potential decision, goal, or project.

    Args:
        user_id: User ID
        thread_id: Conversation thread the option belongs to
        type: The type of entity: goal, project, or event
        name: The name of the option
        description: A detailed description of the option

    Returns:
        Temporary entity ID, its map coordinates, the closest goals and project, and a message
    """
    return _run_tool('evaluate_option', tools.evaluate_option, user_id, thread_id, type, name, description)


@mcp.tool()
def get_temp_entity(user_id: str, temp_entity_id: str) -> Dict[str, Any]:
    """Get one evaluated option with its coordinates and similarity scores."""
    return _run_tool('get_temp_entity', tools.get_temp_entity, user_id, temp_entity_id)


@mcp.tool()
def list_temp_entities(user_id: str, thread_id: str) -> List[Dict[str, Any]]:
    """List the options evaluated in the current conversation thread."""
    return _run_tool('list_temp_entities', tools.list_temp_entities, user_id, thread_id)


@mcp.tool()
def update_temp_entity(user_id: str,
                       temp_entity_id: str,
                       name: Optional[str] = None,
                       description: Optional[str] = None,
                       type: Optional[str] = None) -> Dict[str, Any]:
    """Edit an evaluated option. Changing its name or description re-runs the analysis.

    Args:
        user_id: User ID
        temp_entity_id: The option to update
        name: New name for the option
        description: New description for the option
        type: New type: goal, project, or event
    """
    return _run_tool('update_temp_entity',
                     tools.update_temp_entity,
                     user_id,
                     temp_entity_id,
                     name=name,
                     description=description,
                     option_type=type)


@mcp.tool()
def remove_temp_entity(user_id: str, temp_entity_id: str) -> Dict[str, Any]:
    """Remove one evaluated option from the map."""
    return _run_tool('remove_temp_entity', tools.remove_temp_entity, user_id, temp_entity_id)


@mcp.tool()
def clear_temp_entities(user_id: str, thread_id: str) -> Dict[str, Any]:
    """Clear all temporary entities for the current conversation thread."""
    return _run_tool('clear_temp_entities', tools.clear_temp_entities, user_id, thread_id)


@mcp.tool()
def get_visualization_data(user_id: str, thread_id: Optional[str] = None) -> Dict[str, Any]:
    """Goals, projects, habits and the thread's temporary entities with their map coordinates."""
    return _run_tool('get_visualization_data', tools.get_visualization_data, user_id, thread_id)


@mcp.tool()
def health() -> Dict[str, Any]:
    """Health status of the embedding provider and document store."""
    return get_health_status(life_map.embedder, life_map.store)


def main() -> None:
    if not get_health_status(life_map.embedder, life_map.store)['healthy']:
        logger.warning('Starting Life Copilot MCP server with unhealthy components')

    transport = config.mcp.transport
    try:
        if transport == 'stdio':
            mcp.run(transport=transport)
        else:
            mcp.run(transport=transport, host=config.mcp.host, port=config.mcp.port)
    finally:
        life_map.scheduler.shutdown(wait=True)


if __name__ == '__main__':
    main()
