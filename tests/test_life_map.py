"""Tests for goal, project and habit operations."""

from unittest.mock import MagicMock

import pytest

from lifecopilot.models.core import EmbeddingStatus, EntityKind, TemporaryEntity
from lifecopilot.services.life_map import LifeMapService, UnauthorizedError
from lifecopilot.services.similarity import cosine_similarity
from lifecopilot.utils.opensearch_client import NotFoundError
from lifecopilot.utils.timestamp_utils import to_datetime
from tests.fakes.fake_store import NearRealTimeStore


@pytest.fixture
def service(store, embedder):
    service = LifeMapService(store=store, embedder=embedder)
    yield service
    service.scheduler.shutdown(wait=True)


@pytest.fixture
def deferred(store, embedder):
    """Service whose scheduler only records calls."""
    return LifeMapService(store=store, embedder=embedder, scheduler=MagicMock())


def test_create_goal_returns_before_recompute(deferred, store):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')

    stored = store.get_item(goal_id)
    assert stored.embedding_status == EmbeddingStatus.PENDING
    assert stored.embedding is None
    assert stored.status == 'active'
    deferred.scheduler.schedule.assert_called_once_with('user-1', EntityKind.GOAL, goal_id)


def test_create_goal_is_placed_after_drain(service, store):
    guitar = service.create_goal('user-1', 'Learn guitar', 'Play music')
    assert service.scheduler.drain(timeout=5)
    piano = service.create_goal('user-1', 'Learn piano', 'Play music')
    assert service.scheduler.drain(timeout=5)

    for goal_id in (guitar, piano):
        assert store.get_item(goal_id).embedding_status == EmbeddingStatus.READY
    guitar_xy = store.get_item(guitar).coordinates
    piano_xy = store.get_item(piano).coordinates
    assert (guitar_xy.x, guitar_xy.y) != (0.0, 0.0)
    assert (piano_xy.x, piano_xy.y) != (0.0, 0.0)
    assert guitar_xy != piano_xy
    # Two centered points sit opposite each other
    assert guitar_xy.x == pytest.approx(-piano_xy.x)
    assert guitar_xy.y == pytest.approx(-piano_xy.y)

    taxes = service.create_goal('user-1', 'File taxes', 'Sort out finance')
    assert service.scheduler.drain(timeout=5)
    embeddings = {goal_id: store.get_item(goal_id).embedding for goal_id in (guitar, piano, taxes)}
    similar = cosine_similarity(embeddings[guitar], embeddings[piano])
    assert similar > cosine_similarity(embeddings[guitar], embeddings[taxes])


def test_create_on_a_lagging_index_is_placed_after_drain(embedder):
    lagging = NearRealTimeStore(visible_after=2)
    service = LifeMapService(store=lagging, embedder=embedder)
    try:
        goal_id = service.create_goal('user-1', 'Learn guitar', 'Play music')
        assert service.scheduler.drain(timeout=10)
    finally:
        service.scheduler.shutdown(wait=True)

    goal = lagging.get_item(goal_id)
    assert goal.embedding_status == EmbeddingStatus.READY
    assert goal.embedding == embedder.embed('Learn guitar: Play music')


def test_create_requires_name(deferred):
    with pytest.raises(ValueError):
        deferred.create_goal('user-1', '  ', 'No name')
    deferred.scheduler.schedule.assert_not_called()


def test_create_project_defaults_to_planning(deferred, store):
    goal_id = deferred.create_goal('user-1', 'Travel', 'See the world')
    project_id = deferred.create_project('user-1', 'Learn Spanish', 'Conversational', [goal_id])

    project = store.get_item(project_id)
    assert project.status == 'planning'
    assert project.goal_ids == [goal_id]


def test_create_project_with_foreign_goal_is_rejected(deferred, store):
    foreign_goal = deferred.create_goal('user-2', 'Their goal', '')
    with pytest.raises(UnauthorizedError):
        deferred.create_project('user-1', 'Sneaky', 'Links someone else', [foreign_goal])
    assert store.list_items('user-1', EntityKind.PROJECT) == []


def test_create_project_with_unknown_goal_is_rejected(deferred):
    with pytest.raises(NotFoundError):
        deferred.create_project('user-1', 'Orphan', '', ['missing-goal'])


def test_create_habit_keeps_frequency(deferred, store):
    habit_id = deferred.create_habit('user-1', 'Practice scales', '15 minutes', 'daily')
    habit = store.get_item(habit_id)
    assert habit.frequency == 'daily'
    assert habit.kind == EntityKind.HABIT


def test_text_edit_schedules_recompute(deferred):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    deferred.scheduler.reset_mock()

    assert deferred.update_goal('user-1', goal_id, description='Play jazz') is True
    deferred.scheduler.schedule.assert_called_once_with('user-1', EntityKind.GOAL, goal_id)


def test_status_edit_does_not_schedule_recompute(deferred, store):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    deferred.scheduler.reset_mock()

    assert deferred.update_goal('user-1', goal_id, status='completed') is False
    assert store.get_item(goal_id).status == 'completed'
    deferred.scheduler.schedule.assert_not_called()


def test_update_with_same_text_does_not_schedule(deferred):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    deferred.scheduler.reset_mock()

    assert deferred.update_goal('user-1', goal_id, name='Learn guitar') is False
    deferred.scheduler.schedule.assert_not_called()


def test_update_by_other_user_is_unauthorized(deferred, store):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    with pytest.raises(UnauthorizedError):
        deferred.update_goal('user-2', goal_id, name='Hijacked')
    assert store.get_item(goal_id).name == 'Learn guitar'


def test_update_with_wrong_kind_is_not_found(deferred):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    with pytest.raises(NotFoundError):
        deferred.update_project('user-1', goal_id, name='Not a project')


def test_delete_does_not_recompute_survivors(service, store):
    keep = service.create_goal('user-1', 'Learn guitar', 'Play music')
    drop = service.create_goal('user-1', 'File taxes', 'Sort out finance')
    assert service.scheduler.drain(timeout=5)
    before = store.get_item(keep).coordinates

    assert service.delete_goal('user-1', drop) is True
    assert service.scheduler.pending_count == 0
    assert store.get_item(keep).coordinates == before
    with pytest.raises(NotFoundError):
        store.get_item(drop)


def test_delete_by_other_user_is_unauthorized(deferred, store):
    goal_id = deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    with pytest.raises(UnauthorizedError):
        deferred.delete_goal('user-2', goal_id)
    assert store.get_item(goal_id).owner_id == 'user-1'


def test_link_and_unlink_project(deferred, store):
    travel = deferred.create_goal('user-1', 'Travel', '')
    language = deferred.create_goal('user-1', 'Languages', '')
    project_id = deferred.create_project('user-1', 'Learn Spanish', '', [travel])

    assert deferred.link_project_to_goal('user-1', project_id, language) is True
    assert store.get_item(project_id).goal_ids == [travel, language]
    assert deferred.link_project_to_goal('user-1', project_id, language) is False

    assert deferred.unlink_project_from_goal('user-1', project_id, travel) is True
    assert store.get_item(project_id).goal_ids == [language]
    assert deferred.unlink_project_from_goal('user-1', project_id, travel) is False


def test_lists_are_owner_scoped(deferred):
    deferred.create_goal('user-1', 'Mine', '')
    deferred.create_goal('user-2', 'Theirs', '')
    assert [goal.name for goal in deferred.list_goals('user-1')] == ['Mine']


def test_visualization_data_hides_embeddings(service, store):
    goal_id = service.create_goal('user-1', 'Learn guitar', 'Play music')
    service.create_habit('user-1', 'Practice', 'Scales', 'daily', [goal_id])
    assert service.scheduler.drain(timeout=5)
    store.insert_temp_entity(
        TemporaryEntity(id='temp-1',
                        owner_id='user-1',
                        thread_id='thread-1',
                        type='project',
                        name='Piano lessons',
                        description='',
                        created_at=to_datetime()))
    store.insert_temp_entity(
        TemporaryEntity(id='temp-2',
                        owner_id='user-2',
                        thread_id='thread-1',
                        type='event',
                        name='Not yours',
                        description='',
                        created_at=to_datetime()))

    data = service.get_visualization_data('user-1', 'thread-1')

    assert [goal['id'] for goal in data['goals']] == [goal_id]
    assert data['habits'][0]['frequency'] == 'daily'
    assert data['habits'][0]['goal_ids'] == [goal_id]
    assert [entity['id'] for entity in data['temp_entities']] == ['temp-1']
    for view in data['goals'] + data['projects'] + data['habits'] + data['temp_entities']:
        assert 'embedding' not in view
        assert set(view['coordinates']) == {'x', 'y'}


def test_visualization_without_thread_has_no_temp_entities(deferred):
    deferred.create_goal('user-1', 'Learn guitar', 'Play music')
    assert deferred.get_visualization_data('user-1')['temp_entities'] == []


def test_goal_scoped_lists(deferred):
    music = deferred.create_goal('user-1', 'Music', '')
    health = deferred.create_goal('user-1', 'Health', '')
    album = deferred.create_project('user-1', 'Record an album', '', [music])
    deferred.create_project('user-1', 'Gym plan', '', [health])
    both = deferred.create_habit('user-1', 'Walk to lessons', '', 'weekly', [music, health])
    deferred.create_habit('user-1', 'Stretch', '', 'daily', [health])

    assert [project.id for project in deferred.list_projects_by_goal('user-1', music)] == [album]
    assert [habit.id for habit in deferred.list_habits_by_goal('user-1', music)] == [both]
    assert len(deferred.list_habits_by_goal('user-1', health)) == 2


def test_goal_scoped_list_of_foreign_goal_is_unauthorized(deferred):
    foreign_goal = deferred.create_goal('user-2', 'Their goal', '')
    with pytest.raises(UnauthorizedError):
        deferred.list_projects_by_goal('user-1', foreign_goal)
    with pytest.raises(NotFoundError):
        deferred.list_habits_by_goal('user-1', 'missing-goal')


def test_find_similar_projects(deferred, make_item, embedder):

    def project(name, description, owner_id='user-1', ready=True):
        embedding = embedder.embed(f'{name}: {description}') if ready else None
        return make_item(owner_id=owner_id,
                         kind=EntityKind.PROJECT,
                         name=name,
                         description=description,
                         embedding=embedding)

    album = project('Record an album', 'song every week')
    tour = project('Band tour', 'music')
    budget = project('Household budget', 'money')
    project('Piano recital', 'music', ready=False)
    project('Their band', 'music', owner_id='user-2')

    similar = deferred.find_similar_projects('user-1', album.id)

    assert [item.id for item, _ in similar] == [tour.id, budget.id]
    assert similar[0][1] > similar[1][1]
    assert [item.id for item, _ in deferred.find_similar_projects('user-1', album.id, limit=1)] == [tour.id]


def test_pending_project_has_no_similar_projects(deferred, make_item, embedder):
    make_item(kind=EntityKind.PROJECT, name='Band tour', description='music', embedding=embedder.embed('Band tour: music'))
    pending = make_item(kind=EntityKind.PROJECT, name='Piano recital', description='music')
    assert deferred.find_similar_projects('user-1', pending.id) == []


def test_find_similar_projects_of_other_user_is_unauthorized(deferred, make_item, embedder):
    theirs = make_item(owner_id='user-2',
                       kind=EntityKind.PROJECT,
                       name='Band tour',
                       description='music',
                       embedding=embedder.embed('Band tour: music'))
    with pytest.raises(UnauthorizedError):
        deferred.find_similar_projects('user-1', theirs.id)
