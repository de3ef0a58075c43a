"""Tests for MCP tool error handling."""

import importlib
import logging
import re
from unittest.mock import patch

import pytest

from lifecopilot.services.life_map import UnauthorizedError
from lifecopilot.utils.opensearch_client import NotFoundError


@pytest.fixture(scope='module')
def mcp_interface():
    with patch('lifecopilot.services.life_map.OpenSearchClient') as store_cls, \
            patch('lifecopilot.services.life_map.BedrockEmbed'):
        store_cls.return_value.create_index_if_not_exists.return_value = 'exists'
        module = importlib.import_module('lifecopilot.mcp_interface')
    yield module
    module.life_map.scheduler.shutdown(wait=True)


def test_result_is_returned(mcp_interface):
    assert mcp_interface._run_tool('list_goals', lambda user_id: [user_id], 'user-1') == ['user-1']


@pytest.mark.parametrize('error', [UnauthorizedError('Item goal-1 does not belong to user user-2'),
                                   NotFoundError('Item goal-1 not found'),
                                   ValueError('User ID is required')])
def test_service_error_is_a_warning_with_its_message(mcp_interface, error, caplog):

    def handler():
        raise error

    with caplog.at_level(logging.WARNING, logger='lifecopilot.mcp_interface'):
        with pytest.raises(Exception, match=re.escape(f'delete_goal failed: {error}')):
            mcp_interface._run_tool('delete_goal', handler)

    levels = [record.levelno for record in caplog.records if record.name == 'lifecopilot.mcp_interface']
    assert levels == [logging.WARNING]


def test_unexpected_error_is_logged_with_traceback_and_hidden(mcp_interface, caplog):

    def handler():
        raise KeyError('coordinates')

    with caplog.at_level(logging.WARNING, logger='lifecopilot.mcp_interface'):
        with pytest.raises(Exception) as raised:
            mcp_interface._run_tool('get_visualization_data', handler)

    assert str(raised.value) == 'get_visualization_data failed: internal error'
    [record] = [record for record in caplog.records if record.name == 'lifecopilot.mcp_interface']
    assert record.levelno == logging.ERROR
    assert record.exc_info is not None
