"""Tests for the REST client with a stubbed requests session."""

import json
import pytest
import requests
from tl.azure_devops_integration.client import RestAzureDevOpsClient
from tl.azure_devops_integration.errors import NotFound, UpstreamError
from unittest.mock import MagicMock


def make_response(status_code=200, payload=None, url='https://dev.azure.com/acme/Demo/_apis/x', content_type='application/json'):
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.headers['Content-Type'] = content_type
    if payload is None:
        response._content = b''
    elif isinstance(payload, (bytes, str)):
        response._content = payload.encode() if isinstance(payload, str) else payload
    else:
        response._content = json.dumps(payload).encode()
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(session):
    return RestAzureDevOpsClient(
        'https://dev.azure.com/acme/',
        'Demo Project',
        {'Authorization': 'Basic abc'},
        timeout=12,
        session=session,
    )


def _call(session, index=-1):
    args, kwargs = session.request.call_args_list[index]
    return args[0], args[1], kwargs


def test_headers_are_applied_to_session(client, session):
    assert session.headers['Authorization'] == 'Basic abc'
    assert client.organization_url == 'https://dev.azure.com/acme'


def test_default_session_mounts_retry_adapter():
    client = RestAzureDevOpsClient('https://dev.azure.com/acme', 'Demo', {}, max_retries=5)
    adapter = client.session.get_adapter('https://dev.azure.com/acme')
    assert adapter.max_retries.total == 5
    assert 429 in adapter.max_retries.status_forcelist
    client.close()


def test_create_work_item_posts_json_patch(client, session):
    session.request.return_value = make_response(200, {'id': 1, 'fields': {}})
    document = [{'op': 'add', 'path': '/fields/System.Title', 'value': 'T'}]

    assert client.create_work_item('Product Backlog Item', document) == {'id': 1, 'fields': {}}

    method, url, kwargs = _call(session)
    assert method == 'POST'
    assert url == 'https://dev.azure.com/acme/Demo%20Project/_apis/wit/workitems/$Product%20Backlog%20Item'
    assert kwargs['json'] == document
    assert kwargs['headers'] == {'Content-Type': 'application/json-patch+json'}
    assert kwargs['params'] == {'api-version': '7.1', 'bypassRules': 'true'}
    assert kwargs['timeout'] == 12


def test_get_work_items_batches_ids(client, session):
    session.request.side_effect = [
        make_response(200, {'value': [{'id': i} for i in range(1, 201)]}),
        make_response(200, {'value': [{'id': 201}]}),
    ]
    work_items = client.get_work_items(list(range(1, 202)))
    assert len(work_items) == 201
    assert session.request.call_count == 2
    _, _, kwargs = _call(session, 1)
    assert kwargs['params']['ids'] == '201'
    assert kwargs['params']['$expand'] == 'all'


def test_delete_defaults_to_recycle_bin(client, session):
    session.request.return_value = make_response(200, {'id': 3})
    client.delete_work_item(3)
    _, _, kwargs = _call(session)
    assert kwargs['params']['destroy'] == 'false'


def test_comments_use_preview_api_version(client, session):
    session.request.return_value = make_response(200, {'comments': [{'id': 1, 'text': 'hi'}]})
    assert client.get_work_item_comments(5) == [{'id': 1, 'text': 'hi'}]
    _, url, kwargs = _call(session)
    assert url.endswith('/_apis/wit/workItems/5/comments')
    assert kwargs['params']['api-version'] == '7.1-preview.4'


def test_pull_request_thread_url(client, session):
    session.request.return_value = make_response(200, {'value': []})
    client.get_pull_request_threads('web', 42)
    _, url, _ = _call(session)
    assert url == 'https://dev.azure.com/acme/Demo%20Project/_apis/git/repositories/web/pullRequests/42/threads'


def test_projects_are_organization_scoped(client, session):
    session.request.return_value = make_response(200, {'value': [{'name': 'Demo'}]})
    assert client.get_projects() == [{'name': 'Demo'}]
    _, url, _ = _call(session)
    assert url == 'https://dev.azure.com/acme/_apis/projects'


def test_permission_check_endpoints(client, session):
    session.request.return_value = make_response(200, {'value': [{'id': 7}]})

    assert client.get_work_item_types() == [{'id': 7}]
    assert _call(session)[1].endswith('/Demo%20Project/_apis/wit/workitemtypes')

    client.get_test_plans()
    assert _call(session)[1].endswith('/Demo%20Project/_apis/testplan/plans')

    client.get_builds()
    _, url, kwargs = _call(session)
    assert url.endswith('/Demo%20Project/_apis/build/builds')
    assert kwargs['params'] == {'api-version': '7.1', '$top': 1}


def test_not_found_raises_not_found(client, session):
    session.request.return_value = make_response(404, {'message': 'TF401232: Work item 9 does not exist'})
    with pytest.raises(NotFound, match='TF401232'):
        client.get_work_item(9)


@pytest.mark.parametrize('status_code', [400, 401, 403, 500])
def test_error_status_raises_upstream_error(client, session, status_code):
    session.request.return_value = make_response(status_code, {'message': 'nope'})
    with pytest.raises(UpstreamError) as excinfo:
        client.get_work_item(1)
    assert excinfo.value.status_code == status_code
    assert str(excinfo.value) == 'nope'


def test_nested_error_message_is_extracted(client, session):
    session.request.return_value = make_response(400, {'error': {'message': 'bad wiql'}})
    with pytest.raises(UpstreamError, match='bad wiql'):
        client.query_by_wiql('SELECT')


def test_sign_in_redirect_is_an_authentication_failure(client, session):
    session.request.return_value = make_response(
        200, '<html></html>', url='https://app.vssps.visualstudio.com/_signin?realm=x', content_type='text/html'
    )
    with pytest.raises(UpstreamError) as excinfo:
        client.get_projects()
    assert excinfo.value.status_code == 401


def test_html_response_is_rejected(client, session):
    session.request.return_value = make_response(200, '<html></html>', content_type='text/html')
    with pytest.raises(UpstreamError, match='HTML'):
        client.get_projects()


def test_empty_response_body(client, session):
    session.request.return_value = make_response(204)
    assert client.delete_work_item(1, destroy=True) == {}


def test_connection_errors_become_upstream_errors(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError('refused')
    with pytest.raises(UpstreamError, match='refused') as excinfo:
        client.get_projects()
    assert excinfo.value.status_code is None


def test_work_item_url(client):
    assert client.work_item_url(7) == 'https://dev.azure.com/acme/Demo%20Project/_apis/wit/workItems/7'
