"""Tests for PullRequestManager against the in-memory client."""

import pytest
from fakes import upstream
from tl.azure_devops_integration.errors import NotFound, UnknownStatus, UpstreamError, ValidationError
from tl.azure_devops_integration.pull_requests import shape_thread


def test_get_pull_request(pull_requests, fake_client, seeded_pull_request):
    fake_client.iterations[('repo-1', 42)] = [
        {'id': 1, 'description': 'first push', 'createdDate': '2024-05-01T10:00:00Z'},
        {'id': 2, 'description': 'review fixes', 'createdDate': '2024-05-02T10:00:00Z'},
    ]
    fake_client.commits[('repo-1', 42, 2)] = [{'commitId': 'abc123', 'comment': 'Fix typo'}]
    fake_client.work_item_refs[('repo-1', 42)] = [{'id': '17', 'url': 'https://x/17'}]

    pull_request = pull_requests.get_pull_request('repo-1', 42)

    assert pull_request.id == 42
    assert pull_request.status == 'Active'
    assert pull_request.source_branch == 'refs/heads/feature/login'
    assert pull_request.repository == {
        'id': 'repo-1',
        'name': 'web',
        'url': 'https://dev.azure.com/acme/Demo/_git/web',
    }
    assert pull_request.url == 'https://dev.azure.com/acme/Demo/_git/web/pullrequest/42'
    assert pull_request.reviewers[0]['display_name'] == 'Grace Hopper'
    assert pull_request.reviewers[0]['is_required'] is False
    assert [commit['commit_id'] for commit in pull_request.commits] == ['abc123']
    assert pull_request.work_items == [{'id': '17', 'url': 'https://x/17'}]
    assert [iteration['id'] for iteration in pull_request.iterations] == [1, 2]


def test_get_pull_request_without_details(pull_requests, fake_client, seeded_pull_request):
    pull_request = pull_requests.get_pull_request('repo-1', 42, include_details=False)
    assert 'commits' not in pull_request
    assert not any(call[0] == 'get_pull_request_iterations' for call in fake_client.calls)


def test_failed_details_degrade_to_empty_lists(pull_requests, fake_client, seeded_pull_request):
    fake_client.failures['get_pull_request_iterations'] = upstream(500)
    fake_client.work_item_refs[('repo-1', 42)] = [{'id': '17', 'url': 'https://x/17'}]

    pull_request = pull_requests.get_pull_request('repo-1', 42)
    assert pull_request.commits == []
    assert pull_request.iterations == []
    assert pull_request.work_items == [{'id': '17', 'url': 'https://x/17'}]


def test_numeric_status_is_translated(pull_requests, fake_client, pull_request_payload):
    fake_client.add_pull_request('repo-1', dict(pull_request_payload, status=3))
    assert pull_requests.get_pull_request('repo-1', 42, False).status == 'Completed'


def test_missing_pull_request(pull_requests):
    with pytest.raises(NotFound, match='Pull request 9 not found'):
        pull_requests.get_pull_request('repo-1', 9)


@pytest.mark.parametrize('repository_id', ['', '  ', None])
def test_repository_is_required(pull_requests, repository_id):
    with pytest.raises(ValidationError, match='Repository ID is required'):
        pull_requests.get_pull_request(repository_id, 42)


def test_upstream_failure_is_described(pull_requests, fake_client, seeded_pull_request):
    fake_client.failures['get_pull_request'] = upstream(401)
    with pytest.raises(UpstreamError, match='Authentication failed while trying to retrieve pull request'):
        pull_requests.get_pull_request('repo-1', 42)


def test_get_pull_request_by_url(pull_requests, fake_client, seeded_pull_request):
    pull_request = pull_requests.get_pull_request_by_url(
        'https://dev.azure.com/acme/Demo/_git/Web/pullrequest/42', include_details=False
    )
    assert pull_request.id == 42
    assert ('get_repositories', 'Demo') in fake_client.calls
    assert ('get_pull_request', 'repo-1', 42) in fake_client.calls


def test_get_pull_request_by_url_unknown_repository(pull_requests, seeded_pull_request):
    with pytest.raises(NotFound, match='Repository api not found in project Demo'):
        pull_requests.get_pull_request_by_url('https://dev.azure.com/acme/Demo/_git/api/pullrequest/42')


def test_get_pull_request_by_url_rejects_other_urls(pull_requests):
    with pytest.raises(ValidationError, match='Not a pull request URL'):
        pull_requests.get_pull_request_by_url('https://dev.azure.com/acme/Demo/_workitems/edit/5')


def test_add_comment_opens_active_thread(pull_requests, fake_client, seeded_pull_request):
    thread = pull_requests.add_pull_request_comment('repo-1', 42, 'Looks good')

    assert thread.status == 'Active'
    assert thread.thread_context is None
    assert thread.comments[0].content == 'Looks good'
    assert thread.comments[0].parent_comment_id == 0

    _, _, _, sent = fake_client.calls[-1]
    assert sent == {
        'comments': [{'parentCommentId': 0, 'content': 'Looks good', 'commentType': 1}],
        'status': 1,
    }


def test_add_comment_anchored_to_file_line(pull_requests, fake_client, seeded_pull_request):
    thread = pull_requests.add_pull_request_comment('repo-1', 42, 'Rename this', 'src/app.py', 12)

    assert thread.thread_context == {'file_path': '/src/app.py', 'line': 12}
    _, _, _, sent = fake_client.calls[-1]
    assert sent['threadContext'] == {
        'filePath': '/src/app.py',
        'rightFileStart': {'line': 12, 'offset': 1},
        'rightFileEnd': {'line': 12, 'offset': 1},
    }


def test_add_comment_requires_content(pull_requests, seeded_pull_request):
    with pytest.raises(ValidationError, match='Comment is required'):
        pull_requests.add_pull_request_comment('repo-1', 42, '')


def test_add_comment_to_missing_pull_request(pull_requests):
    with pytest.raises(NotFound):
        pull_requests.add_pull_request_comment('repo-1', 7, 'hello')


def test_get_comments(pull_requests, fake_client, seeded_pull_request):
    pull_requests.add_pull_request_comment('repo-1', 42, 'First')
    fake_client.threads[('repo-1', 42)].append(
        {'id': 99, 'status': 'unknown', 'comments': [], 'isDeleted': False}
    )

    threads = pull_requests.get_pull_request_comments('repo-1', 42)
    assert [thread.id for thread in threads] == [1, 99]
    assert threads[1].status is None

    with_comments = pull_requests.get_pull_request_comments('repo-1', 42, include_threads=False)
    assert [thread.id for thread in with_comments] == [1]


def test_reply_finds_thread_of_parent_comment(pull_requests, fake_client, seeded_pull_request):
    pull_requests.add_pull_request_comment('repo-1', 42, 'First')
    second = pull_requests.add_pull_request_comment('repo-1', 42, 'Second')
    parent_id = second.comments[0].id

    reply = pull_requests.reply_to_pull_request_comment('repo-1', 42, parent_id, 'Agreed')
    assert reply.thread_id == second.id
    assert reply.parent_comment_id == parent_id
    assert reply.content == 'Agreed'
    assert len(fake_client.threads[('repo-1', 42)][1]['comments']) == 2


def test_reply_to_missing_comment(pull_requests, seeded_pull_request):
    pull_requests.add_pull_request_comment('repo-1', 42, 'First')
    with pytest.raises(NotFound, match='Comment 500 not found'):
        pull_requests.reply_to_pull_request_comment('repo-1', 42, 500, 'Hello?')


def test_reply_with_explicit_thread(pull_requests, fake_client, seeded_pull_request):
    thread = pull_requests.add_pull_request_comment('repo-1', 42, 'First')
    reply = pull_requests.reply_to_pull_request_comment(
        'repo-1', 42, thread.comments[0].id, 'Done', thread_id=thread.id
    )
    assert reply.thread_id == thread.id
    assert not any(call[0] == 'get_pull_request_threads' for call in fake_client.calls)


def test_update_comment_thread_status(pull_requests, fake_client, seeded_pull_request):
    thread = pull_requests.add_pull_request_comment('repo-1', 42, 'Fix this')
    updated = pull_requests.update_comment_thread_status('repo-1', 42, thread.id, 'fixed')

    assert updated.status == 'Fixed'
    _, _, _, thread_id, sent = fake_client.calls[-1]
    assert thread_id == thread.id
    assert sent == {'status': 2}


def test_update_comment_thread_status_rejects_unknown_label(pull_requests, fake_client, seeded_pull_request):
    thread = pull_requests.add_pull_request_comment('repo-1', 42, 'Fix this')
    calls = len(fake_client.calls)
    with pytest.raises(UnknownStatus):
        pull_requests.update_comment_thread_status('repo-1', 42, thread.id, 'Resolved')
    assert len(fake_client.calls) == calls


def test_update_status_of_missing_thread(pull_requests, seeded_pull_request):
    with pytest.raises(NotFound, match='Thread 3 not found'):
        pull_requests.update_comment_thread_status('repo-1', 42, 3, 'Closed')


def test_get_repositories(pull_requests, fake_client):
    fake_client.repositories.append(
        {'id': 'repo-2', 'name': 'api', 'webUrl': 'https://x/api', 'defaultBranch': 'refs/heads/main'}
    )
    assert pull_requests.get_repositories() == [
        {'id': 'repo-2', 'name': 'api', 'url': 'https://x/api', 'default_branch': 'refs/heads/main'}
    ]


def test_shape_thread_with_numeric_status():
    thread = shape_thread(
        {
            'id': 5,
            'status': 4,
            'threadContext': {'filePath': '/README.md'},
            'comments': [{'id': 1, 'content': 'Done', 'author': {'displayName': 'Ada'}}],
        }
    )
    assert thread.status == 'Closed'
    assert thread.thread_context == {'file_path': '/README.md', 'line': None}
    assert thread.comments[0].is_deleted is False
