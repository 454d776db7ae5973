"""Pull request operations: details, comment threads, replies and thread status."""

import logfire
from loguru import logger as default_logger
from tl.azure_devops_integration import fields as f
from tl.azure_devops_integration.auth import parse_azure_devops_url
from tl.azure_devops_integration.client import AzureDevOpsClient
from tl.azure_devops_integration.errors import NotFound, UpstreamError, ValidationError, upstream_failure
from tl.azure_devops_integration.models import CommentThreadRecord, PullRequestRecord, Record
from tl.azure_devops_integration.status import (
    comment_thread_status_code,
    normalize_comment_thread_status,
    normalize_pull_request_status,
)
from typing import Any, Callable, Dict, List, Mapping, Optional


TEXT_COMMENT = 1
ACTIVE_THREAD = 1
NO_STATUS = (0, 'unknown')


def _require_repository(repository_id: Any) -> str:
    if not isinstance(repository_id, str) or not repository_id.strip():
        raise ValidationError('Repository ID is required')
    return repository_id.strip()


def shape_comment(comment: Mapping[str, Any]) -> Record:
    return Record(
        id=comment.get('id'),
        content=comment.get('content'),
        author=comment.get('author'),
        published_date=comment.get('publishedDate'),
        last_updated_date=comment.get('lastUpdatedDate'),
        parent_comment_id=comment.get('parentCommentId'),
        comment_type=comment.get('commentType'),
        is_deleted=comment.get('isDeleted', False),
    )


def shape_thread(thread: Mapping[str, Any]) -> CommentThreadRecord:
    """Shape a comment thread payload.

    System threads carry no status (or 'unknown', code 0) and are reported
    with status None.
    """
    status = thread.get('status')
    if status in NO_STATUS:
        status = None
    context = thread.get('threadContext')
    thread_context = None
    if context:
        position = context.get('rightFileStart') or {}
        thread_context = {'file_path': context.get('filePath'), 'line': position.get('line')}

    return CommentThreadRecord(
        id=thread.get('id'),
        status=normalize_comment_thread_status(status) if status is not None else None,
        thread_context=thread_context,
        is_deleted=thread.get('isDeleted', False),
        published_date=thread.get('publishedDate'),
        last_updated_date=thread.get('lastUpdatedDate'),
        comments=[shape_comment(comment) for comment in thread.get('comments') or []],
    )


class PullRequestManager:
    """Read pull requests and manage their comment threads."""

    def __init__(self, client: AzureDevOpsClient, logger: Any = None) -> None:
        """Initialize the pull request manager.

        Args:
            client: Azure DevOps client handle
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.client = client
        self.logger = logger or default_logger.bind(component='pull_requests')

    def _detail(self, name: str, fetch: Callable[[], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        try:
            return fetch()
        except (UpstreamError, NotFound) as e:
            self.logger.warning(f'Could not retrieve pull request {name}: {str(e)}')
            return []

    def get_pull_request_commits(self, repository_id: str, pull_request_id: int) -> List[Dict[str, Any]]:
        """Commits of the latest iteration of a pull request."""
        iterations = self.client.get_pull_request_iterations(repository_id, pull_request_id)
        if not iterations:
            return []
        latest = iterations[-1]
        commits = self.client.get_pull_request_iteration_commits(
            repository_id, pull_request_id, latest['id']
        )
        return [
            {
                'commit_id': commit.get('commitId'),
                'comment': commit.get('comment'),
                'author': commit.get('author'),
                'committer': commit.get('committer'),
                'url': commit.get('url'),
            }
            for commit in commits
        ]

    def get_pull_request_work_items(self, repository_id: str, pull_request_id: int) -> List[Dict[str, Any]]:
        refs = self.client.get_pull_request_work_item_refs(repository_id, pull_request_id)
        return [{'id': ref.get('id'), 'url': ref.get('url')} for ref in refs]

    def get_pull_request_iterations(self, repository_id: str, pull_request_id: int) -> List[Dict[str, Any]]:
        iterations = self.client.get_pull_request_iterations(repository_id, pull_request_id)
        return [
            {
                'id': iteration.get('id'),
                'description': iteration.get('description'),
                'author': iteration.get('author'),
                'created_date': iteration.get('createdDate'),
                'updated_date': iteration.get('updatedDate'),
            }
            for iteration in iterations
        ]

    def get_pull_request(
        self, repository_id: str, pull_request_id: Any, include_details: bool = True
    ) -> PullRequestRecord:
        """Retrieve a pull request.

        Args:
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            include_details: Also fetch commits, linked work items and iterations;
                a detail that cannot be fetched is reported as an empty list

        Returns:
            PullRequestRecord with the status translated to its label
        """
        repository_id = _require_repository(repository_id)
        pull_request_id = f.require_id(pull_request_id, 'pull request')

        self.logger.info(f'Retrieving pull request {pull_request_id} from repository {repository_id}')
        try:
            payload = self.client.get_pull_request(repository_id, pull_request_id)
        except NotFound:
            raise NotFound(f'Pull request {pull_request_id} not found')
        except UpstreamError as e:
            logfire.error('Failed to retrieve Azure DevOps pull request', error=str(e))
            raise upstream_failure(e, 'retrieve pull request')
        if not payload:
            raise NotFound(f'Pull request {pull_request_id} not found')

        repository = payload.get('repository') or {}
        web_url = repository.get('webUrl')
        record = PullRequestRecord(
            id=payload.get('pullRequestId'),
            title=payload.get('title'),
            description=payload.get('description'),
            status=normalize_pull_request_status(payload['status']) if payload.get('status') is not None else None,
            created_by=payload.get('createdBy'),
            creation_date=payload.get('creationDate'),
            source_branch=payload.get('sourceRefName'),
            target_branch=payload.get('targetRefName'),
            repository={'id': repository.get('id'), 'name': repository.get('name'), 'url': web_url},
            url=f'{web_url}/pullrequest/{payload.get("pullRequestId")}' if web_url else None,
            reviewers=[
                {
                    'id': reviewer.get('id'),
                    'display_name': reviewer.get('displayName'),
                    'unique_name': reviewer.get('uniqueName'),
                    'vote': reviewer.get('vote'),
                    'is_required': reviewer.get('isRequired', False),
                }
                for reviewer in payload.get('reviewers') or []
            ],
        )

        if include_details:
            record['commits'] = self._detail(
                'commits', lambda: self.get_pull_request_commits(repository_id, pull_request_id)
            )
            record['work_items'] = self._detail(
                'work items', lambda: self.get_pull_request_work_items(repository_id, pull_request_id)
            )
            record['iterations'] = self._detail(
                'iterations', lambda: self.get_pull_request_iterations(repository_id, pull_request_id)
            )

        logfire.info(
            'Retrieved Azure DevOps pull request',
            pull_request_id=pull_request_id,
            repository_id=repository_id,
        )
        return record

    def get_pull_request_by_url(self, url: str, include_details: bool = True) -> PullRequestRecord:
        """Retrieve a pull request from its web URL.

        The repository name in the URL is resolved to its ID within the URL's project.
        """
        parsed = parse_azure_devops_url(url)
        if parsed['type'] != 'pull_request':
            raise ValidationError(f'Not a pull request URL: {url}')

        try:
            repositories = self.client.get_repositories(parsed['project'])
        except UpstreamError as e:
            raise upstream_failure(e, 'resolve repository')

        wanted = parsed['repository'].lower()
        for repository in repositories:
            if str(repository.get('name', '')).lower() == wanted:
                return self.get_pull_request(
                    repository['id'], parsed['pull_request_id'], include_details
                )
        raise NotFound(
            f'Repository {parsed["repository"]} not found in project {parsed["project"]}'
        )

    def get_pull_request_comments(
        self, repository_id: str, pull_request_id: Any, include_threads: bool = True
    ) -> List[CommentThreadRecord]:
        """List comment threads of a pull request.

        Args:
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            include_threads: Include threads without comments
        """
        repository_id = _require_repository(repository_id)
        pull_request_id = f.require_id(pull_request_id, 'pull request')

        try:
            threads = self.client.get_pull_request_threads(repository_id, pull_request_id)
        except NotFound:
            raise NotFound(f'Pull request {pull_request_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'fetch pull request comments')

        records = [shape_thread(thread) for thread in threads]
        if not include_threads:
            records = [record for record in records if record.comments]
        self.logger.info(f'Retrieved {len(records)} comment threads')
        return records

    def add_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: Any,
        comment: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> CommentThreadRecord:
        """Open a new Active comment thread.

        Args:
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            comment: Comment text
            file_path: Anchor the thread to this file
            line: Line in file_path to anchor to

        Returns:
            The created thread
        """
        repository_id = _require_repository(repository_id)
        pull_request_id = f.require_id(pull_request_id, 'pull request')
        f.require_text(comment, 'Comment')

        thread: Dict[str, Any] = {
            'comments': [{'parentCommentId': 0, 'content': comment, 'commentType': TEXT_COMMENT}],
            'status': ACTIVE_THREAD,
        }
        if file_path:
            path = file_path if file_path.startswith('/') else f'/{file_path}'
            context: Dict[str, Any] = {'filePath': path}
            if line is not None:
                line = f.require_id(line, 'line')
                context['rightFileStart'] = {'line': line, 'offset': 1}
                context['rightFileEnd'] = {'line': line, 'offset': 1}
            thread['threadContext'] = context

        try:
            created = self.client.create_pull_request_thread(repository_id, pull_request_id, thread)
        except NotFound:
            raise NotFound(f'Pull request {pull_request_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'add pull request comment')

        record = shape_thread(created)
        self.logger.info(f'Added comment thread {record.id} to pull request {pull_request_id}')
        logfire.info(
            'Added Azure DevOps pull request comment',
            pull_request_id=pull_request_id,
            thread_id=record.id,
            file_path=file_path,
        )
        return record

    def _find_thread(self, repository_id: str, pull_request_id: int, comment_id: int) -> int:
        for thread in self.client.get_pull_request_threads(repository_id, pull_request_id):
            for comment in thread.get('comments') or []:
                if comment.get('id') == comment_id:
                    return thread['id']
        raise NotFound(f'Comment {comment_id} not found in pull request {pull_request_id}')

    def reply_to_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: Any,
        parent_comment_id: Any,
        reply: str,
        thread_id: Optional[Any] = None,
    ) -> Record:
        """Reply to an existing comment.

        The owning thread is looked up when thread_id is not given.

        Raises:
            NotFound: If the parent comment does not exist
        """
        repository_id = _require_repository(repository_id)
        pull_request_id = f.require_id(pull_request_id, 'pull request')
        parent_comment_id = f.require_id(parent_comment_id, 'parent comment')
        f.require_text(reply, 'Reply')

        try:
            if thread_id is None:
                thread_id = self._find_thread(repository_id, pull_request_id, parent_comment_id)
            else:
                thread_id = f.require_id(thread_id, 'thread')
            created = self.client.create_pull_request_comment(
                repository_id,
                pull_request_id,
                thread_id,
                {'parentCommentId': parent_comment_id, 'content': reply, 'commentType': TEXT_COMMENT},
            )
        except UpstreamError as e:
            raise upstream_failure(e, 'reply to pull request comment')

        self.logger.info(f'Replied to comment {parent_comment_id} in thread {thread_id}')
        record = shape_comment(created)
        record['thread_id'] = thread_id
        return record

    def update_comment_thread_status(
        self, repository_id: str, pull_request_id: Any, thread_id: Any, status: str
    ) -> CommentThreadRecord:
        """Set the status of a comment thread.

        Raises:
            UnknownStatus: If status is not a comment thread status label
        """
        repository_id = _require_repository(repository_id)
        pull_request_id = f.require_id(pull_request_id, 'pull request')
        thread_id = f.require_id(thread_id, 'thread')
        code = comment_thread_status_code(status)

        try:
            updated = self.client.update_pull_request_thread(
                repository_id, pull_request_id, thread_id, {'status': code}
            )
        except NotFound:
            raise NotFound(f'Thread {thread_id} not found in pull request {pull_request_id}')
        except UpstreamError as e:
            raise upstream_failure(e, 'update comment thread status')

        logfire.info(
            'Updated Azure DevOps comment thread status',
            pull_request_id=pull_request_id,
            thread_id=thread_id,
            status=status,
        )
        return shape_thread(updated)

    def get_repositories(self) -> List[Record]:
        """Repositories of the configured project."""
        try:
            repositories = self.client.get_repositories()
        except UpstreamError as e:
            raise upstream_failure(e, 'list repositories')
        return [
            Record(
                id=repository.get('id'),
                name=repository.get('name'),
                url=repository.get('webUrl'),
                default_branch=repository.get('defaultBranch'),
            )
            for repository in repositories
        ]
