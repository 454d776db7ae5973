"""FastAPI app: REST wrapper over the Azure DevOps integration."""

import os
import uvicorn
from datetime import datetime, timezone
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field
from tl.azure_devops_integration.config import load_config
from tl.azure_devops_integration.errors import (
    AzureDevOpsError,
    InvalidConfiguration,
    MalformedStepXml,
    NotFound,
    NotInitialized,
    UnknownStatus,
    UpstreamError,
    ValidationError,
)
from tl.azure_devops_integration.integration import AzureDevOpsIntegration
from typing import Any, Dict, List, Optional


# Most specific first; InvalidToken is an InvalidConfiguration
ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidConfiguration, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotInitialized, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnknownStatus, status.HTTP_400_BAD_REQUEST),
    (MalformedStepXml, status.HTTP_400_BAD_REQUEST),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(error: AzureDevOpsError) -> int:
    """HTTP status code for an integration error."""
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class WorkItemCreate(BaseModel):
    """Body of the work item creation routes; other keys are passed as options."""

    model_config = {'extra': 'allow'}

    title: str = ''
    description: str = ''

    def options(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class TestCaseCreate(WorkItemCreate):
    __test__ = False  # not a pytest test class

    steps: List[Dict[str, Any]] = Field(default_factory=list)


class SearchRequest(BaseModel):
    query: str = ''


class PullRequestCommentCreate(BaseModel):
    content: str = ''
    file_path: Optional[str] = None
    line: Optional[int] = None


class CommentReply(BaseModel):
    parent_comment_id: int
    content: str = ''
    thread_id: Optional[int] = None


class ThreadStatusUpdate(BaseModel):
    status: str


class CommentCreate(BaseModel):
    text: str = ''


def create_app(integration: Optional[AzureDevOpsIntegration] = None) -> FastAPI:
    """Build the FastAPI app around an integration facade.

    Routes are plain functions; FastAPI runs them in its worker thread pool.
    """
    integration = integration or AzureDevOpsIntegration()
    app = FastAPI(
        title='Azure DevOps Integration',
        description='REST wrapper for Azure DevOps work items, test cases and pull requests',
    )
    app.state.integration = integration

    @app.exception_handler(AzureDevOpsError)
    async def azure_devops_error_handler(request: Request, exc: AzureDevOpsError) -> JSONResponse:
        code = status_code_for(exc)
        if code >= 500:
            logger.error(f'{request.method} {request.url.path} failed: {str(exc)}')
        else:
            logger.warning(f'{request.method} {request.url.path} rejected: {str(exc)}')
        return JSONResponse(
            status_code=code, content={'error': str(exc), 'error_type': type(exc).__name__}
        )

    @app.get('/health')
    def health() -> Dict[str, Any]:
        """Health check for monitoring and deploys."""
        return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}

    @app.post('/api/initialize')
    def initialize() -> Dict[str, Any]:
        try:
            integration.initialize()
        except AzureDevOpsError as e:
            raise NotInitialized(f'Failed to initialize Azure DevOps integration: {str(e)}') from e
        return {'success': True, 'message': 'Azure DevOps connection initialized'}

    @app.get('/api/test-connection')
    def test_connection() -> Dict[str, Any]:
        result = integration.test_connection()
        response = {'connected': result.success, 'project': integration.config.project}
        if result.success:
            response['organization'] = integration.get_organization_info().name
            response['project_count'] = result.project_count
        else:
            response['error'] = result.error
        return response

    @app.get('/api/organization')
    def organization() -> Dict[str, Any]:
        return integration.get_organization_info()

    @app.get('/api/repositories')
    def repositories() -> List[Dict[str, Any]]:
        return integration.get_repositories()

    @app.get('/api/permissions')
    def permissions(areas: Optional[str] = None) -> Dict[str, Any]:
        """Availability of each API area; ?areas= takes a comma-separated list."""
        selected = [area.strip() for area in areas.split(',') if area.strip()] if areas else None
        return integration.validate_permissions(selected)

    # Work items

    @app.post('/api/workitems/user-story', status_code=status.HTTP_201_CREATED)
    def create_user_story(body: WorkItemCreate) -> Dict[str, Any]:
        return integration.create_user_story(body.title, body.description, body.options())

    @app.post('/api/workitems/task', status_code=status.HTTP_201_CREATED)
    def create_task(body: WorkItemCreate) -> Dict[str, Any]:
        return integration.create_task(body.title, body.description, body.options())

    @app.post('/api/workitems/bug', status_code=status.HTTP_201_CREATED)
    def create_bug(body: WorkItemCreate) -> Dict[str, Any]:
        return integration.create_bug(body.title, body.description, body.options())

    @app.post('/api/workitems/search')
    def search_work_items(body: SearchRequest) -> List[Dict[str, Any]]:
        if not body.query.strip():
            raise ValidationError('query is required')
        return integration.search_work_items(body.query)

    @app.get('/api/workitems/{work_item_id}')
    def get_work_item(work_item_id: int) -> Dict[str, Any]:
        return integration.get_work_item(work_item_id)

    @app.patch('/api/workitems/user-story/{work_item_id}')
    def update_user_story(work_item_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        return integration.update_user_story(work_item_id, updates)

    @app.patch('/api/workitems/bug/{work_item_id}')
    def update_bug(work_item_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        return integration.update_bug(work_item_id, updates)

    @app.delete('/api/workitems/user-story/{work_item_id}')
    def delete_user_story(work_item_id: int, destroy: bool = False) -> Dict[str, Any]:
        return integration.delete_user_story(work_item_id, destroy)

    @app.get('/api/workitems/{work_item_id}/comments')
    def get_work_item_comments(work_item_id: int) -> List[Dict[str, Any]]:
        return integration.get_work_item_comments(work_item_id)

    @app.post('/api/workitems/{work_item_id}/comments', status_code=status.HTTP_201_CREATED)
    def add_work_item_comment(work_item_id: int, body: CommentCreate) -> Dict[str, Any]:
        return integration.add_work_item_comment(work_item_id, body.text)

    @app.get('/api/workitems/{work_item_id}/attachments')
    def get_work_item_attachments(work_item_id: int) -> List[Dict[str, Any]]:
        return integration.get_work_item_attachments(work_item_id)

    @app.get('/api/bugs/{work_item_id}')
    def get_bug_details(work_item_id: int) -> Dict[str, Any]:
        return integration.get_bug_details(work_item_id)

    @app.post('/api/workitems/{user_story_id}/feature/{feature_id}')
    def link_user_story_to_feature(user_story_id: int, feature_id: int) -> Dict[str, Any]:
        return integration.link_user_story_to_feature(user_story_id, feature_id)

    @app.get('/api/features/{feature_id}/user-stories')
    def get_user_stories_for_feature(feature_id: int) -> List[Dict[str, Any]]:
        return integration.get_user_stories_for_feature(feature_id)

    # Test cases

    @app.post('/api/testcases', status_code=status.HTTP_201_CREATED)
    def create_test_case(body: TestCaseCreate) -> Dict[str, Any]:
        return integration.create_test_case(body.title, body.description, body.steps, body.options())

    @app.post('/api/testcases/search')
    def search_test_cases(body: SearchRequest) -> List[Dict[str, Any]]:
        if not body.query.strip():
            raise ValidationError('query is required')
        return integration.search_test_cases(body.query)

    @app.get('/api/testcases/{test_case_id}')
    def get_test_case(test_case_id: int) -> Dict[str, Any]:
        return integration.get_test_case(test_case_id)

    @app.patch('/api/testcases/{test_case_id}')
    def update_test_case(test_case_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        return integration.update_test_case(test_case_id, updates)

    @app.delete('/api/testcases/{test_case_id}')
    def delete_test_case(test_case_id: int, destroy: bool = False) -> Dict[str, Any]:
        return integration.delete_test_case(test_case_id, destroy)

    @app.post('/api/testcases/{test_case_id}/associate/{user_story_id}')
    def associate_test_case(test_case_id: int, user_story_id: int) -> Dict[str, Any]:
        return integration.associate_test_case_with_user_story(test_case_id, user_story_id)

    @app.get('/api/userstories/{user_story_id}/testcases')
    def get_test_cases_for_user_story(user_story_id: int) -> List[Dict[str, Any]]:
        return integration.get_test_cases_for_user_story(user_story_id)

    # Pull requests

    @app.get('/api/pullrequests/{repository_id}/{pull_request_id}')
    def get_pull_request(
        repository_id: str, pull_request_id: int, include_details: bool = True
    ) -> Dict[str, Any]:
        return integration.get_pull_request(repository_id, pull_request_id, include_details)

    @app.get('/api/pullrequests/{repository_id}/{pull_request_id}/comments')
    def get_pull_request_comments(
        repository_id: str, pull_request_id: int, include_threads: bool = True
    ) -> List[Dict[str, Any]]:
        return integration.get_pull_request_comments(repository_id, pull_request_id, include_threads)

    @app.post(
        '/api/pullrequests/{repository_id}/{pull_request_id}/comments',
        status_code=status.HTTP_201_CREATED,
    )
    def add_pull_request_comment(
        repository_id: str, pull_request_id: int, body: PullRequestCommentCreate
    ) -> Dict[str, Any]:
        return integration.add_pull_request_comment(
            repository_id, pull_request_id, body.content, body.file_path, body.line
        )

    @app.post(
        '/api/pullrequests/{repository_id}/{pull_request_id}/replies',
        status_code=status.HTTP_201_CREATED,
    )
    def reply_to_pull_request_comment(
        repository_id: str, pull_request_id: int, body: CommentReply
    ) -> Dict[str, Any]:
        return integration.reply_to_pull_request_comment(
            repository_id, pull_request_id, body.parent_comment_id, body.content, body.thread_id
        )

    @app.patch('/api/pullrequests/{repository_id}/{pull_request_id}/threads/{thread_id}')
    def update_comment_thread_status(
        repository_id: str, pull_request_id: int, thread_id: int, body: ThreadStatusUpdate
    ) -> Dict[str, Any]:
        return integration.update_comment_thread_status(
            repository_id, pull_request_id, thread_id, body.status
        )

    return app


def main() -> None:
    """Run the HTTP wrapper with uvicorn."""
    load_config()
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '3000'))
    logger.info(f'Starting Azure DevOps HTTP wrapper on {host}:{port}')
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == '__main__':
    main()
