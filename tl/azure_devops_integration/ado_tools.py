"""Azure DevOps MCP tools for work items, test cases and pull requests.

Each tool delegates to the AzureDevOpsIntegration facade and reports the outcome as a
response dict with status 'success' or 'error'; errors never escape a tool.
"""

import logfire
from loguru import logger
from mcp.server.fastmcp.server import Context, FastMCP
from tl.azure_devops_integration.errors import AzureDevOpsError
from tl.azure_devops_integration.integration import AzureDevOpsIntegration
from tl.azure_devops_integration.models import (
    ADOPullRequestCommentsResponse,
    ADOPullRequestResponse,
    ADOResponse,
    ADOResultResponse,
    ADOSearchWorkItemsResponse,
    ADOWorkItemResponse,
)
from typing import Any, Dict, List, Optional


def _options(**values: Any) -> Dict[str, Any]:
    """Drop unset tool arguments so only supplied fields reach the patch document."""
    return {key: value for key, value in values.items() if value is not None}


class AzureDevOpsTools:
    """Tools for managing Azure DevOps work items, test cases and pull requests."""

    def __init__(self, mcp: FastMCP, integration: Optional[AzureDevOpsIntegration] = None) -> None:
        """Initialize Azure DevOps Tools.

        Args:
            mcp: The MCP server instance
            integration: Facade to delegate to; one reading its configuration from the
                environment on first use is created if omitted
        """
        self.mcp = mcp
        self.integration = integration or AzureDevOpsIntegration()

        tools = [
            ('test_connection', 'Test the connection to the Azure DevOps organization'),
            ('get_organization_info', 'Get the Azure DevOps organization and its projects'),
            (
                'validate_permissions',
                'Check which Azure DevOps areas (work items, Git, test management, builds) the token can use',
            ),
            ('create_user_story', 'Create a user story in the configured Azure DevOps project'),
            ('update_user_story', 'Update fields of an existing user story'),
            ('delete_user_story', 'Delete a user story (recycle bin unless destroy is set)'),
            ('get_work_item', 'Get a work item by ID, including its relations'),
            ('search_work_items', 'Search work items with a WIQL query'),
            ('create_bug', 'Create a bug, optionally as the child of a parent work item'),
            ('update_bug', 'Update fields of an existing bug'),
            ('create_task', 'Create a task, optionally as the child of a parent work item'),
            ('link_user_story_to_feature', 'Make a user story the child of a feature'),
            ('link_work_items', 'Link two work items as parent and child'),
            ('get_user_stories_for_feature', 'List the user stories under a feature'),
            ('get_work_item_comments', 'List the discussion comments of a work item'),
            ('add_work_item_comment', 'Add a discussion comment to a work item'),
            ('get_work_item_attachments', 'List the files attached to a work item'),
            ('get_bug_details', 'Get a bug with its bug fields, comments, attachments and relations'),
            ('create_test_case', 'Create a test case with ordered test steps'),
            ('update_test_case', 'Update fields or steps of an existing test case'),
            ('get_test_case', 'Get a test case by ID, with its parsed test steps'),
            ('delete_test_case', 'Delete a test case (recycle bin unless destroy is set)'),
            (
                'associate_test_case_with_user_story',
                'Link a test case to the user story it tests',
            ),
            ('search_test_cases', 'Search test cases with a WIQL query'),
            ('get_test_cases_for_user_story', 'List the test cases linked to a user story'),
            ('get_pull_request', 'Get a pull request with commits, work items and iterations'),
            ('get_pull_request_by_url', 'Get a pull request from its Azure DevOps web URL'),
            ('get_pull_request_comments', 'List the comment threads of a pull request'),
            (
                'add_pull_request_comment',
                'Add a comment to a pull request, optionally anchored to a file and line',
            ),
            ('reply_to_pull_request_comment', 'Reply to an existing pull request comment'),
            ('update_comment_thread_status', 'Set the status of a pull request comment thread'),
        ]

        # Register tools with the MCP server
        for name, description in tools:
            self.mcp.tool(name=name, description=description)(getattr(self, name))

    def _failure(self, action: str, error: Exception) -> str:
        if isinstance(error, AzureDevOpsError):
            error_message = f'Failed to {action}: {str(error)}'
        else:
            error_message = f'Error while trying to {action}: {str(error)}'
        logger.error(error_message)
        logfire.error(f'Failed to {action}', error=str(error), error_type=type(error).__name__)
        return error_message

    # Connection

    def test_connection(self, ctx: Context) -> ADOResultResponse:
        """Test the connection to Azure DevOps.

        Args:
            ctx: The FastMCP context

        Returns:
            ADOResultResponse with success flag and the visible projects
        """
        try:
            result = self.integration.test_connection()
            if not result.success:
                return ADOResultResponse(
                    status='error', message=f'Connection test failed: {result.error}', result=result
                )
            return ADOResultResponse(
                status='success',
                message=f'Connected to Azure DevOps, found {result.project_count} projects',
                result=result,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('test connection', e), result=None
            )

    def get_organization_info(self, ctx: Context) -> ADOResultResponse:
        try:
            info = self.integration.get_organization_info()
            return ADOResultResponse(
                status='success',
                message=f'Retrieved organization {info.name}',
                result=info,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('get organization info', e), result=None
            )

    def validate_permissions(self, ctx: Context, areas: Optional[List[str]] = None) -> ADOResultResponse:
        """Check which Azure DevOps areas the configured token can use.

        Args:
            ctx: The FastMCP context
            areas: Any of 'Work Items', 'Git', 'Test Management' and 'Build';
                defaults to the first three

        Returns:
            ADOResultResponse mapping each area to its availability
        """
        try:
            permissions = self.integration.validate_permissions(areas)
            available = [area for area, result in permissions.items() if result['available']]
            return ADOResultResponse(
                status='success',
                message=f'{len(available)} of {len(permissions)} areas available',
                result=permissions,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('validate permissions', e), result=None
            )

    # Work items

    def create_user_story(
        self,
        ctx: Context,
        title: str,
        description: str,
        acceptance_criteria: Optional[str] = None,
        priority: Optional[int] = None,
        story_points: Optional[float] = None,
        assigned_to: Optional[str] = None,
        iteration_path: Optional[str] = None,
        area_path: Optional[str] = None,
        tags: Optional[str] = None,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ADOWorkItemResponse:
        """Create a user story.

        Args:
            ctx: The FastMCP context
            title: Title of the user story
            description: Description (HTML allowed)
            acceptance_criteria: Acceptance criteria (HTML allowed)
            priority: Priority from 1 (highest) to 4
            story_points: Story point estimate
            assigned_to: Display name or email of the assignee
            iteration_path: Iteration path, e.g. 'Project\\Sprint 1'
            area_path: Area path
            tags: Semicolon-separated tags
            extra_fields: Additional fields keyed by reference name, e.g. {'Custom.Team': 'A'}

        Returns:
            ADOWorkItemResponse containing the created user story
        """
        try:
            work_item = self.integration.create_user_story(
                title,
                description,
                _options(
                    acceptance_criteria=acceptance_criteria,
                    priority=priority,
                    story_points=story_points,
                    assigned_to=assigned_to,
                    iteration_path=iteration_path,
                    area_path=area_path,
                    tags=tags,
                    extra_fields=extra_fields,
                ),
            )
            return ADOWorkItemResponse(
                status='success',
                message=f'Created user story {work_item.id}: {work_item.title}',
                work_item=work_item,
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('create user story', e), work_item=None
            )

    def update_user_story(
        self, ctx: Context, work_item_id: int, updates: Dict[str, Any]
    ) -> ADOWorkItemResponse:
        """Update a user story.

        Args:
            ctx: The FastMCP context
            work_item_id: ID of the user story
            updates: Fields to change: title, description, state, acceptance_criteria,
                priority, story_points, assigned_to, iteration_path, area_path, tags,
                extra_fields

        Returns:
            ADOWorkItemResponse containing the updated user story
        """
        try:
            work_item = self.integration.update_user_story(work_item_id, updates)
            return ADOWorkItemResponse(
                status='success', message=f'Updated user story {work_item.id}', work_item=work_item
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('update user story', e), work_item=None
            )

    def delete_user_story(
        self, ctx: Context, work_item_id: int, destroy: Optional[bool] = False
    ) -> ADOResultResponse:
        try:
            result = self.integration.delete_user_story(work_item_id, bool(destroy))
            return ADOResultResponse(
                status='success', message=f'Deleted user story {result.id}', result=result
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('delete user story', e), result=None
            )

    def get_work_item(self, ctx: Context, work_item_id: int) -> ADOWorkItemResponse:
        try:
            work_item = self.integration.get_work_item(work_item_id)
            return ADOWorkItemResponse(
                status='success', message=f'Retrieved work item {work_item.id}', work_item=work_item
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('get work item', e), work_item=None
            )

    def search_work_items(self, ctx: Context, wiql: str) -> ADOSearchWorkItemsResponse:
        """Search work items.

        Args:
            ctx: The FastMCP context
            wiql: WIQL query, e.g. "SELECT [System.Id] FROM WorkItems WHERE [System.State] = 'Active'"

        Returns:
            ADOSearchWorkItemsResponse with the matching work items in query order
        """
        try:
            work_items = self.integration.search_work_items(wiql)
            return ADOSearchWorkItemsResponse(
                status='success',
                message=f'Found {len(work_items)} work items',
                work_items=work_items,
                count=len(work_items),
            )
        except Exception as e:
            return ADOSearchWorkItemsResponse(
                status='error', message=self._failure('search work items', e), work_items=[], count=0
            )

    def create_bug(
        self,
        ctx: Context,
        title: str,
        description: str,
        priority: Optional[int] = None,
        severity: Optional[str] = None,
        repro_steps: Optional[str] = None,
        found_in: Optional[str] = None,
        system_info: Optional[str] = None,
        assigned_to: Optional[str] = None,
        iteration_path: Optional[str] = None,
        area_path: Optional[str] = None,
        tags: Optional[str] = None,
        parent_id: Optional[int] = None,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ADOWorkItemResponse:
        """Create a bug.

        Args:
            ctx: The FastMCP context
            title: Title of the bug
            description: Description (HTML allowed)
            priority: Priority from 1 (highest) to 4; other values are ignored
            severity: Severity, e.g. '2 - High'
            repro_steps: Steps to reproduce (HTML allowed)
            found_in: Build the bug was found in
            system_info: System information
            assigned_to: Display name or email of the assignee
            iteration_path: Iteration path
            area_path: Area path
            tags: Semicolon-separated tags
            parent_id: Work item to create the bug under
            extra_fields: Additional fields keyed by reference name

        Returns:
            ADOWorkItemResponse containing the created bug
        """
        try:
            work_item = self.integration.create_bug(
                title,
                description,
                _options(
                    priority=priority,
                    severity=severity,
                    repro_steps=repro_steps,
                    found_in=found_in,
                    system_info=system_info,
                    assigned_to=assigned_to,
                    iteration_path=iteration_path,
                    area_path=area_path,
                    tags=tags,
                    parent_id=parent_id,
                    extra_fields=extra_fields,
                ),
            )
            return ADOWorkItemResponse(
                status='success',
                message=f'Created bug {work_item.id}: {work_item.title}',
                work_item=work_item,
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('create bug', e), work_item=None
            )

    def update_bug(self, ctx: Context, work_item_id: int, updates: Dict[str, Any]) -> ADOWorkItemResponse:
        try:
            work_item = self.integration.update_bug(work_item_id, updates)
            return ADOWorkItemResponse(
                status='success', message=f'Updated bug {work_item.id}', work_item=work_item
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('update bug', e), work_item=None
            )

    def create_task(
        self,
        ctx: Context,
        title: str,
        description: str,
        priority: Optional[int] = None,
        original_estimate: Optional[float] = None,
        remaining_work: Optional[float] = None,
        activity: Optional[str] = None,
        assigned_to: Optional[str] = None,
        iteration_path: Optional[str] = None,
        area_path: Optional[str] = None,
        tags: Optional[str] = None,
        parent_id: Optional[int] = None,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ADOWorkItemResponse:
        """Create a task.

        Args:
            ctx: The FastMCP context
            title: Title of the task
            description: Description (HTML allowed)
            priority: Priority from 1 (highest) to 4
            original_estimate: Original estimate in hours
            remaining_work: Remaining work in hours
            activity: Activity, e.g. 'Development'
            assigned_to: Display name or email of the assignee
            iteration_path: Iteration path
            area_path: Area path
            tags: Semicolon-separated tags
            parent_id: Work item to create the task under
            extra_fields: Additional fields keyed by reference name

        Returns:
            ADOWorkItemResponse containing the created task
        """
        try:
            work_item = self.integration.create_task(
                title,
                description,
                _options(
                    priority=priority,
                    original_estimate=original_estimate,
                    remaining_work=remaining_work,
                    activity=activity,
                    assigned_to=assigned_to,
                    iteration_path=iteration_path,
                    area_path=area_path,
                    tags=tags,
                    parent_id=parent_id,
                    extra_fields=extra_fields,
                ),
            )
            return ADOWorkItemResponse(
                status='success',
                message=f'Created task {work_item.id}: {work_item.title}',
                work_item=work_item,
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('create task', e), work_item=None
            )

    def link_user_story_to_feature(
        self, ctx: Context, user_story_id: int, feature_id: int
    ) -> ADOResultResponse:
        try:
            result = self.integration.link_user_story_to_feature(user_story_id, feature_id)
            return ADOResultResponse(
                status='success',
                message=f'Linked user story {user_story_id} to feature {feature_id}',
                result=result,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('link user story to feature', e), result=None
            )

    def link_work_items(
        self,
        ctx: Context,
        source_id: int,
        target_id: int,
        link_type: Optional[str] = 'Child',
    ) -> ADOResultResponse:
        """Link two work items.

        Args:
            ctx: The FastMCP context
            source_id: Work item receiving the link
            target_id: Linked work item
            link_type: 'Child' makes source a child of target, 'Parent' the reverse

        Returns:
            ADOResultResponse describing the link
        """
        try:
            result = self.integration.link_work_items(source_id, target_id, link_type or 'Child')
            return ADOResultResponse(
                status='success',
                message=f'Linked work item {source_id} to {target_id}',
                result=result,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('link work items', e), result=None
            )

    def get_user_stories_for_feature(self, ctx: Context, feature_id: int) -> ADOSearchWorkItemsResponse:
        try:
            work_items = self.integration.get_user_stories_for_feature(feature_id)
            return ADOSearchWorkItemsResponse(
                status='success',
                message=f'Found {len(work_items)} user stories for feature {feature_id}',
                work_items=work_items,
                count=len(work_items),
            )
        except Exception as e:
            return ADOSearchWorkItemsResponse(
                status='error',
                message=self._failure('get user stories for feature', e),
                work_items=[],
                count=0,
            )

    def get_work_item_comments(self, ctx: Context, work_item_id: int) -> ADOResponse:
        try:
            comments = self.integration.get_work_item_comments(work_item_id)
            return ADOResponse(
                status='success',
                message=f'Retrieved {len(comments)} comments for work item {work_item_id}',
                comments=comments,
                count=len(comments),
            )
        except Exception as e:
            return ADOResponse(
                status='error',
                message=self._failure('get work item comments', e),
                comments=[],
                count=0,
            )

    def add_work_item_comment(self, ctx: Context, work_item_id: int, text: str) -> ADOResultResponse:
        try:
            comment = self.integration.add_work_item_comment(work_item_id, text)
            return ADOResultResponse(
                status='success',
                message=f'Added comment to work item {work_item_id}',
                result=comment,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('add work item comment', e), result=None
            )

    def get_work_item_attachments(self, ctx: Context, work_item_id: int) -> ADOResponse:
        try:
            attachments = self.integration.get_work_item_attachments(work_item_id)
            return ADOResponse(
                status='success',
                message=f'Retrieved {len(attachments)} attachments for work item {work_item_id}',
                attachments=attachments,
                count=len(attachments),
            )
        except Exception as e:
            return ADOResponse(
                status='error',
                message=self._failure('get work item attachments', e),
                attachments=[],
                count=0,
            )

    def get_bug_details(self, ctx: Context, work_item_id: int) -> ADOResultResponse:
        """Get a bug with everything needed to triage it.

        Args:
            ctx: The FastMCP context
            work_item_id: ID of the bug

        Returns:
            ADOResultResponse with basic_info, bug_fields, comments, attachments and relations
        """
        try:
            details = self.integration.get_bug_details(work_item_id)
            return ADOResultResponse(
                status='success',
                message=f'Retrieved bug {work_item_id}: {details.basic_info["title"]}',
                result=details,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('get bug details', e), result=None
            )

    # Test cases

    def create_test_case(
        self,
        ctx: Context,
        title: str,
        description: str,
        steps: Optional[List[Dict[str, str]]] = None,
        priority: Optional[int] = None,
        automation_status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        iteration_path: Optional[str] = None,
        area_path: Optional[str] = None,
        tags: Optional[str] = None,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ADOWorkItemResponse:
        """Create a test case.

        Args:
            ctx: The FastMCP context
            title: Title of the test case
            description: Description (HTML allowed)
            steps: Ordered steps, each {'action': ..., 'expected_result': ...}
            priority: Priority from 1 (highest) to 4
            automation_status: 'Not Automated', 'Planned' or 'Automated'
            assigned_to: Display name or email of the assignee
            iteration_path: Iteration path
            area_path: Area path
            tags: Semicolon-separated tags
            extra_fields: Additional fields keyed by reference name

        Returns:
            ADOWorkItemResponse containing the created test case and its steps
        """
        try:
            test_case = self.integration.create_test_case(
                title,
                description,
                steps or [],
                _options(
                    priority=priority,
                    automation_status=automation_status,
                    assigned_to=assigned_to,
                    iteration_path=iteration_path,
                    area_path=area_path,
                    tags=tags,
                    extra_fields=extra_fields,
                ),
            )
            return ADOWorkItemResponse(
                status='success',
                message=f'Created test case {test_case.id} with {len(test_case.steps)} steps',
                work_item=test_case,
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('create test case', e), work_item=None
            )

    def update_test_case(
        self, ctx: Context, test_case_id: int, updates: Dict[str, Any]
    ) -> ADOWorkItemResponse:
        try:
            test_case = self.integration.update_test_case(test_case_id, updates)
            return ADOWorkItemResponse(
                status='success', message=f'Updated test case {test_case.id}', work_item=test_case
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('update test case', e), work_item=None
            )

    def get_test_case(self, ctx: Context, test_case_id: int) -> ADOWorkItemResponse:
        try:
            test_case = self.integration.get_test_case(test_case_id)
            return ADOWorkItemResponse(
                status='success', message=f'Retrieved test case {test_case.id}', work_item=test_case
            )
        except Exception as e:
            return ADOWorkItemResponse(
                status='error', message=self._failure('get test case', e), work_item=None
            )

    def delete_test_case(
        self, ctx: Context, test_case_id: int, destroy: Optional[bool] = False
    ) -> ADOResultResponse:
        try:
            result = self.integration.delete_test_case(test_case_id, bool(destroy))
            return ADOResultResponse(
                status='success', message=f'Deleted test case {result.id}', result=result
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('delete test case', e), result=None
            )

    def associate_test_case_with_user_story(
        self, ctx: Context, test_case_id: int, user_story_id: int
    ) -> ADOResultResponse:
        try:
            result = self.integration.associate_test_case_with_user_story(test_case_id, user_story_id)
            return ADOResultResponse(
                status='success',
                message=f'Associated test case {test_case_id} with user story {user_story_id}',
                result=result,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error',
                message=self._failure('associate test case with user story', e),
                result=None,
            )

    def search_test_cases(self, ctx: Context, wiql: str) -> ADOSearchWorkItemsResponse:
        try:
            test_cases = self.integration.search_test_cases(wiql)
            return ADOSearchWorkItemsResponse(
                status='success',
                message=f'Found {len(test_cases)} test cases',
                work_items=test_cases,
                count=len(test_cases),
            )
        except Exception as e:
            return ADOSearchWorkItemsResponse(
                status='error', message=self._failure('search test cases', e), work_items=[], count=0
            )

    def get_test_cases_for_user_story(
        self, ctx: Context, user_story_id: int
    ) -> ADOSearchWorkItemsResponse:
        try:
            test_cases = self.integration.get_test_cases_for_user_story(user_story_id)
            return ADOSearchWorkItemsResponse(
                status='success',
                message=f'Found {len(test_cases)} test cases for user story {user_story_id}',
                work_items=test_cases,
                count=len(test_cases),
            )
        except Exception as e:
            return ADOSearchWorkItemsResponse(
                status='error',
                message=self._failure('get test cases for user story', e),
                work_items=[],
                count=0,
            )

    # Pull requests

    def get_pull_request(
        self,
        ctx: Context,
        repository_id: str,
        pull_request_id: int,
        include_details: Optional[bool] = True,
    ) -> ADOPullRequestResponse:
        """Get a pull request.

        Args:
            ctx: The FastMCP context
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            include_details: Whether to include commits, linked work items and iterations

        Returns:
            ADOPullRequestResponse containing the pull request
        """
        try:
            pull_request = self.integration.get_pull_request(
                repository_id, pull_request_id, bool(include_details)
            )
            return ADOPullRequestResponse(
                status='success',
                message=f'Retrieved pull request {pull_request.id}: {pull_request.title}',
                pull_request=pull_request,
            )
        except Exception as e:
            return ADOPullRequestResponse(
                status='error', message=self._failure('get pull request', e), pull_request=None
            )

    def get_pull_request_by_url(
        self, ctx: Context, url: str, include_details: Optional[bool] = True
    ) -> ADOPullRequestResponse:
        try:
            pull_request = self.integration.get_pull_request_by_url(url, bool(include_details))
            return ADOPullRequestResponse(
                status='success',
                message=f'Retrieved pull request {pull_request.id}: {pull_request.title}',
                pull_request=pull_request,
            )
        except Exception as e:
            return ADOPullRequestResponse(
                status='error', message=self._failure('get pull request by URL', e), pull_request=None
            )

    def get_pull_request_comments(
        self,
        ctx: Context,
        repository_id: str,
        pull_request_id: int,
        include_threads: Optional[bool] = True,
    ) -> ADOPullRequestCommentsResponse:
        """List pull request comment threads.

        Args:
            ctx: The FastMCP context
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            include_threads: Include threads that have no comments

        Returns:
            ADOPullRequestCommentsResponse with the threads and their comments
        """
        try:
            threads = self.integration.get_pull_request_comments(
                repository_id, pull_request_id, bool(include_threads)
            )
            return ADOPullRequestCommentsResponse(
                status='success',
                message=f'Retrieved {len(threads)} comment threads',
                threads=threads,
                count=len(threads),
            )
        except Exception as e:
            return ADOPullRequestCommentsResponse(
                status='error',
                message=self._failure('get pull request comments', e),
                threads=[],
                count=0,
            )

    def add_pull_request_comment(
        self,
        ctx: Context,
        repository_id: str,
        pull_request_id: int,
        comment: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> ADOResultResponse:
        try:
            thread = self.integration.add_pull_request_comment(
                repository_id, pull_request_id, comment, file_path, line
            )
            return ADOResultResponse(
                status='success',
                message=f'Added comment thread {thread.id} to pull request {pull_request_id}',
                result=thread,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('add pull request comment', e), result=None
            )

    def reply_to_pull_request_comment(
        self,
        ctx: Context,
        repository_id: str,
        pull_request_id: int,
        parent_comment_id: int,
        reply: str,
        thread_id: Optional[int] = None,
    ) -> ADOResultResponse:
        try:
            comment = self.integration.reply_to_pull_request_comment(
                repository_id, pull_request_id, parent_comment_id, reply, thread_id
            )
            return ADOResultResponse(
                status='success',
                message=f'Replied to comment {parent_comment_id}',
                result=comment,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('reply to pull request comment', e), result=None
            )

    def update_comment_thread_status(
        self,
        ctx: Context,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        status: str,
    ) -> ADOResultResponse:
        """Set a comment thread's status.

        Args:
            ctx: The FastMCP context
            repository_id: Repository ID or name
            pull_request_id: ID of the pull request
            thread_id: ID of the comment thread
            status: One of Active, Fixed, WontFix, Closed, ByDesign, Pending

        Returns:
            ADOResultResponse containing the updated thread
        """
        try:
            thread = self.integration.update_comment_thread_status(
                repository_id, pull_request_id, thread_id, status
            )
            return ADOResultResponse(
                status='success',
                message=f'Thread {thread_id} is now {thread.status}',
                result=thread,
            )
        except Exception as e:
            return ADOResultResponse(
                status='error', message=self._failure('update comment thread status', e), result=None
            )
