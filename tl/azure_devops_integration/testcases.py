"""Test case operations, including the structured steps field."""

import logfire
from datetime import datetime, timezone
from loguru import logger as default_logger
from tl.azure_devops_integration import fields as f
from tl.azure_devops_integration.client import AzureDevOpsClient
from tl.azure_devops_integration.config import DEFAULT_USER_STORY_TYPE
from tl.azure_devops_integration.errors import MalformedStepXml, NotFound, UpstreamError, ValidationError, upstream_failure
from tl.azure_devops_integration.fields import WorkItemKind
from tl.azure_devops_integration.models import Record, TestCaseRecord, WorkItemRecord
from tl.azure_devops_integration.steps import format_test_steps, parse_test_steps
from tl.azure_devops_integration.work_items import WorkItemManager, shape_work_item
from typing import Any, Dict, List, Mapping, Optional, Sequence


TESTED_BY_REVERSE = 'Microsoft.VSTS.Common.TestedBy-Reverse'
TESTED_BY_FORWARD = 'Microsoft.VSTS.Common.TestedBy-Forward'
TEST_CASE_TYPE = f.AZURE_TYPE_NAMES[WorkItemKind.TEST_CASE]


def _require_steps(steps: Any) -> Sequence[Any]:
    if isinstance(steps, (str, bytes, Mapping)) or not isinstance(steps, Sequence):
        raise ValidationError('Steps must be a list')
    return steps


class TestCaseManager:
    """Create, read, update, delete, search and associate test cases."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        client: AzureDevOpsClient,
        user_story_type: str = DEFAULT_USER_STORY_TYPE,
        logger: Any = None,
    ) -> None:
        """Initialize the test case manager.

        Args:
            client: Azure DevOps client handle
            user_story_type: Work item type name used for user stories
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.client = client
        self.user_story_type = user_story_type
        self.logger = logger or default_logger.bind(component='testcases')
        self.work_items = WorkItemManager(client, user_story_type, self.logger)

    def _steps(self, work_item_id: Any, steps_xml: Optional[str]) -> List[Dict[str, Any]]:
        if not steps_xml:
            return []
        try:
            steps = parse_test_steps(steps_xml)
        except MalformedStepXml as e:
            self.logger.warning(f'Could not parse steps of test case {work_item_id}: {str(e)}')
            return []
        return [
            {'step_number': number, **step.to_dict()}
            for number, step in enumerate(steps, start=1)
        ]

    def _shape(self, payload: Mapping[str, Any], include_relations: bool = False) -> TestCaseRecord:
        record = TestCaseRecord(shape_work_item(payload, self.user_story_type, include_relations))
        values = payload.get('fields') or {}
        record['automation_status'] = (
            values.get('Microsoft.VSTS.TCM.AutomationStatus') or 'Not Automated'
        )
        record['steps'] = self._steps(record.id, values.get(f.TEST_STEPS))
        return record

    def create_test_case(
        self,
        title: str,
        description: str,
        steps: Optional[Sequence[Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> TestCaseRecord:
        """Create a test case with optional steps.

        Args:
            title: Title of the test case
            description: HTML description
            steps: Ordered steps, as TestStep objects or mappings with
                'action' and 'expected_result'
            options: Optional fields: priority, automation_status, assigned_to,
                iteration_path, area_path, tags, extra_fields

        Returns:
            The created TestCaseRecord, with its steps parsed back from the server
        """
        f.require_text(title, 'Title')
        f.require_text(description, 'Description')
        steps = _require_steps(steps if steps is not None else [])

        document = [
            f.add_field(f.TITLE, title),
            f.add_field(f.DESCRIPTION, description),
            f.add_field(f.WORK_ITEM_TYPE, TEST_CASE_TYPE),
        ]
        if steps:
            document.append(f.add_field(f.TEST_STEPS, format_test_steps(steps)))
        document.extend(f.build_field_operations(options, f.TEST_CASE_FIELDS, self.logger))

        self.logger.info(f'Creating test case: {title}')
        try:
            payload = self.client.create_work_item(TEST_CASE_TYPE, document)
        except UpstreamError as e:
            logfire.error('Failed to create Azure DevOps test case', error=str(e))
            raise upstream_failure(e, 'create test case')

        record = self._shape(payload)
        self.logger.info(f'Created test case with ID: {record.id}')
        logfire.info(
            'Created Azure DevOps test case',
            work_item_id=record.id,
            steps=len(steps),
            project=self.client.project,
        )
        return record

    def update_test_case(self, test_case_id: Any, updates: Mapping[str, Any]) -> TestCaseRecord:
        """Update a test case.

        A 'steps' key replaces the whole steps field; an empty list clears it.
        """
        test_case_id = f.require_id(test_case_id, 'test case')
        if not isinstance(updates, Mapping):
            raise ValidationError('Updates object is required')

        document = f.build_field_operations(
            updates, {**f.TEST_CASE_FIELDS, **f.UPDATE_FIELDS}, self.logger
        )
        if updates.get('steps') is not None:
            steps = _require_steps(updates['steps'])
            document.append(f.add_field(f.TEST_STEPS, format_test_steps(steps)))
        if not document:
            raise ValidationError('No valid fields provided for update')

        self.logger.info(f'Updating test case with ID: {test_case_id}')
        try:
            payload = self.client.update_work_item(test_case_id, document)
        except NotFound:
            raise NotFound(f'Test case {test_case_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'update test case')

        logfire.info('Updated Azure DevOps test case', work_item_id=test_case_id)
        return self._shape(payload)

    def get_test_case(self, test_case_id: Any) -> TestCaseRecord:
        test_case_id = f.require_id(test_case_id, 'test case')
        try:
            payload = self.client.get_work_item(test_case_id)
        except NotFound:
            raise NotFound(f'Test case {test_case_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'retrieve test case')
        if not payload:
            raise NotFound(f'Test case {test_case_id} not found')

        record = self._shape(payload, include_relations=True)
        self.logger.debug(f'Test case retrieved: {record.title}')
        return record

    def _require_test_case(self, test_case_id: Any) -> TestCaseRecord:
        test_case = self.get_test_case(test_case_id)
        if test_case.type != WorkItemKind.TEST_CASE.value:
            raise ValidationError(
                f'Work item {test_case.id} is not a Test Case (Type: {test_case.work_item_type})'
            )
        return test_case

    def delete_test_case(self, test_case_id: Any, destroy: bool = False) -> Record:
        """Delete a test case after checking its type.

        Args:
            test_case_id: ID of the test case
            destroy: Permanently destroy instead of moving to the recycle bin
        """
        test_case = self._require_test_case(test_case_id)
        return self.work_items.delete_work_item(test_case, destroy)

    def associate_test_case_with_user_story(self, test_case_id: Any, user_story_id: Any) -> Record:
        """Link a test case to the user story it tests.

        Returns:
            Record with linked=True, both ids and titles, and the link type
        """
        test_case_id = f.require_id(test_case_id, 'test case')
        user_story_id = f.require_id(user_story_id, 'user story')

        test_case = self._require_test_case(test_case_id)
        user_story: WorkItemRecord = self.work_items.get_work_item(user_story_id)
        if user_story.type != WorkItemKind.USER_STORY.value:
            raise ValidationError(
                f'Work item {user_story_id} is not a {self.user_story_type} '
                f'(Type: {user_story.work_item_type})'
            )

        document = [
            {
                'op': 'add',
                'path': '/relations/-',
                'value': {
                    'rel': TESTED_BY_REVERSE,
                    'url': self.client.work_item_url(user_story_id),
                    'attributes': {'name': 'Tested By'},
                },
            }
        ]
        self.logger.info(f'Associating test case {test_case_id} with user story {user_story_id}')
        try:
            self.client.update_work_item(test_case_id, document)
        except UpstreamError as e:
            raise upstream_failure(e, 'associate test case with user story')

        logfire.info(
            'Associated Azure DevOps test case with user story',
            test_case_id=test_case_id,
            user_story_id=user_story_id,
        )
        return Record(
            linked=True,
            test_case_id=test_case_id,
            user_story_id=user_story_id,
            test_case_title=test_case.title,
            user_story_title=user_story.title,
            link_type='Tested By',
            associated_date=datetime.now(timezone.utc).isoformat(),
        )

    def search_test_cases(self, wiql: str) -> List[TestCaseRecord]:
        f.require_text(wiql, 'WIQL query')
        try:
            ids = self.work_items.search_ids(wiql)
            payloads = self.client.get_work_items(ids) if ids else []
        except UpstreamError as e:
            raise upstream_failure(e, 'search test cases')

        test_cases = [self._shape(payload) for payload in payloads]
        self.logger.info(f'Found {len(test_cases)} test cases')
        return test_cases

    def get_test_cases_for_user_story(self, user_story_id: Any) -> List[TestCaseRecord]:
        user_story_id = f.require_id(user_story_id, 'user story')
        wiql = (
            'SELECT [System.Id], [System.Title], [System.State] FROM WorkItemLinks '
            f'WHERE (Source.[System.Id] = {user_story_id}) '
            f"AND (Target.[System.WorkItemType] = '{TEST_CASE_TYPE}') "
            f"AND ([System.Links.LinkType] = '{TESTED_BY_FORWARD}') "
            'MODE (MustContain)'
        )
        return self.search_test_cases(wiql)
