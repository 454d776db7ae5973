"""Work item operations: user stories, tasks, bugs, search and links."""

import logfire
from datetime import datetime, timezone
from loguru import logger as default_logger
from tl.azure_devops_integration import fields as f
from tl.azure_devops_integration.client import AzureDevOpsClient
from tl.azure_devops_integration.config import DEFAULT_USER_STORY_TYPE
from tl.azure_devops_integration.errors import NotFound, UpstreamError, ValidationError, upstream_failure
from tl.azure_devops_integration.fields import FieldSpec, WorkItemKind
from tl.azure_devops_integration.models import Record, WorkItemRecord
from typing import Any, Dict, List, Mapping, Optional, Sequence


PARENT_LINK = 'System.LinkTypes.Hierarchy-Reverse'
CHILD_LINK = 'System.LinkTypes.Hierarchy-Forward'
ATTACHED_FILE = 'AttachedFile'

# Option keys reported at the top level of a record rather than under 'fields'
TOP_LEVEL_FIELDS = {
    'priority': f.PRIORITY,
    'assigned_to': f.ASSIGNED_TO,
    'iteration_path': f.ITERATION_PATH,
    'area_path': f.AREA_PATH,
    'tags': f.TAGS,
}

RECORD_FIELDS = (
    f.TITLE,
    f.DESCRIPTION,
    f.WORK_ITEM_TYPE,
    f.STATE,
    f.CREATED_DATE,
    f.CHANGED_DATE,
    f.CREATED_BY,
    f.CHANGED_BY,
    f.TEST_STEPS,
)

BUG_BASIC_INFO = (
    'id',
    'title',
    'description',
    'state',
    'work_item_type',
    'assigned_to',
    'priority',
    'iteration_path',
    'area_path',
    'tags',
    'url',
    'created_date',
    'changed_date',
    'created_by',
    'changed_by',
)


def display_name(identity: Any) -> Optional[str]:
    """Display name of an identity field, which may be a dict or a plain string."""
    if isinstance(identity, dict):
        return identity.get('displayName') or identity.get('uniqueName')
    return identity or None


def work_item_ids(query_result: Mapping[str, Any]) -> List[int]:
    """Work item ids of a WIQL result, in result order.

    Flat queries list 'workItems'; link queries list 'workItemRelations' where
    the entry without a link type is the query root.
    """
    if query_result.get('workItems'):
        return [item['id'] for item in query_result['workItems']]

    ids = []
    for relation in query_result.get('workItemRelations') or []:
        target = relation.get('target') or {}
        if relation.get('rel') and target.get('id') is not None:
            ids.append(target['id'])
    return ids


def attachment_records(relations: Sequence[Mapping[str, Any]]) -> List[Record]:
    """Shape the AttachedFile relations of a work item."""
    attachments = []
    for relation in relations or []:
        if relation.get('rel') != ATTACHED_FILE:
            continue
        url = relation.get('url') or ''
        attributes = relation.get('attributes') or {}
        attachments.append(
            Record(
                id=url.rstrip('/').rsplit('/', 1)[-1],
                name=attributes.get('name') or 'Unknown',
                url=url,
                size=attributes.get('resourceSize') or 0,
                created_date=attributes.get('resourceCreatedDate'),
            )
        )
    return attachments


def shape_work_item(
    payload: Mapping[str, Any],
    user_story_type: str = DEFAULT_USER_STORY_TYPE,
    include_relations: bool = False,
) -> WorkItemRecord:
    """Shape an Azure DevOps work item payload into a WorkItemRecord.

    Kind-specific fields are reported under 'fields' with their option keys;
    unrecognised reference names go to 'extra_fields'.
    """
    values = payload.get('fields') or {}
    work_item_type = values.get(f.WORK_ITEM_TYPE)
    kind = f.kind_of(work_item_type, user_story_type)

    try:
        specs: Mapping[str, FieldSpec] = f.FIELDS_BY_KIND.get(WorkItemKind(kind), {})
    except ValueError:
        specs = {}

    known = set(TOP_LEVEL_FIELDS.values()) | set(RECORD_FIELDS)
    typed_fields: Dict[str, Any] = {}
    for key, spec in specs.items():
        known.add(spec.reference_name)
        if key not in TOP_LEVEL_FIELDS:
            typed_fields[key] = values.get(spec.reference_name)

    record = WorkItemRecord(
        id=payload.get('id'),
        type=kind,
        work_item_type=work_item_type,
        title=values.get(f.TITLE),
        description=values.get(f.DESCRIPTION) or '',
        state=values.get(f.STATE),
        priority=values.get(f.PRIORITY),
        assigned_to=display_name(values.get(f.ASSIGNED_TO)),
        iteration_path=values.get(f.ITERATION_PATH),
        area_path=values.get(f.AREA_PATH),
        tags=values.get(f.TAGS),
        fields=typed_fields,
        extra_fields={name: value for name, value in values.items() if name not in known},
        url=payload.get('url'),
        created_date=values.get(f.CREATED_DATE),
        changed_date=values.get(f.CHANGED_DATE),
        created_by=display_name(values.get(f.CREATED_BY)),
        changed_by=display_name(values.get(f.CHANGED_BY)),
    )
    if include_relations:
        record['relations'] = payload.get('relations') or []
    return record


class WorkItemManager:
    """Create, read, update, delete, search and link work items."""

    def __init__(
        self,
        client: AzureDevOpsClient,
        user_story_type: str = DEFAULT_USER_STORY_TYPE,
        logger: Any = None,
    ) -> None:
        """Initialize the work item manager.

        Args:
            client: Azure DevOps client handle
            user_story_type: Work item type name used for user stories
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.client = client
        self.user_story_type = user_story_type
        self.logger = logger or default_logger.bind(component='work_items')

    def _shape(self, payload: Mapping[str, Any], include_relations: bool = False) -> WorkItemRecord:
        return shape_work_item(payload, self.user_story_type, include_relations)

    def _create(
        self,
        kind: WorkItemKind,
        work_item_type: str,
        title: str,
        description: str,
        options: Optional[Mapping[str, Any]],
    ) -> WorkItemRecord:
        f.require_text(title, 'Title')
        f.require_text(description, 'Description')
        options = dict(options or {})

        parent_id = options.get('parent_id')
        if parent_id is not None:
            parent_id = f.require_id(parent_id, 'parent work item')

        document = [
            f.add_field(f.TITLE, title),
            f.add_field(f.DESCRIPTION, description),
            f.add_field(f.WORK_ITEM_TYPE, work_item_type),
        ]
        document.extend(f.build_field_operations(options, f.FIELDS_BY_KIND[kind], self.logger))

        label = work_item_type.lower()
        self.logger.info(f'Creating {label}: {title}')
        try:
            payload = self.client.create_work_item(work_item_type, document)
        except UpstreamError as e:
            self.logger.error(f'Failed to create {label}: {str(e)}')
            logfire.error(f'Failed to create Azure DevOps {label}', error=str(e))
            raise upstream_failure(e, f'create {label}')

        record = self._shape(payload)
        self.logger.info(f'Created {label} with ID: {record.id}')
        logfire.info(
            'Created Azure DevOps work item',
            work_item_id=record.id,
            work_item_type=work_item_type,
            project=self.client.project,
        )

        if parent_id is not None:
            record['parent_id'] = parent_id
            try:
                self.link_work_items(record.id, parent_id, 'Child')
            except (UpstreamError, NotFound, ValidationError) as e:
                self.logger.warning(
                    f'{work_item_type} {record.id} created but failed to link to parent '
                    f'{parent_id}: {str(e)}'
                )
                record['parent_id'] = None
        return record

    def _update(
        self,
        work_item_id: Any,
        updates: Optional[Mapping[str, Any]],
        field_specs: Mapping[str, FieldSpec],
        label: str,
    ) -> WorkItemRecord:
        work_item_id = f.require_id(work_item_id)
        if not isinstance(updates, Mapping):
            raise ValidationError('Updates object is required')

        document = f.build_field_operations(
            updates, {**field_specs, **f.UPDATE_FIELDS}, self.logger
        )
        if not document:
            raise ValidationError('No valid fields provided for update')

        self.logger.info(f'Updating {label} with ID: {work_item_id}')
        try:
            payload = self.client.update_work_item(work_item_id, document)
        except NotFound:
            raise NotFound(f'Work item {work_item_id} not found')
        except UpstreamError as e:
            logfire.error(f'Failed to update Azure DevOps {label}', error=str(e))
            raise upstream_failure(e, f'update {label}')

        logfire.info('Updated Azure DevOps work item', work_item_id=work_item_id)
        return self._shape(payload)

    def create_user_story(
        self, title: str, description: str, options: Optional[Mapping[str, Any]] = None
    ) -> WorkItemRecord:
        """Create a user story.

        Args:
            title: Title of the user story
            description: HTML description
            options: Optional fields: acceptance_criteria, priority, story_points,
                assigned_to, iteration_path, area_path, tags, extra_fields

        Returns:
            The created WorkItemRecord
        """
        return self._create(
            WorkItemKind.USER_STORY, self.user_story_type, title, description, options
        )

    def create_task(
        self, title: str, description: str, options: Optional[Mapping[str, Any]] = None
    ) -> WorkItemRecord:
        """Create a task, optionally as the child of parent_id."""
        return self._create(WorkItemKind.TASK, 'Task', title, description, options)

    def create_bug(
        self, title: str, description: str, options: Optional[Mapping[str, Any]] = None
    ) -> WorkItemRecord:
        """Create a bug.

        Args:
            title: Title of the bug
            description: HTML description
            options: Optional fields: priority, severity, repro_steps, found_in,
                system_info, tags, assigned_to, iteration_path, area_path,
                parent_id, extra_fields

        Returns:
            The created WorkItemRecord; an out-of-range priority is left unset
        """
        return self._create(WorkItemKind.BUG, 'Bug', title, description, options)

    def update_user_story(self, work_item_id: Any, updates: Mapping[str, Any]) -> WorkItemRecord:
        return self._update(work_item_id, updates, f.USER_STORY_FIELDS, 'user story')

    def update_bug(self, work_item_id: Any, updates: Mapping[str, Any]) -> WorkItemRecord:
        return self._update(work_item_id, updates, f.BUG_FIELDS, 'bug')

    def get_work_item(self, work_item_id: Any) -> WorkItemRecord:
        """Retrieve a work item with its relations.

        Raises:
            NotFound: If the work item does not exist
        """
        work_item_id = f.require_id(work_item_id)
        self.logger.debug(f'Retrieving work item: {work_item_id}')
        try:
            payload = self.client.get_work_item(work_item_id)
        except NotFound:
            raise NotFound(f'Work item {work_item_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'retrieve work item')
        if not payload:
            raise NotFound(f'Work item {work_item_id} not found')
        return self._shape(payload, include_relations=True)

    def delete_user_story(self, work_item_id: Any, destroy: bool = False) -> Record:
        """Delete a user story.

        Args:
            work_item_id: ID of the user story
            destroy: Permanently destroy instead of moving to the recycle bin

        Raises:
            ValidationError: If the work item is not a user story
        """
        work_item = self.get_work_item(work_item_id)
        if work_item.type != WorkItemKind.USER_STORY.value:
            raise ValidationError(
                f'Work item {work_item.id} is not a {self.user_story_type} '
                f'(Type: {work_item.work_item_type})'
            )
        return self.delete_work_item(work_item, destroy)

    def delete_work_item(self, work_item: WorkItemRecord, destroy: bool = False) -> Record:
        self.logger.info(f'Deleting work item {work_item.id} (destroy={destroy})')
        try:
            self.client.delete_work_item(work_item.id, destroy=destroy)
        except UpstreamError as e:
            raise upstream_failure(e, f'delete work item {work_item.id}')

        logfire.info('Deleted Azure DevOps work item', work_item_id=work_item.id, destroy=destroy)
        return Record(
            id=work_item.id,
            deleted=True,
            destroyed=destroy,
            title=work_item.title,
            deleted_date=datetime.now(timezone.utc).isoformat(),
        )

    def search_ids(self, wiql: str) -> List[int]:
        """Run a WIQL query and return the matching work item ids."""
        self.logger.debug(f'Running WIQL query: {wiql}')
        return work_item_ids(self.client.query_by_wiql(wiql))

    def search_work_items(self, wiql: str) -> List[WorkItemRecord]:
        """Run a WIQL query and return matching work items in backend order."""
        f.require_text(wiql, 'WIQL query')
        try:
            ids = self.search_ids(wiql)
            if not ids:
                self.logger.info('No work items found matching the query')
                return []
            payloads = self.client.get_work_items(ids)
        except UpstreamError as e:
            raise upstream_failure(e, 'search work items')

        records = [self._shape(payload) for payload in payloads]
        self.logger.info(f'Found {len(records)} work items')
        return records

    def get_user_stories_for_feature(self, feature_id: Any) -> List[WorkItemRecord]:
        feature_id = f.require_id(feature_id, 'feature')
        wiql = (
            'SELECT [System.Id], [System.Title], [System.State] FROM WorkItemLinks '
            f'WHERE (Source.[System.Id] = {feature_id}) '
            f"AND (Target.[System.WorkItemType] = '{self.user_story_type}') "
            f"AND ([System.Links.LinkType] = '{CHILD_LINK}') "
            'MODE (MustContain)'
        )
        return self.search_work_items(wiql)

    def _relate(self, source_id: int, document: Sequence[Dict[str, Any]], operation: str) -> None:
        try:
            self.client.update_work_item(source_id, list(document))
        except NotFound:
            raise NotFound(f'Work item {source_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, operation)

    def link_work_items(self, source_id: Any, target_id: Any, link_type: str = 'Child') -> Record:
        """Link two work items in the hierarchy.

        Args:
            source_id: Work item receiving the link
            target_id: Linked work item
            link_type: 'Child' when source is a child of target, 'Parent' otherwise
        """
        source_id = f.require_id(source_id, 'source work item')
        target_id = f.require_id(target_id, 'target work item')
        if link_type not in ('Child', 'Parent'):
            raise ValidationError(f'Invalid link type: {link_type}. Valid types: Child, Parent')

        rel = PARENT_LINK if link_type == 'Child' else CHILD_LINK
        self.logger.info(f'Linking work item {source_id} to {target_id} ({link_type})')
        self._relate(
            source_id,
            [f.add_relation(rel, self.client.work_item_url(target_id))],
            f'link work items {source_id} -> {target_id}',
        )
        return Record(linked=True, source_id=source_id, target_id=target_id, link_type=link_type)

    def link_user_story_to_feature(self, user_story_id: Any, feature_id: Any) -> Record:
        """Make a user story the child of a feature."""
        user_story_id = f.require_id(user_story_id, 'user story')
        feature_id = f.require_id(feature_id, 'feature')

        user_story = self.get_work_item(user_story_id)
        feature = self.get_work_item(feature_id)
        if user_story.type != WorkItemKind.USER_STORY.value:
            raise ValidationError(
                f'Work item {user_story_id} is not a {self.user_story_type} '
                f'(Type: {user_story.work_item_type})'
            )
        if feature.type != WorkItemKind.FEATURE.value:
            raise ValidationError(
                f'Work item {feature_id} is not a Feature (Type: {feature.work_item_type})'
            )

        self._relate(
            user_story_id,
            [f.add_relation(PARENT_LINK, self.client.work_item_url(feature_id))],
            'link user story to feature',
        )
        self.logger.info(f'Linked user story {user_story_id} to feature {feature_id}')
        logfire.info(
            'Linked Azure DevOps user story to feature',
            user_story_id=user_story_id,
            feature_id=feature_id,
        )
        return Record(
            linked=True,
            user_story_id=user_story_id,
            feature_id=feature_id,
            user_story_title=user_story.title,
            feature_title=feature.title,
            link_type='Parent-Child',
        )

    def get_work_item_comments(self, work_item_id: Any) -> List[Record]:
        work_item_id = f.require_id(work_item_id)
        try:
            comments = self.client.get_work_item_comments(work_item_id)
        except NotFound:
            raise NotFound(f'Work item {work_item_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'retrieve work item comments')

        return [
            Record(
                id=comment.get('id'),
                text=comment.get('text'),
                created_date=comment.get('createdDate'),
                created_by=display_name(comment.get('createdBy')),
                modified_date=comment.get('modifiedDate'),
                modified_by=display_name(comment.get('modifiedBy')),
            )
            for comment in comments
        ]

    def add_work_item_comment(self, work_item_id: Any, text: str) -> Record:
        work_item_id = f.require_id(work_item_id)
        f.require_text(text, 'Comment text')
        try:
            comment = self.client.add_work_item_comment(work_item_id, text)
        except NotFound:
            raise NotFound(f'Work item {work_item_id} not found')
        except UpstreamError as e:
            raise upstream_failure(e, 'add work item comment')

        return Record(
            id=comment.get('id'),
            work_item_id=work_item_id,
            text=comment.get('text', text),
            created_date=comment.get('createdDate'),
            created_by=display_name(comment.get('createdBy')),
        )

    def get_work_item_attachments(self, work_item_id: Any) -> List[Record]:
        """List the files attached to a work item.

        Raises:
            NotFound: If the work item does not exist
        """
        work_item = self.get_work_item(work_item_id)
        attachments = attachment_records(work_item.relations)
        self.logger.info(f'Found {len(attachments)} attachments for work item {work_item.id}')
        return attachments

    def get_bug_details(self, work_item_id: Any) -> Record:
        """Retrieve a bug with its bug fields, comments, attachments and relations.

        Comments that cannot be read are reported as an empty list.

        Raises:
            NotFound: If the work item does not exist
            ValidationError: If the work item is not a bug
        """
        bug = self.get_work_item(work_item_id)
        if bug.type != WorkItemKind.BUG.value:
            raise ValidationError(
                f'Work item {bug.id} is not a Bug (Type: {bug.work_item_type})'
            )

        try:
            comments = self.get_work_item_comments(bug.id)
        except (UpstreamError, NotFound) as e:
            self.logger.warning(f'Failed to get comments of bug {bug.id}: {str(e)}')
            comments = []
        attachments = attachment_records(bug.relations)

        self.logger.info(
            f'Retrieved bug {bug.id}: {len(comments)} comments, {len(attachments)} attachments'
        )
        return Record(
            basic_info={key: bug.get(key) for key in BUG_BASIC_INFO},
            bug_fields=dict(bug.fields),
            comments=comments,
            attachments=attachments,
            relations=bug.relations,
        )
