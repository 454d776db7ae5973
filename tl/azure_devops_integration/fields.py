"""Work item field tables and JSON-Patch document construction.

Each work item kind accepts an enumerated set of option keys. Every key maps to an
Azure DevOps field reference name and a coercion that validates the value. A value
that fails coercion is skipped with a warning instead of failing the request.
"""

from dataclasses import dataclass
from enum import Enum
from tl.azure_devops_integration.errors import ValidationError
from typing import Any, Callable, Dict, List, Mapping, Optional


TITLE = 'System.Title'
DESCRIPTION = 'System.Description'
WORK_ITEM_TYPE = 'System.WorkItemType'
STATE = 'System.State'
ASSIGNED_TO = 'System.AssignedTo'
ITERATION_PATH = 'System.IterationPath'
AREA_PATH = 'System.AreaPath'
TAGS = 'System.Tags'
CREATED_DATE = 'System.CreatedDate'
CHANGED_DATE = 'System.ChangedDate'
CREATED_BY = 'System.CreatedBy'
CHANGED_BY = 'System.ChangedBy'
PRIORITY = 'Microsoft.VSTS.Common.Priority'
TEST_STEPS = 'Microsoft.VSTS.TCM.Steps'

AUTOMATION_STATUSES = ('Not Automated', 'Planned', 'Automated')


class WorkItemKind(str, Enum):
    """Work item kinds handled by the managers."""

    USER_STORY = 'UserStory'
    TASK = 'Task'
    BUG = 'Bug'
    FEATURE = 'Feature'
    TEST_CASE = 'TestCase'


# Azure DevOps type names for the fixed kinds; user stories use the configured name
AZURE_TYPE_NAMES = {
    WorkItemKind.TASK: 'Task',
    WorkItemKind.BUG: 'Bug',
    WorkItemKind.FEATURE: 'Feature',
    WorkItemKind.TEST_CASE: 'Test Case',
}


def kind_of(work_item_type: Optional[str], user_story_type: str) -> Optional[str]:
    """Map an Azure DevOps work item type name to its kind label.

    Types without a kind (Epic, Issue, ...) are returned unchanged.
    """
    if not work_item_type:
        return None
    if work_item_type in (user_story_type, 'User Story', 'Product Backlog Item'):
        return WorkItemKind.USER_STORY.value
    for kind, name in AZURE_TYPE_NAMES.items():
        if work_item_type == name:
            return kind.value
    return work_item_type


def _priority(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError('must be an integer between 1 and 4')
    priority = int(value)
    if priority < 1 or priority > 4:
        raise ValueError('must be between 1 and 4')
    return priority


def _number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError('must be a number')
    return float(value)


def _text(value: Any) -> str:
    return str(value)


def _automation_status(value: Any) -> str:
    if value not in AUTOMATION_STATUSES:
        raise ValueError(f'must be one of: {", ".join(AUTOMATION_STATUSES)}')
    return value


@dataclass(frozen=True)
class FieldSpec:
    """An option key's target field and value coercion."""

    reference_name: str
    coerce: Callable[[Any], Any] = _text


_COMMON = {
    'assigned_to': FieldSpec(ASSIGNED_TO),
    'iteration_path': FieldSpec(ITERATION_PATH),
    'area_path': FieldSpec(AREA_PATH),
    'tags': FieldSpec(TAGS),
}

USER_STORY_FIELDS: Dict[str, FieldSpec] = {
    **_COMMON,
    'acceptance_criteria': FieldSpec('Microsoft.VSTS.Common.AcceptanceCriteria'),
    'priority': FieldSpec(PRIORITY, _priority),
    'story_points': FieldSpec('Microsoft.VSTS.Scheduling.StoryPoints', _number),
}

TASK_FIELDS: Dict[str, FieldSpec] = {
    **_COMMON,
    'priority': FieldSpec(PRIORITY, _priority),
    'original_estimate': FieldSpec('Microsoft.VSTS.Scheduling.OriginalEstimate', _number),
    'remaining_work': FieldSpec('Microsoft.VSTS.Scheduling.RemainingWork', _number),
    'activity': FieldSpec('Microsoft.VSTS.Common.Activity'),
}

BUG_FIELDS: Dict[str, FieldSpec] = {
    **_COMMON,
    'priority': FieldSpec(PRIORITY, _priority),
    'severity': FieldSpec('Microsoft.VSTS.Common.Severity'),
    'repro_steps': FieldSpec('Microsoft.VSTS.TCM.ReproSteps'),
    'found_in': FieldSpec('Microsoft.VSTS.Build.FoundIn'),
    'system_info': FieldSpec('Microsoft.VSTS.TCM.SystemInfo'),
}

TEST_CASE_FIELDS: Dict[str, FieldSpec] = {
    **_COMMON,
    'priority': FieldSpec(PRIORITY, _priority),
    'automation_status': FieldSpec('Microsoft.VSTS.TCM.AutomationStatus', _automation_status),
}

# Keys accepted by updates in addition to the creation keys
UPDATE_FIELDS: Dict[str, FieldSpec] = {
    'title': FieldSpec(TITLE),
    'description': FieldSpec(DESCRIPTION),
    'state': FieldSpec(STATE),
}

FIELDS_BY_KIND: Dict[WorkItemKind, Dict[str, FieldSpec]] = {
    WorkItemKind.USER_STORY: USER_STORY_FIELDS,
    WorkItemKind.TASK: TASK_FIELDS,
    WorkItemKind.BUG: BUG_FIELDS,
    WorkItemKind.TEST_CASE: TEST_CASE_FIELDS,
}

# Keys handled by the managers themselves rather than mapped to a field
CONTROL_KEYS = frozenset({'parent_id', 'steps', 'extra_fields'})


def add_field(path_or_field: str, value: Any) -> Dict[str, Any]:
    """JSON-Patch 'add' operation for a field reference name."""
    return {'op': 'add', 'path': f'/fields/{path_or_field}', 'value': value}


def add_relation(rel: str, url: str, comment: Optional[str] = None) -> Dict[str, Any]:
    """JSON-Patch 'add' operation appending a relation link."""
    value: Dict[str, Any] = {'rel': rel, 'url': url}
    if comment:
        value['attributes'] = {'comment': comment}
    return {'op': 'add', 'path': '/relations/-', 'value': value}


def require_text(value: Any, name: str) -> str:
    """Return a non-empty string value or raise ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{name} is required and must be a non-empty string')
    return value


def require_id(value: Any, name: str = 'work item') -> int:
    """Return a positive integer id or raise ValidationError."""
    try:
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValueError
        identifier = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Valid {name} ID is required')
    if identifier <= 0:
        raise ValidationError(f'Valid {name} ID is required')
    return identifier


def build_field_operations(
    options: Optional[Mapping[str, Any]],
    field_specs: Mapping[str, FieldSpec],
    logger: Any,
) -> List[Dict[str, Any]]:
    """Build patch operations for the recognized keys of an options mapping.

    Args:
        options: Option values keyed by option name; None values are ignored
        field_specs: Recognized keys for the work item kind
        logger: Logger receiving warnings for skipped values

    Returns:
        List of JSON-Patch 'add' operations, in option order, followed by any
        'extra_fields' entries
    """
    operations: List[Dict[str, Any]] = []
    if not options:
        return operations

    for key, value in options.items():
        if value is None or key in CONTROL_KEYS:
            continue
        spec = field_specs.get(key)
        if spec is None:
            logger.warning(f'Ignoring unrecognised field "{key}"')
            continue
        try:
            coerced = spec.coerce(value)
        except (TypeError, ValueError) as e:
            logger.warning(f'Invalid {key} value: {value!r} ({e}), field skipped')
            continue
        operations.append(add_field(spec.reference_name, coerced))

    extra_fields = options.get('extra_fields') or {}
    if not isinstance(extra_fields, Mapping):
        raise ValidationError('extra_fields must be a mapping of field reference names to values')
    for reference_name, value in extra_fields.items():
        if value is not None:
            operations.append(add_field(reference_name, value))

    return operations
