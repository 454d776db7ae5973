"""Mapping between Azure DevOps status enums and their labels.

Both tables are strict: a code or label outside the table raises UnknownStatus.
"""

from tl.azure_devops_integration.errors import UnknownStatus
from typing import Dict, Union


PULL_REQUEST_STATUS: Dict[int, str] = {
    1: 'Abandoned',
    2: 'Active',
    3: 'Completed',
    4: 'NotSet',
}

COMMENT_THREAD_STATUS: Dict[int, str] = {
    1: 'Active',
    2: 'Fixed',
    3: 'WontFix',
    4: 'Closed',
    5: 'ByDesign',
    6: 'Pending',
}


def _label_of(table: Dict[int, str], code: int, kind: str) -> str:
    # bool is an int subclass; True must not map to code 1
    if isinstance(code, bool) or not isinstance(code, int) or code not in table:
        raise UnknownStatus(f'Unknown {kind} status code: {code!r}')
    return table[code]


def _code_of(table: Dict[int, str], label: str, kind: str) -> int:
    if isinstance(label, str):
        wanted = label.strip().lower()
        for code, name in table.items():
            if name.lower() == wanted:
                return code
    raise UnknownStatus(
        f'Unknown {kind} status: {label!r}. Valid values: {", ".join(table.values())}'
    )


def pull_request_status_label(code: int) -> str:
    """Return the label for a numeric pull request status."""
    return _label_of(PULL_REQUEST_STATUS, code, 'pull request')


def pull_request_status_code(label: str) -> int:
    """Return the numeric pull request status for a label (case-insensitive)."""
    return _code_of(PULL_REQUEST_STATUS, label, 'pull request')


def comment_thread_status_label(code: int) -> str:
    """Return the label for a numeric comment thread status."""
    return _label_of(COMMENT_THREAD_STATUS, code, 'comment thread')


def comment_thread_status_code(label: str) -> int:
    """Return the numeric comment thread status for a label (case-insensitive)."""
    return _code_of(COMMENT_THREAD_STATUS, label, 'comment thread')


def normalize_pull_request_status(value: Union[int, str]) -> str:
    """Canonical label for a pull request status given as code or label.

    The REST API reports statuses as camel-cased names ('active'), the numeric
    form comes from SDK-shaped payloads.
    """
    if isinstance(value, str):
        return pull_request_status_label(pull_request_status_code(value))
    return pull_request_status_label(value)


def normalize_comment_thread_status(value: Union[int, str]) -> str:
    """Canonical label for a comment thread status given as code or label."""
    if isinstance(value, str):
        return comment_thread_status_label(comment_thread_status_code(value))
    return comment_thread_status_label(value)
