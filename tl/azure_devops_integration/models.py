from typing import Any, Dict, List, Optional


class Record(Dict[str, Any]):
    """Plain record returned by the managers.

    A dict, so it serializes as-is, with attribute access to its keys.
    """

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name)


class WorkItemRecord(Record):
    """A work item, shaped from the Azure DevOps payload."""


class TestCaseRecord(WorkItemRecord):
    """A test case work item, with its parsed steps."""

    __test__ = False  # not a pytest test class


class PullRequestRecord(Record):
    """A pull request, with optional commits, work items and iterations."""


class CommentThreadRecord(Record):
    """A pull request comment thread and its comments."""


class ADOResponse(Dict[str, Any]):
    """Response model returned by the MCP tools."""

    def __init__(self, status: str, message: str, **payload: Any):
        """Initialize an Azure DevOps tool response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            **payload: Operation-specific result fields
        """
        super().__init__({'status': status, 'message': message, **payload})
        self.status = status
        self.message = message


class ADOWorkItemResponse(ADOResponse):
    """Response model for operations returning a single work item."""

    def __init__(self, status: str, message: str, work_item: Optional[Dict[str, Any]]):
        """Initialize Azure DevOps work item response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            work_item: The work item record, or None on error
        """
        super().__init__(status, message, work_item=work_item)
        self.work_item = work_item


class ADOSearchWorkItemsResponse(ADOResponse):
    """Response model for work item and test case searches."""

    def __init__(self, status: str, message: str, work_items: List[Dict[str, Any]], count: int):
        """Initialize Azure DevOps work item search response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            work_items: Matching work item records
            count: Number of work items returned
        """
        super().__init__(status, message, work_items=work_items, count=count)
        self.work_items = work_items
        self.count = count


class ADOPullRequestResponse(ADOResponse):
    """Response model for getting a pull request."""

    def __init__(self, status: str, message: str, pull_request: Optional[Dict[str, Any]]):
        """Initialize Azure DevOps pull request response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            pull_request: The pull request record, or None on error
        """
        super().__init__(status, message, pull_request=pull_request)
        self.pull_request = pull_request


class ADOPullRequestCommentsResponse(ADOResponse):
    """Response model for listing pull request comment threads."""

    def __init__(self, status: str, message: str, threads: List[Dict[str, Any]], count: int):
        """Initialize Azure DevOps pull request comments response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            threads: Comment thread records
            count: Number of threads returned
        """
        super().__init__(status, message, threads=threads, count=count)
        self.threads = threads
        self.count = count


class ADOResultResponse(ADOResponse):
    """Response model for operations returning a single result record."""

    def __init__(self, status: str, message: str, result: Optional[Dict[str, Any]]):
        """Initialize Azure DevOps result response.

        Args:
            status: Status of the operation (success/error)
            message: Message describing the result
            result: Operation result (link, comment, connection info...), or None on error
        """
        super().__init__(status, message, result=result)
        self.result = result
