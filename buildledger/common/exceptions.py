from fastapi import HTTPException, status


class BuildLedgerException(HTTPException):
    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(BuildLedgerException):
    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class BadRequestError(BuildLedgerException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(BuildLedgerException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class DataIntegrityError(ConflictError):
    """A write would leave the ledger in a state the financial engine cannot resolve."""


class RecomputeError(BuildLedgerException):
    def __init__(self, project_id: str, detail: str | None = None):
        msg = f"Financial recompute failed for project '{project_id}'"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.project_id = project_id


class RecomputeTimeoutError(RecomputeError):
    def __init__(self, project_id: str, timeout: float):
        super().__init__(project_id, f"timed out after {timeout:g}s, retry the request")
        self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        self.headers = {"Retry-After": "1"}
