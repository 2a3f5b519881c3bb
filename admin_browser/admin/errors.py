"""
Request-fatal admin errors.

They subclass FastAPI's ``HTTPException`` so the framework's standard
handler renders them; save failures are not exceptions (see
``admin_browser.db.repository.SaveResult``).
"""
from fastapi import HTTPException, status


class NotFound(HTTPException):
    def __init__(self, detail: str = "Record not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Records of this model cannot be deleted"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class BadRequest(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
