from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    kind = "error"

    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class NotFoundError(BaseAppException):
    kind = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class AlreadyExistsError(BaseAppException):
    kind = "already_exists"

    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class ValidationError(BaseAppException):
    kind = "validation_error"

    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class InvalidHierarchyError(BaseAppException):
    kind = "invalid_hierarchy"

    def __init__(self, detail: str = "Invalid hierarchy"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class MaxDepthExceededError(BaseAppException):
    kind = "max_depth_exceeded"

    def __init__(self, detail: str = "Maximum 3 levels of menu hierarchy allowed"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class HasDependentsError(BaseAppException):
    kind = "has_dependents"

    def __init__(self, detail: str = "Resource has dependents"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class HasChildrenError(HasDependentsError):
    kind = "has_children"

    def __init__(self, detail: str = "Resource has children"):
        super().__init__(detail=detail)

class HasUsersError(HasDependentsError):
    kind = "has_users"

    def __init__(self, detail: str = "Role is assigned to users"):
        super().__init__(detail=detail)

class AuthorizationDeniedError(BaseAppException):
    kind = "authorization_denied"

    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

# A protected entity is a special case of a denied mutation
class SystemProtectedError(AuthorizationDeniedError):
    kind = "system_protected"

    def __init__(self, detail: str = "System entity is protected"):
        super().__init__(detail=detail)

class StorageFailureError(BaseAppException):
    kind = "storage_failure"

    def __init__(self, detail: str = "Storage failure, safe to retry"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
