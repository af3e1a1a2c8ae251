class ProofroomError(Exception):
    pass


class TransientFetchError(ProofroomError):
    """Timeout, network failure or non-2xx upstream response."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class FetchTimeout(TransientFetchError):
    pass


class UpstreamError(TransientFetchError):
    def __init__(self, url: str, message: str, status: int = 0):
        super().__init__(url, message)
        self.status = status


class BudgetExceeded(ProofroomError):
    pass


class MalformedInput(ProofroomError):
    pass


class StorageError(ProofroomError):
    pass


class ProjectNotFound(ProofroomError):
    def __init__(self, project_id: str):
        super().__init__(f"project not found: {project_id}")
        self.project_id = project_id


class PageNotFound(ProofroomError):
    def __init__(self, key: str):
        super().__init__(f"page not found: {key}")
        self.key = key
