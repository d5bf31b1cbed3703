class ApiError(Exception):
    """REST call failed. status_code is None for transport-level failures."""

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class SessionExpiredError(ApiError):
    """Access token expired and could not be refreshed. Local tokens are already cleared."""

    def __init__(self, detail: str = "Session expired") -> None:
        super().__init__(detail, status_code=401)
