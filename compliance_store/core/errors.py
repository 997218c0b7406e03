from __future__ import annotations


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class ListenerLimitError(AppError):
    pass


class ConfigurationError(AppError):
    pass


class InfraError(AppError):
    pass


class ExternalServiceError(InfraError):
    pass


class TransientExternalError(ExternalServiceError):
    pass


class RemoteGatewayError(ExternalServiceError):
    pass


class RemotePermissionError(RemoteGatewayError):
    pass


class VersionConflictError(ExternalServiceError):
    """The remote row changed since the version used as the base of a write."""

    def __init__(self, record_id: str, expected_updated_at: str | None) -> None:
        super().__init__(f"Record {record_id} changed remotely (expected updated_at={expected_updated_at})")
        self.record_id = record_id
        self.expected_updated_at = expected_updated_at
