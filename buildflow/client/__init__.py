"""Python client for the BuildFlow REST API"""
from .base import ApiError, ApiResponse, BaseApiService, RetryConfig
from .http import HttpTransport
from .services import (
    AuthService, BuildFlowClient, CrmService, InventoryService, ProcurementService,
    RecordsService, ReportsService, TwoFactorService,
)
from .session import SessionStore

__all__ = [
    'ApiError', 'ApiResponse', 'BaseApiService', 'RetryConfig', 'HttpTransport', 'SessionStore',
    'AuthService', 'TwoFactorService', 'InventoryService', 'ProcurementService', 'CrmService',
    'ReportsService', 'RecordsService', 'BuildFlowClient',
]
