"""Source API Connectors - Pluggable ERP data sources.

This package contains the abstract Source API contract and the concrete
clients the sync engine can read from:
- mock:     empty (or seeded) in-memory source
- http:     generic REST source returning canonical JSON
- fomplus:  Fomplus ERP web services (GET with SOAP fallback)

Key Design Principle:
- The sync engine depends ONLY on the SourceApiClient interface
- All methods return canonical types (SourceInvoice, SourcePayment, SourceCustomer)
- No ERP-specific field names leak through the interface

To add a new source:
1. Create a new module (or folder)
2. Implement SourceApiClient
3. Register using @register_source_client
"""

from connectors.source_base import (
    SourceApiClient,
    as_invoice_result,
    create_source_client,
    list_available_clients,
    register_source_client,
    resolve_client_name,
)
from connectors.http_transport import (
    ERROR_MARKER,
    HttpTransport,
    RetryConfig,
    SourceApiError,
    SourceBusinessError,
    SourceHttpError,
    SourceTimeoutError,
    TransportConfig,
    raise_for_error_marker,
)

# Import implementations to trigger registration
from connectors.mock_client import MockSourceApiClient
from connectors.http_client import HttpSourceApiClient
from connectors.fomplus import FomplusSourceApiClient

__all__ = [
    # Contract
    "SourceApiClient",
    "as_invoice_result",
    "create_source_client",
    "list_available_clients",
    "register_source_client",
    "resolve_client_name",
    # Transport
    "ERROR_MARKER",
    "HttpTransport",
    "RetryConfig",
    "TransportConfig",
    "raise_for_error_marker",
    # Errors
    "SourceApiError",
    "SourceBusinessError",
    "SourceHttpError",
    "SourceTimeoutError",
    # Clients
    "MockSourceApiClient",
    "HttpSourceApiClient",
    "FomplusSourceApiClient",
]
