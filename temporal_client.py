"""Temporal client factory.

Creates connections to Temporal using credentials from environment, and
starts source sync workflows.
"""

import os
from pathlib import Path
from typing import Union

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client, WorkflowHandle
from temporalio.service import TLSConfig

from workflows.source_sync_workflow import SourceSyncInput, SourceSyncWorkflow, TASK_QUEUE


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "temporal.example.com:7233")
    - TEMPORAL_NAMESPACE: Namespace (e.g., "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud (omit for a local dev server)
    - TEMPORAL_CERT_PATH: Path to client certificate (optional, for mTLS)
    - TEMPORAL_KEY_PATH: Path to the client private key (defaults to TEMPORAL_CERT_PATH)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is missing
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT")
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")
    key_path = os.getenv("TEMPORAL_KEY_PATH") or cert_path

    if not endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    if not api_key:
        # Local dev server: plaintext, no auth
        return await Client.connect(endpoint, namespace=namespace)

    tls_config: Union[bool, TLSConfig] = True
    if cert_path:
        tls_config = TLSConfig(
            client_cert=Path(cert_path).read_bytes(),
            client_private_key=Path(key_path).read_bytes(),
        )

    return await Client.connect(
        target_host=endpoint,
        namespace=namespace,
        tls=tls_config,
        api_key=api_key,
    )


def source_sync_workflow_id(tenant_id: str) -> str:
    """One running workflow per tenant."""
    return f"source-sync-{tenant_id}"


async def start_source_sync(client: Client, input: SourceSyncInput) -> WorkflowHandle:
    """Start SourceSyncWorkflow for a tenant.

    Raises:
        temporalio.exceptions.WorkflowAlreadyStartedError: If the tenant already has a running sync
    """
    return await client.start_workflow(
        SourceSyncWorkflow.run,
        input,
        id=source_sync_workflow_id(input.tenant_id),
        task_queue=TASK_QUEUE,
    )
