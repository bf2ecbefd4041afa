"""Credential factory: builds the async Azure credential shared by every Azure adapter."""
from __future__ import annotations

from azure.core.credentials_async import AsyncTokenCredential
from azure.identity.aio import (
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from poller.app.config.settings import Settings


def create_credential(settings: Settings) -> AsyncTokenCredential:
    """Select a credential from `auth_strategy`. Caller owns closing it."""
    strategy = settings.auth_strategy.strip().lower()

    match strategy:
        case "cli":
            return AzureCliCredential()
        case "managed_identity":
            return ManagedIdentityCredential(client_id=settings.azure_client_id or None)
        case "client_secret":
            secret = settings.azure_client_secret.get_secret_value()
            if not (settings.azure_tenant_id and settings.azure_client_id and secret):
                raise ValueError(
                    "client_secret auth requires AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET"
                )
            return ClientSecretCredential(
                tenant_id=settings.azure_tenant_id,
                client_id=settings.azure_client_id,
                client_secret=secret,
            )
        case "default":
            return DefaultAzureCredential()
        case _:
            raise ValueError(f"Unsupported auth strategy: {strategy}")
