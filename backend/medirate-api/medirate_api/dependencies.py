"""FastAPI dependencies for external clients and shared services.

Tests replace these through `app.dependency_overrides`.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from .config.loader import Config, get_config
from .database import get_db
from .notifications.sender import EmailSender
from .services.blob_store import BlobStore
from .services.entitlements import EntitlementResolver
from .services.library import DocumentLibrary
from .services.stripe_client import StripeClient
from .services.usage import UsageTracker


def get_stripe_client(config: Config = Depends(get_config)) -> StripeClient:
    return StripeClient(
        secret_key=config.stripe.secret_key,
        api_base=config.stripe.api_base,
        timeout=config.stripe.timeout_seconds,
    )


def get_blob_store(config: Config = Depends(get_config)) -> BlobStore:
    return BlobStore(
        token=config.blob.token,
        api_url=config.blob.api_url,
        timeout=config.blob.timeout_seconds,
    )


def get_document_library(store: BlobStore = Depends(get_blob_store)) -> DocumentLibrary:
    return DocumentLibrary(store)


def get_email_sender(config: Config = Depends(get_config)) -> EmailSender:
    return EmailSender(config.brevo, config.notification)


def get_entitlement_resolver(
    db: Session = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> EntitlementResolver:
    return EntitlementResolver(db, stripe_client)


def get_usage_tracker(
    db: Session = Depends(get_db),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
    config: Config = Depends(get_config),
) -> UsageTracker:
    return UsageTracker(db, resolver, rows_limit=config.export.rows_limit)
