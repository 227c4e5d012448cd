from claimletter.adapters.deadline import call_with_deadline
from claimletter.adapters.email import EmailAttachment, EmailMessage, SendGridEmailAdapter
from claimletter.adapters.llm import Completion, CompletionOptions, OpenAITextProvider, ProviderConfig
from claimletter.adapters.object_storage import (
    LocalObjectStorage,
    ObjectStorageBackend,
    ObjectStorageConfig,
    S3ObjectStorage,
    StorageLocation,
    create_object_storage,
)
from claimletter.adapters.payments import CheckoutSession, StripePaymentsAdapter
from claimletter.adapters.rendering import PdfRenderer
from claimletter.adapters.site import SiteReachabilityProbe

__all__ = [
    "CheckoutSession",
    "Completion",
    "CompletionOptions",
    "EmailAttachment",
    "EmailMessage",
    "LocalObjectStorage",
    "ObjectStorageBackend",
    "ObjectStorageConfig",
    "OpenAITextProvider",
    "PdfRenderer",
    "ProviderConfig",
    "S3ObjectStorage",
    "SendGridEmailAdapter",
    "SiteReachabilityProbe",
    "StorageLocation",
    "StripePaymentsAdapter",
    "call_with_deadline",
    "create_object_storage",
]
