"""Constants for the GCS Bucket Operator."""

import os

# API Group
API_GROUP = "gcs.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_PROVIDER = "Provider"
KIND_BUCKET = "Bucket"

# Plurals
PLURAL_PROVIDERS = "providers"

# Annotations
ANNOTATION_IMPORT_ID = f"{API_GROUP}/import-id"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Controller name used in structured logs
CONTROLLER_NAME = "gcs-bucket-operator"

# Condition Types
COND_READY = "Ready"
COND_PROVIDER_NOT_READY = "ProviderNotReady"
COND_AUTH_VALID = "AuthValid"
COND_ENDPOINT_REACHABLE = "EndpointReachable"
COND_CREATION_FAILED = "CreationFailed"
COND_DELETION_BLOCKED = "DeletionBlocked"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_BUCKET_CREATED = "BucketCreated"
EVENT_REASON_BUCKET_UPDATED = "BucketUpdated"
EVENT_REASON_BUCKET_DELETED = "BucketDeleted"
EVENT_REASON_BUCKET_IMPORTED = "BucketImported"
EVENT_REASON_BUCKET_ABSENT = "BucketAbsent"

# Bucket defaults
DEFAULT_LOCATION = "US"
DEFAULT_STORAGE_CLASS = "STANDARD"
DEFAULT_CREDENTIALS_KEY = "credentials.json"
MAX_LIFECYCLE_RULES = 100

# Lifecycle action types
ACTION_DELETE = "Delete"
ACTION_SET_STORAGE_CLASS = "SetStorageClass"

# Remote call tuning
GCS_CREATE_MAX_ATTEMPTS = int(os.getenv("GCS_CREATE_MAX_ATTEMPTS", "5"))
GCS_DELETE_RETRY_TIMEOUT_SECONDS = float(os.getenv("GCS_DELETE_RETRY_TIMEOUT_SECONDS", "60"))
