import yaml
import os
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator

# FCM rejects multicast messages addressed to more than this many tokens
FCM_MAX_MULTICAST_TOKENS = 500


class FirebaseConfig(BaseModel):
    project_id: Optional[str] = None
    credentials_file: Optional[str] = None  # Service account JSON; None = application default credentials


class CollectionsConfig(BaseModel):
    """Collection names in the document store, plus the fields the list queries filter on."""
    groups: str = "groups"
    memberships: str = "memberships"
    users: str = "users"
    participations: str = "participations"

    # Legacy mobile-app layout uses community_id / bet_id
    membership_group_field: str = "group_id"
    participation_wager_field: str = "wager_id"


class StoreConfig(BaseModel):
    backend: Literal["firestore", "memory"] = "firestore"
    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)
    fixture_file: Optional[str] = None  # JSON fixture for the memory backend


class NotificationConfig(BaseModel):
    """
    Configuration for the push notification pipelines.

    Controls delivery channel, lookup behaviour and redelivery deduplication.
    """
    enabled: bool = True

    # Delivery
    channel: str = "fcm"  # "fcm" or "log"
    dry_run: bool = False  # Log payloads instead of sending (forces the log channel)
    batch_size: int = FCM_MAX_MULTICAST_TOKENS

    # Payload
    fallback_title: str = "Community"  # Title when the group name is unknown

    # Per-recipient token lookup timeout; None = wait for the store
    lookup_timeout_seconds: Optional[float] = 10.0

    # Deduplication of redelivered store events (off = duplicates possible)
    deduplication_enabled: bool = False
    dedup_ttl_hours: int = 24
    redis_url: Optional[str] = None  # Override default Redis URL

    # Redis queue settings
    queue_name: str = "notifications"

    @field_validator("batch_size")
    @classmethod
    def check_batch_size(cls, v: int) -> int:
        if v < 1 or v > FCM_MAX_MULTICAST_TOKENS:
            raise ValueError(f"batch_size must be between 1 and {FCM_MAX_MULTICAST_TOKENS}")
        return v


class AppConfig(BaseModel):
    firebase: FirebaseConfig = Field(default_factory=FirebaseConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)


def _section(data: dict, name: str) -> dict:
    if not data.get(name):
        data[name] = {}
    return data[name]


def _is_truthy(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes')


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from another directory), try the project root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Empty sections in YAML load as None; fall back to model defaults
    data = {key: value for key, value in data.items() if value is not None}

    # Allow env var override for the Firebase project
    env_project_id = os.environ.get("FIREBASE_PROJECT_ID")
    if env_project_id:
        _section(data, 'firebase')['project_id'] = env_project_id

    env_credentials = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if env_credentials:
        _section(data, 'firebase').setdefault('credentials_file', env_credentials)

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        _section(data, 'notifications')['redis_url'] = env_redis_url

    env_dry_run = os.environ.get("NOTIFICATION_DRY_RUN")
    if env_dry_run:
        _section(data, 'notifications')['dry_run'] = _is_truthy(env_dry_run)

    return AppConfig(**data)
