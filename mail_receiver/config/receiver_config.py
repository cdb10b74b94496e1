"""Configuration models for the incoming mail receiver."""

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReceiverConfig(BaseModel):
    """Settings that drive message processing."""

    # Reply-by-email addresses, each with exactly one %{reply_key} placeholder
    reply_by_email_address: str = ""
    alternative_reply_by_email_addresses: list[str] = Field(default_factory=list)

    email_in: bool = True
    enable_staged_users: bool = True
    enable_forwarded_emails: bool = False
    email_in_min_trust: int = 2
    maximum_staged_users_per_email: int = 10

    attachment_content_type_blacklist: str = ""
    attachment_filename_blacklist: str = ""

    soft_bounce_score: int = 1
    hard_bounce_score: int = 2
    bounce_score_threshold: int = 4
    bounce_score_threshold_deactivate: int = 30
    reset_bounce_score_after_days: int = 30

    auto_generated_whitelist: list[str] = Field(default_factory=list)
    block_auto_generated_emails: bool = True

    incoming_email_prefer_html: bool = True
    always_show_trimmed_content: bool = False
    skip_trimming: bool = False
    convert_plaintext: bool = False

    ignore_by_title: str = ""
    unsubscribe_via_email: bool = True
    find_related_post_with_key: bool = True
    previous_discussion_marker: str = "Previous Replies"
    default_subject: str = "This topic needs a title ({email})"
    like_tokens: list[str] = Field(default_factory=lambda: ["+1", "<3", "❤", "like"])

    lock_ttl_seconds: int = 60
    lock_timeout_seconds: float = 30.0

    @field_validator("alternative_reply_by_email_addresses", "auto_generated_whitelist", mode="before")
    def split_pipe_separated(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split("|") if part.strip()]
        return v

    @field_validator(
        "soft_bounce_score",
        "hard_bounce_score",
        "bounce_score_threshold",
        "bounce_score_threshold_deactivate",
        "reset_bounce_score_after_days",
        "maximum_staged_users_per_email",
    )
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @field_validator("lock_ttl_seconds")
    def validate_lock_ttl(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Lock TTL must be positive")
        return v

    @field_validator("attachment_content_type_blacklist", "attachment_filename_blacklist", "ignore_by_title")
    def validate_pattern(cls, v: str) -> str:
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regular expression {v!r}: {e}")
        return v

    def reply_addresses(self) -> list[str]:
        """Primary and alternative reply address templates, blanks removed."""
        addresses = [self.reply_by_email_address, *self.alternative_reply_by_email_addresses]
        return [a for a in addresses if a]


class StorageConfig(BaseModel):
    """Storage configuration."""

    database_path: str = "~/.mailreceiver/receiver.db"
    audit_log_path: str = "~/.mailreceiver/logs/audit.log"
    redis_url: Optional[str] = None

    def get_database_path(self) -> Path:
        """Get expanded database path."""
        return Path(self.database_path).expanduser()

    def get_audit_log_path(self) -> Path:
        """Get expanded audit log path."""
        return Path(self.audit_log_path).expanduser()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_format: bool = False

    @field_validator("level")
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""

    schema_version: str = "1.0"
    receiver: ReceiverConfig = Field(default_factory=ReceiverConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("schema_version")
    def validate_schema_version(cls, v: str) -> str:
        if not v:
            raise ValueError("schema_version is required")
        return v
