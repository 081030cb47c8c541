"""
User domain models.

Data classes for users and roles, plus the field-map codec used to store
user profiles in the document store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


USERS_COLLECTION = "users"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class UserRole(str, Enum):
    """
    Role of a user in a monitor/protected safety relationship.
    """
    MONITOR = "MONITOR"         # Can monitor others
    PROTECTED = "PROTECTED"     # Being monitored
    BOTH = "BOTH"               # Can be both monitor and protected

    @property
    def display_name(self) -> str:
        """Human-readable role name."""
        return _ROLE_DISPLAY_NAMES[self]


_ROLE_DISPLAY_NAMES = {
    UserRole.MONITOR: "Monitor",
    UserRole.PROTECTED: "Protected",
    UserRole.BOTH: "Monitor & Protected",
}


class RoleParseError(ValueError):
    """Raised when a role string does not name a known UserRole."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid role: {value}")


def parse_role(value: str) -> UserRole:
    """
    Parse a role string into a UserRole.

    Matching is case-insensitive and ignores surrounding whitespace.
    Unknown values are rejected, never defaulted.

    Args:
        value: Role string (e.g. "monitor", "PROTECTED", "Both")

    Returns:
        Matching UserRole

    Raises:
        RoleParseError: If value names no role

    Examples:
        >>> parse_role("monitor")
        <UserRole.MONITOR: 'MONITOR'>
    """
    try:
        return UserRole[value.strip().upper()]
    except (KeyError, AttributeError):
        raise RoleParseError(str(value)) from None


def to_millis(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def from_millis(millis: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime (exact to the millisecond)."""
    return _EPOCH + timedelta(milliseconds=int(millis))


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    return from_millis(to_millis(datetime.now(timezone.utc)))


@dataclass(frozen=True)
class User:
    """
    User profile.

    Attributes:
        id: Identifier assigned by the identity provider
        name: Display name
        email: User email address
        phone: Phone number (empty until edited)
        role: Monitor/protected role
        profile_image_url: Profile image reference (optional)
        is_email_verified: Whether the provider verified the email
        created_at: Account creation timestamp (UTC)
    """
    id: str
    name: str
    email: str
    role: UserRole
    phone: str = ""
    profile_image_url: Optional[str] = None
    is_email_verified: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            raise ValueError("User id must not be empty")

    @property
    def initials(self) -> str:
        """Initials for avatars, e.g. "Ann Lee" -> "AL"."""
        parts = self.name.split()
        if len(parts) >= 2:
            return f"{parts[0][0]}{parts[1][0]}".upper()
        if parts:
            return parts[0][0].upper()
        return "U"

    def to_document(self) -> Dict[str, Any]:
        """
        Field-map representation stored in the document store.

        Returns:
            Dict with camelCase keys, role name and epoch-millisecond createdAt
        """
        document = UserDocument(
            id=self.id,
            name=self.name,
            email=self.email,
            phone=self.phone,
            role=self.role,
            profile_image_url=self.profile_image_url,
            is_email_verified=self.is_email_verified,
            created_at=to_millis(self.created_at),
        )
        return document.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "User":
        """
        Decode a stored field map.

        Args:
            data: Document contents

        Returns:
            User built from the document

        Raises:
            pydantic.ValidationError: If the document is malformed
        """
        document = UserDocument.model_validate(data)
        return cls(
            id=document.id,
            name=document.name,
            email=document.email,
            phone=document.phone,
            role=document.role,
            profile_image_url=document.profile_image_url,
            is_email_verified=document.is_email_verified,
            created_at=from_millis(document.created_at),
        )


class UserDocument(BaseModel):
    """Schema of a user profile document."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    email: str
    phone: str = ""
    role: UserRole
    profile_image_url: Optional[str] = Field(default=None, alias="profileImageUrl")
    is_email_verified: bool = Field(default=False, alias="isEmailVerified")
    created_at: int = Field(alias="createdAt")
