# SPDX-License-Identifier: MIT
"""Enums for the dashboard sync layer."""

from enum import Enum


class NotificationPriority(str, Enum):
    """Priority of a notification."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class NotificationType(str, Enum):
    """Visual type of a notification."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class MutationAction(str, Enum):
    """Remote state changes a notification can be asked to make."""

    READ = "read"
    UNREAD = "unread"
    READ_ALL = "read_all"
    DELETE = "delete"


class InsightType(str, Enum):
    """Kind of AI-derived business insight."""

    OPPORTUNITY = "opportunity"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class InsightImpact(str, Enum):
    """Expected business impact of an insight."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
