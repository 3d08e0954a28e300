"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message operations (editing window, content limits)
- Link previews (timeout, size limits)
- Attachments (blob storage location, size limits)
- Reactions (emoji restrictions)
- Realtime delivery (channel-layer group names)

Values that operators tune live in Django settings (CHAT_*) and are read
here once at import time.

Import example:
    from chat.constants import MESSAGE_CONFIG, REALTIME_CONFIG
"""

from typing import Final

from django.conf import settings


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_TEXT_LENGTH: Final[int] = 10000  # Characters

    # Only the sender may edit, and only inside this window
    EDIT_TIME_LIMIT_SECONDS: Final[int] = getattr(
        settings, "CHAT_EDIT_WINDOW_SECONDS", 300
    )

    # Upper bound on messages returned by a single history fetch
    MAX_HISTORY: Final[int] = 500


# =============================================================================
# Link Preview Configuration
# =============================================================================


class LINK_PREVIEW_CONFIG:
    """Configuration for URL preview enrichment."""

    # Single attempt; on timeout the message goes out with no preview
    TIMEOUT_SECONDS: Final[float] = getattr(
        settings, "CHAT_LINK_PREVIEW_TIMEOUT_SECONDS", 3.0
    )

    # Only the head of the document is parsed for <meta> tags
    MAX_BYTES: Final[int] = 512 * 1024

    USER_AGENT: Final[str] = "JobHuntLinkPreview/1.0 (+https://jobhunt.local)"

    MAX_TITLE_LENGTH: Final[int] = 300
    MAX_DESCRIPTION_LENGTH: Final[int] = 1000


# =============================================================================
# Attachment Configuration
# =============================================================================


class ATTACHMENT_CONFIG:
    """Configuration for the single file a message may carry."""

    UPLOAD_PREFIX: Final[str] = "chat/attachments"
    MAX_SIZE_BYTES: Final[int] = 10 * 1024 * 1024  # 10MB


# =============================================================================
# Reaction Configuration
# =============================================================================


class REACTION_CONFIG:
    """Configuration for message reactions."""

    # Long enough for multi-codepoint emoji (skin tones, ZWJ sequences)
    MAX_EMOJI_LENGTH: Final[int] = 32


# =============================================================================
# Scheduler Configuration
# =============================================================================


class SCHEDULER_CONFIG:
    """Configuration for the scheduled message dispatcher."""

    # Cap per tick; anything left over is picked up on the next run
    BATCH_SIZE: Final[int] = 500


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Channel-layer naming for realtime fan-out."""

    # Every socket, authenticated or not, receives presence transitions
    PRESENCE_GROUP: Final[str] = "chat_presence"
    ROOM_GROUP_PREFIX: Final[str] = "chat_room"
    USER_GROUP_PREFIX: Final[str] = "chat_user"

    # Channel-layer handler type on ChatConsumer (realtime_event)
    HANDLER_TYPE: Final[str] = "realtime.event"

