"""
Authentication application.

Email-identified users for the chat backend. Users sign in with simplejwt
access tokens over HTTP and over the chat WebSocket.

Key components:
    - User model: Custom email-based user with last_seen (set when the
      user's final socket closes)
    - Profile model: Display name and photo shown on chat messages
    - UserService: record_last_seen for the presence registry
    - UserSummarySerializer: {id, full_name, profile_photo} for message payloads

Usage:
    from authentication.models import User, Profile
    from authentication.services import UserService
"""
