"""
Chat app for realtime messaging between job seekers and job posters.

This app handles:
- Chat requests about a job and the rooms they open
- Message sending, history, edits, reactions, stars and deletion
- WebSocket presence, room occupancy, typing indicators and read receipts
- Scheduled messages

Related apps:
    - authentication: User model for participants and last-seen
    - jobs: Job a room is about
    - notifications: In-app and email notices for chat requests

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for the socket protocol, presence.py for runtime state
    and fanout.py for delivery.

Usage:
    from chat.services import MessageService

    result = MessageService.send_message(room_id=room.id, sender=user, text="Hello!")
"""
