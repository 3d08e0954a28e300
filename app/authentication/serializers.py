"""
Serializers for authentication models.

- UserSummarySerializer: compact sender/participant shape embedded in chat payloads
- UserSerializer: current user (read)
- ProfileUpdateSerializer: profile edits
"""

from rest_framework import serializers

from authentication.models import Profile, User


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Compact user representation used when hydrating chat messages.

    Output:
        {"id": 1, "full_name": "Jane Doe", "profile_photo": "https://..."}
    """

    full_name = serializers.SerializerMethodField()
    profile_photo = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "full_name", "profile_photo"]
        read_only_fields = fields

    def get_full_name(self, obj):
        return obj.get_full_name()

    def get_profile_photo(self, obj):
        try:
            return obj.profile.profile_photo or None
        except Profile.DoesNotExist:
            return None


class UserSerializer(serializers.ModelSerializer):
    """Serializer for the authenticated user's own record."""

    full_name = serializers.SerializerMethodField()
    first_name = serializers.CharField(source="profile.first_name", read_only=True)
    last_name = serializers.CharField(source="profile.last_name", read_only=True)
    profile_photo = serializers.CharField(source="profile.profile_photo", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "full_name",
            "first_name",
            "last_name",
            "profile_photo",
            "email_verified",
            "last_seen",
            "date_joined",
        ]
        read_only_fields = fields

    def get_full_name(self, obj):
        return obj.get_full_name()


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Partial update of the current user's display data."""

    class Meta:
        model = Profile
        fields = ["first_name", "last_name", "profile_photo"]
