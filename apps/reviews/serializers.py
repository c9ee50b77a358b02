"""Serializers for reviews.

The write serializer only validates the request shape; rating bounds and
the one-review-per-hotel rule are enforced by the review service. The
creating user is inferred from the request in the view.
"""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Review


class ReviewCreateSerializer(serializers.Serializer):
    """Input for creating a new review."""

    hotel = serializers.UUIDField()
    rating = serializers.IntegerField(min_value=1, max_value=5)
    title = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    text = serializers.CharField(required=False, allow_blank=True, default='')


class ReviewUpdateSerializer(serializers.Serializer):
    """Partial edit of the caller's own review."""

    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    title = serializers.CharField(max_length=200, required=False, allow_blank=True)
    text = serializers.CharField(required=False, allow_blank=True)


class ReviewSerializer(serializers.ModelSerializer):
    """Read serializer for reviews including related ids."""

    user_id = serializers.ReadOnlyField(source='user.id')
    user_name = serializers.ReadOnlyField(source='user.username')
    hotel_id = serializers.ReadOnlyField(source='hotel.id')
    hotel_name = serializers.ReadOnlyField(source='hotel.name')

    class Meta:
        model = Review
        fields = [
            'id',
            'user_id',
            'user_name',
            'hotel_id',
            'hotel_name',
            'rating',
            'title',
            'text',
            'created_at',
            'updated_at',
        ]
