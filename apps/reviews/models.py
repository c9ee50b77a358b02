"""Models for the review domain.

Defines the ``Review`` entity: a guest's 1-5 rating of a hotel with an
optional title and text. One user can leave at most one review per hotel;
the database enforces it so concurrent submissions cannot both succeed.
"""

from __future__ import annotations

import uuid

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Review(models.Model):
    """Represents a review left by a guest for a hotel."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reviews'
    )
    hotel = models.ForeignKey(
        'hotels.Hotel', on_delete=models.CASCADE, related_name='reviews'
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text=_('Rating from 1 to 5'),
    )
    title = models.CharField(max_length=200, blank=True)
    text = models.TextField(blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'hotel'], name='review_one_per_user_and_hotel'),
            models.CheckConstraint(
                condition=models.Q(rating__gte=1) & models.Q(rating__lte=5),
                name='review_rating_range',
            ),
        ]
        indexes = [
            models.Index(fields=['hotel', '-created_at'], name='review_hotel_created_idx'),
        ]

    def __str__(self) -> str:
        return f"Review by {self.user_id} for hotel {self.hotel_id} (Rating: {self.rating})"
