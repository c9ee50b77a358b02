"""API views for managing reviews."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings import bootstrap
from .models import Review
from .serializers import ReviewCreateSerializer, ReviewSerializer, ReviewUpdateSerializer


class ReviewViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Reviews are public to read; creating, editing and deleting go through the
    review service so the hotel's rating is recomputed afterwards.
    """

    queryset = Review.objects.select_related('hotel', 'user').all()
    serializer_class = ReviewSerializer
    lookup_value_regex = '[0-9a-f-]{36}'
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        hotel_id = self.request.query_params.get('hotel', None)
        if hotel_id:
            qs = qs.filter(hotel_id=hotel_id)
        return qs

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        review = bootstrap.get_engine().reviews.create_review(
            user_id=request.user.id,
            hotel_id=data['hotel'],
            rating=data['rating'],
            title=data['title'],
            text=data['text'],
        )
        instance = Review.objects.select_related('hotel', 'user').get(pk=review.id)
        return Response(ReviewSerializer(instance).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):  # type: ignore
        serializer = ReviewUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        review = bootstrap.get_engine().reviews.update_review(
            review_id=pk,
            user_id=request.user.id,
            **serializer.validated_data,
        )
        instance = Review.objects.select_related('hotel', 'user').get(pk=review.id)
        return Response(ReviewSerializer(instance).data)

    def destroy(self, request, pk=None):  # type: ignore
        user = request.user
        bootstrap.get_engine().reviews.remove_review(
            review_id=pk,
            user_id=user.id,
            is_staff=getattr(user, "is_staff", False) or getattr(user, "is_superuser", False),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
