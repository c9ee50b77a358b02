"""Admin registration for hotels."""

from __future__ import annotations

from django.contrib import admin

from .models import Hotel, RoomType


class RoomTypeInline(admin.TabularInline):
    model = RoomType
    extra = 0


@admin.register(Hotel)
class HotelAdmin(admin.ModelAdmin):
    list_display = ("name", "city", "average_rating", "review_count", "rating_updated_at")
    search_fields = ("name", "city")
    readonly_fields = ("average_rating", "review_count", "rating_updated_at", "created_at", "updated_at")
    inlines = [RoomTypeInline]


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "hotel", "nightly_price", "currency", "total_quantity", "capacity")
    list_filter = ("hotel",)
    search_fields = ("name", "hotel__name")
