"""Reservation engine settings, read from ``settings.RESERVATIONS``."""

from dataclasses import dataclass, fields
from datetime import timedelta


@dataclass(frozen=True)
class ReservationConfig:
    hold_ttl_minutes: int = 15
    payment_timeout_seconds: float = 60
    payment_poll_interval_seconds: float = 2
    gateway_max_attempts: int = 3
    gateway_backoff_seconds: float = 0.5
    relist_on_refund: bool = False
    currency: str = 'USD'  # every room type must be priced in it
    rating_recompute_attempts: int = 3

    @property
    def hold_ttl(self) -> timedelta:
        return timedelta(minutes=self.hold_ttl_minutes)

    @classmethod
    def from_settings(cls, settings=None) -> 'ReservationConfig':
        """Build from the ``RESERVATIONS`` dict; keys are the upper-cased field names."""
        if settings is None:
            from django.conf import settings
        raw = getattr(settings, 'RESERVATIONS', {}) or {}
        known = {f.name.upper(): f.name for f in fields(cls)}
        unknown = set(raw) - set(known)
        if unknown:
            raise ValueError(f"Unknown RESERVATIONS settings: {', '.join(sorted(unknown))}")
        return cls(**{known[key]: value for key, value in raw.items()})
