"""
Access to the ticket engine configuration (settings.TICKETS).

Values are read from Django settings on every access so that
override_settings in tests and per-process reconfiguration take effect
without restarting.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

DEFAULTS: Dict[str, Any] = {
    "CURRENCY": "CLP",
    "TAX_RATE": "0.19",
    "TIP_RATE": "0.10",
    "LOCK_NOWAIT": True,
    "EVENT_GROUP": "ticket_events",
    "OUTBOX_MAX_ATTEMPTS": 10,
}


class TicketSettings:
    def _raw(self, name):
        return getattr(settings, "TICKETS", {}).get(name, DEFAULTS[name])

    def _rate(self, name) -> Decimal:
        value = self._raw(name)
        try:
            rate = Decimal(str(value))
        except InvalidOperation:
            raise ImproperlyConfigured(f"TICKETS['{name}'] must be a decimal rate, got {value!r}")
        if rate < 0:
            raise ImproperlyConfigured(f"TICKETS['{name}'] cannot be negative")
        return rate

    @property
    def currency(self) -> str:
        return str(self._raw("CURRENCY")).upper()

    @property
    def tax_rate(self) -> Decimal:
        return self._rate("TAX_RATE")

    @property
    def tip_rate(self) -> Decimal:
        return self._rate("TIP_RATE")

    @property
    def lock_nowait(self) -> bool:
        return bool(self._raw("LOCK_NOWAIT"))

    @property
    def event_group(self) -> str:
        return self._raw("EVENT_GROUP")

    @property
    def outbox_max_attempts(self) -> int:
        return int(self._raw("OUTBOX_MAX_ATTEMPTS"))


ticket_settings = TicketSettings()
