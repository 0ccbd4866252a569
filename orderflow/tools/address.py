"""Delivery address validators."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from orderflow.catalog import RestaurantProfile

_logger = logging.getLogger("orderflow.tools")


@dataclass(slots=True)
class AddressCheck:
    valid: bool
    formatted_address: str
    delivery_fee: float | None = None
    zone: str | None = None
    distance_km: float | None = None
    reason: str | None = None


class AddressValidator(ABC):
    """Validates a delivery address and prices the delivery."""

    @abstractmethod
    async def validate(self, address: str, city: str | None = None, zip_code: str | None = None) -> AddressCheck:
        """Return the validation outcome. Transport problems raise."""


class ZoneAddressValidator(AddressValidator):
    """Match the address text against the restaurant's configured delivery zones."""

    def __init__(self, restaurant: RestaurantProfile) -> None:
        self._restaurant = restaurant

    async def validate(self, address, city=None, zip_code=None):
        formatted = ", ".join(part.strip() for part in (address, city, zip_code) if part and part.strip())
        if len(address.strip()) < 5:
            return AddressCheck(valid=False, formatted_address=formatted, reason="Address looks incomplete.")

        zone = self._restaurant.zone_for(formatted)
        if zone is None:
            return AddressCheck(
                valid=False,
                formatted_address=formatted,
                reason="That address is outside our delivery area.",
            )
        return AddressCheck(
            valid=True,
            formatted_address=formatted,
            delivery_fee=zone.fee,
            zone=zone.name,
            distance_km=zone.distance_km,
        )


class HttpAddressValidator(AddressValidator):
    """Delegate validation to a remote JSON endpoint."""

    def __init__(self, url: str, *, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def validate(self, address, city=None, zip_code=None):
        payload = {"address": address, "city": city, "zip_code": zip_code}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json=payload)
            response.raise_for_status()
            data = response.json()

        _logger.info("Remote address validation returned valid=%s", data.get("valid"))
        return AddressCheck(
            valid=bool(data.get("valid")),
            formatted_address=data.get("formatted_address") or address,
            delivery_fee=data.get("delivery_fee"),
            zone=data.get("zone"),
            distance_km=data.get("distance_km"),
            reason=data.get("error") or data.get("reason"),
        )
