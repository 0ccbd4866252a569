"""Restaurant profile: menu catalog, payment methods, delivery zones and contact details."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

logger = logging.getLogger("orderflow.catalog")


@dataclass(slots=True)
class Product:
    name: str
    price: float
    category: str
    description: str = ""
    aliases: tuple[str, ...] = ()
    available: bool = True


@dataclass(slots=True)
class Modifier:
    """Paid or free option for menu items, such as an extra topping or a size."""

    name: str
    price: float
    modifier_type: str = "extras"
    products: tuple[str, ...] = ()

    def applies_to(self, product: Product) -> bool:
        return not self.products or product.name.lower() in {name.lower() for name in self.products}


@dataclass(slots=True)
class DeliveryZone:
    name: str
    fee: float
    areas: tuple[str, ...]
    distance_km: float | None = None


@dataclass(slots=True)
class ProductMatch:
    """Outcome of resolving a free-text product mention against the catalog."""

    query: str
    product: Product | None
    candidates: list[Product] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return self.product is None and len(self.candidates) > 1


@dataclass(slots=True)
class RestaurantProfile:
    name: str
    products: list[Product]
    payment_methods: list[str]
    delivery_zones: list[DeliveryZone] = field(default_factory=list)
    modifiers: list[Modifier] = field(default_factory=list)
    menu_url: str | None = None
    address: str | None = None
    phone: str | None = None
    instagram: str | None = None
    opening_hours: dict[str, str] = field(default_factory=dict)
    prep_minutes: int = 30
    delivery_minutes: int = 40
    currency: str = "$"

    @property
    def categories(self) -> list[str]:
        return list(dict.fromkeys(product.category for product in self.products))

    def products_in(self, category: str) -> list[Product]:
        return [p for p in self.products if p.category.lower() == category.lower()]

    def format_price(self, amount: float) -> str:
        return f"{self.currency}{amount:.2f}"

    def find_product(self, query: str) -> ProductMatch:
        """Resolve a product mention by exact name, alias, then token containment."""

        normalized = _normalize(query)
        if not normalized:
            return ProductMatch(query=query, product=None)

        singular = " ".join(_singular_tokens(normalized))
        for product in self.products:
            names = {
                " ".join(_singular_tokens(name)) for name in (product.name, *product.aliases)
            }
            if normalized in names or singular in names:
                return ProductMatch(query=query, product=product, candidates=[product])

        tokens = set(_singular_tokens(normalized))
        candidates = [
            product
            for product in self.products
            if tokens
            and tokens <= set(
                _singular_tokens(" ".join([product.name, *product.aliases]))
            )
        ]
        if len(candidates) == 1:
            return ProductMatch(query=query, product=candidates[0], candidates=candidates)
        return ProductMatch(query=query, product=None, candidates=candidates)

    def modifiers_for(self, product: Product) -> list[Modifier]:
        return [modifier for modifier in self.modifiers if modifier.applies_to(product)]

    def find_modifier(self, product: Product, query: str) -> Modifier | None:
        """Match an option by exact name, else by a unique partial name ("bacon" -> "Extra Bacon")."""

        normalized = _normalize(query)
        if not normalized:
            return None
        options = self.modifiers_for(product)
        for modifier in options:
            if _normalize(modifier.name) == normalized:
                return modifier
        tokens = set(_singular_tokens(normalized))
        partial = [m for m in options if tokens <= set(_singular_tokens(m.name))]
        return partial[0] if len(partial) == 1 else None

    def match_payment_method(self, value: str) -> str | None:
        normalized = _normalize(value)
        for method in self.payment_methods:
            method_norm = _normalize(method)
            if normalized == method_norm or normalized in method_norm.split() or method_norm in normalized:
                return method
        return None

    def zone_for(self, address: str) -> DeliveryZone | None:
        text = _normalize(address)
        for zone in self.delivery_zones:
            if any(_normalize(area) in text for area in zone.areas):
                return zone
        return None


def load_restaurant_profile(path: Path) -> RestaurantProfile:
    """Load the restaurant profile JSON document."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    profile = restaurant_from_dict(payload)
    logger.info(
        "Loaded restaurant profile %s with %s products from %s", profile.name, len(profile.products), path
    )
    return profile


def restaurant_from_dict(payload: dict[str, Any]) -> RestaurantProfile:
    return RestaurantProfile(
        name=payload["name"],
        products=[
            Product(
                name=item["name"],
                price=float(item["price"]),
                category=item.get("category", "Menu"),
                description=item.get("description", ""),
                aliases=tuple(item.get("aliases", ())),
                available=bool(item.get("available", True)),
            )
            for item in payload.get("products", [])
        ],
        payment_methods=list(payload.get("payment_methods", [])),
        delivery_zones=[
            DeliveryZone(
                name=zone["name"],
                fee=float(zone["fee"]),
                areas=tuple(zone.get("areas", ())),
                distance_km=zone.get("distance_km"),
            )
            for zone in payload.get("delivery_zones", [])
        ],
        modifiers=[
            Modifier(
                name=item["name"],
                price=float(item.get("price", 0.0)),
                modifier_type=item.get("type", "extras"),
                products=tuple(item.get("products", ())),
            )
            for item in payload.get("modifiers", [])
        ],
        menu_url=payload.get("menu_url"),
        address=payload.get("address"),
        phone=payload.get("phone"),
        instagram=payload.get("instagram"),
        opening_hours=dict(payload.get("opening_hours", {})),
        prep_minutes=int(payload.get("prep_minutes", 30)),
        delivery_minutes=int(payload.get("delivery_minutes", 40)),
        currency=payload.get("currency", "$"),
    )


def _normalize(text: str) -> str:
    sanitized = re.sub(r"[^a-z0-9\s]", " ", text.lower())
    return re.sub(r"\s+", " ", sanitized).strip()


def _singular_tokens(text: str) -> Iterable[str]:
    for token in _normalize(text).split():
        if len(token) > 3 and token.endswith("es") and token[:-2].endswith(("ch", "sh", "x")):
            yield token[:-2]
        elif len(token) > 2 and token.endswith("s") and not token.endswith("ss"):
            yield token[:-1]
        else:
            yield token
