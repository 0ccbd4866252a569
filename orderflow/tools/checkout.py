"""Checkout tools: address validation, payment listing, prerequisites and order creation."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, Field

from orderflow.memory.models import CartItem, CartOperation, utcnow

from .address import AddressValidator
from .base import NoArguments, ToolContext, ToolResult

_logger = logging.getLogger("orderflow.tools")


class ValidateAddressArgs(BaseModel):
    address: str = Field(min_length=1, description="Street address including number.")
    city: str | None = Field(default=None, description="City or neighbourhood.")
    zip_code: str | None = Field(default=None, description="Postal code if the customer gave one.")


class CreateOrderArgs(BaseModel):
    confirmed_by_customer: bool = Field(
        description="True only when the customer explicitly confirmed the order summary."
    )
    customer_name: str | None = Field(default=None, description="Name for the order.")


def has_address(metadata: Mapping[str, Any]) -> bool:
    return bool(metadata.get("validated_address") or metadata.get("delivery_address"))


def missing_requirements(metadata: Mapping[str, Any], cart: Sequence[CartItem]) -> list[str]:
    """List what still blocks order creation, in the order it should be asked for."""

    missing: list[str] = []
    if not cart:
        missing.append("items")
    delivery_type = metadata.get("delivery_type")
    if not delivery_type:
        missing.append("delivery_type")
    elif delivery_type == "delivery" and not metadata.get("address_validated"):
        missing.append("delivery_address")
    if not metadata.get("payment_method"):
        missing.append("payment_method")
    return missing


async def validate_delivery_address(
    args: ValidateAddressArgs, ctx: ToolContext, *, validator: AddressValidator
) -> ToolResult:
    check = await validator.validate(args.address, args.city, args.zip_code)
    if not check.valid:
        return ToolResult(
            tool_name="validate_delivery_address",
            success=False,
            data={"valid": False, "formatted_address": check.formatted_address},
            message=check.reason or "I couldn't validate that address.",
            error_code="INVALID_ADDRESS",
        )

    patch = {
        "delivery_address": check.formatted_address,
        "validated_address": check.formatted_address,
        "address_validated": True,
        "delivery_fee": check.delivery_fee,
        "delivery_zone": check.zone,
    }
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    fee = ctx.restaurant.format_price(check.delivery_fee or 0.0)
    return ToolResult(
        tool_name="validate_delivery_address",
        success=True,
        data={
            "valid": True,
            "formatted_address": check.formatted_address,
            "delivery_fee": check.delivery_fee,
            "distance_km": check.distance_km,
            "zone": check.zone,
        },
        message=f"We deliver to {check.formatted_address}. Delivery fee: {fee}.",
        metadata_patch=patch,
    )


async def list_payment_methods(args: NoArguments, ctx: ToolContext) -> ToolResult:
    methods = ctx.restaurant.payment_methods
    return ToolResult(
        tool_name="list_payment_methods",
        success=True,
        data={"methods": methods},
        message=f"We accept {', '.join(methods)}." if methods else "Payment is settled on arrival.",
    )


async def check_order_prerequisites(args: NoArguments, ctx: ToolContext) -> ToolResult:
    missing = missing_requirements(ctx.metadata, ctx.cart)
    subtotal = sum(item.line_total for item in ctx.cart)
    fee = float(ctx.metadata.get("delivery_fee") or 0.0) if ctx.metadata.get("delivery_type") == "delivery" else 0.0
    data = {
        "ready": not missing,
        "missing": missing,
        "subtotal": subtotal,
        "delivery_fee": fee,
        "total": subtotal + fee,
        "delivery_type": ctx.metadata.get("delivery_type"),
        "payment_method": ctx.metadata.get("payment_method"),
    }
    if missing:
        readable = ", ".join(part.replace("_", " ") for part in missing)
        return ToolResult(
            tool_name="check_order_prerequisites",
            success=True,
            data=data,
            message=f"Before I can place the order I still need: {readable}.",
        )
    return ToolResult(
        tool_name="check_order_prerequisites",
        success=True,
        data=data,
        message=f"Everything is ready. Order total: {ctx.restaurant.format_price(subtotal + fee)}.",
    )


async def create_order(args: CreateOrderArgs, ctx: ToolContext) -> ToolResult:
    if not args.confirmed_by_customer:
        return ToolResult.failure(
            "create_order",
            "NOT_CONFIRMED",
            "Please confirm the order before I place it.",
        )

    cart = ctx.store.get_conversation(ctx.conversation_id).cart
    missing = missing_requirements(ctx.metadata, cart)
    if missing:
        return ToolResult.failure(
            "create_order",
            "PREREQUISITES_MISSING",
            "Some details are still missing: " + ", ".join(m.replace("_", " ") for m in missing) + ".",
            missing=missing,
        )

    restaurant = ctx.restaurant
    delivery_type = ctx.metadata["delivery_type"]
    subtotal = sum(item.line_total for item in cart)
    fee = float(ctx.metadata.get("delivery_fee") or 0.0) if delivery_type == "delivery" else 0.0
    eta = restaurant.prep_minutes + (restaurant.delivery_minutes if delivery_type == "delivery" else 0)
    order = {
        "order_id": uuid.uuid4().hex[:8].upper(),
        "items": [item.to_dict() for item in cart],
        "subtotal": subtotal,
        "delivery_fee": fee,
        "total": subtotal + fee,
        "delivery_type": delivery_type,
        "delivery_address": ctx.metadata.get("validated_address"),
        "payment_method": ctx.metadata.get("payment_method"),
        "customer_name": args.customer_name or ctx.metadata.get("customer_name"),
        "estimated_minutes": eta,
        "created_at": utcnow().isoformat(),
    }

    patch: dict[str, Any] = {"order": order}
    if args.customer_name:
        patch["customer_name"] = args.customer_name
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    ctx.store.atomic_update_cart(ctx.conversation_id, CartOperation.CLEAR)
    _logger.info("Order %s created for %s (total=%.2f)", order["order_id"], ctx.conversation_id, order["total"])

    return ToolResult(
        tool_name="create_order",
        success=True,
        data=order,
        message=(
            f"Order {order['order_id']} is confirmed! Total {restaurant.format_price(order['total'])}, "
            f"ready in about {eta} minutes."
        ),
        metadata_patch=patch,
    )
