"""Logistics tools: delivery type, address and payment method."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .base import ToolContext, ToolResult

DELIVERY_TYPE_ALIASES = {
    "delivery": "delivery",
    "deliver": "delivery",
    "delivered": "delivery",
    "pickup": "pickup",
    "pick up": "pickup",
    "pick-up": "pickup",
    "takeaway": "pickup",
    "take away": "pickup",
    "collect": "pickup",
    "collection": "pickup",
}


class DeliveryTypeArgs(BaseModel):
    delivery_type: str = Field(description="'delivery' or 'pickup'.")


class AddressArgs(BaseModel):
    address: str = Field(min_length=1, description="Delivery address as given by the customer.")


class PaymentMethodArgs(BaseModel):
    payment_method: str = Field(min_length=1, description="How the customer wants to pay.")


def normalize_delivery_type(value: str) -> str | None:
    return DELIVERY_TYPE_ALIASES.get(" ".join(value.lower().split()))


async def set_delivery_type(args: DeliveryTypeArgs, ctx: ToolContext) -> ToolResult:
    delivery_type = normalize_delivery_type(args.delivery_type)
    if delivery_type is None:
        return ToolResult.failure(
            "set_delivery_type",
            "INVALID_DELIVERY_TYPE",
            "Would you like delivery or pickup?",
            received=args.delivery_type,
        )

    patch = {"delivery_type": delivery_type}
    if delivery_type == "pickup":
        patch["delivery_fee"] = None
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    if delivery_type == "delivery":
        message = "Delivery it is."
    elif ctx.restaurant.address:
        message = f"Pickup it is, at {ctx.restaurant.address}."
    else:
        message = "Pickup it is."
    return ToolResult(
        tool_name="set_delivery_type",
        success=True,
        data={"delivery_type": delivery_type},
        message=message,
        metadata_patch=patch,
    )


async def set_address(args: AddressArgs, ctx: ToolContext) -> ToolResult:
    address = " ".join(args.address.split())
    patch = {
        "delivery_address": address,
        "address_validated": False,
        "validated_address": None,
    }
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    return ToolResult(
        tool_name="set_address",
        success=True,
        data={"delivery_address": address, "address_validated": False},
        message=f"Noted, delivering to {address}.",
        metadata_patch=patch,
    )


async def set_payment_method(args: PaymentMethodArgs, ctx: ToolContext) -> ToolResult:
    method = ctx.restaurant.match_payment_method(args.payment_method)
    if ctx.restaurant.payment_methods and method is None:
        accepted = ", ".join(ctx.restaurant.payment_methods)
        return ToolResult.failure(
            "set_payment_method",
            "UNSUPPORTED_PAYMENT_METHOD",
            f"We accept {accepted}.",
            received=args.payment_method,
            methods=ctx.restaurant.payment_methods,
        )

    method = method or args.payment_method
    patch = {"payment_method": method}
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    return ToolResult(
        tool_name="set_payment_method",
        success=True,
        data={"payment_method": method},
        message=f"Payment by {method.lower()}, got it.",
        metadata_patch=patch,
    )
