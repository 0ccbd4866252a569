"""Read-only catalog and restaurant information tools (MENU and SUPPORT)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .base import NoArguments, ToolContext, ToolResult


class ProductAvailabilityArgs(BaseModel):
    product_name: str = Field(min_length=1, description="Product the customer asked about.")


class RestaurantInfoArgs(BaseModel):
    info_type: Literal["address", "phone", "hours", "instagram", "all"] = Field(
        default="all", description="Which piece of restaurant information is needed."
    )


async def send_menu_link(args: NoArguments, ctx: ToolContext) -> ToolResult:
    restaurant = ctx.restaurant
    categories = restaurant.categories
    if restaurant.menu_url:
        message = f"Here's our full menu: {restaurant.menu_url}"
    else:
        message = f"We serve {', '.join(categories)}."
    return ToolResult(
        tool_name="send_menu_link",
        success=True,
        data={"menu_url": restaurant.menu_url, "categories": categories},
        message=message,
    )


async def check_product_availability(args: ProductAvailabilityArgs, ctx: ToolContext) -> ToolResult:
    match = ctx.restaurant.find_product(args.product_name)
    if match.product is None:
        if match.ambiguous:
            options = [
                {"name": p.name, "price": p.price, "available": p.available} for p in match.candidates
            ]
            listing = ", ".join(
                f"{p.name} ({ctx.restaurant.format_price(p.price)})" for p in match.candidates
            )
            return ToolResult(
                tool_name="check_product_availability",
                success=True,
                data={"available": True, "options": options},
                message=f"We have {listing}.",
            )
        return ToolResult.failure(
            "check_product_availability",
            "PRODUCT_NOT_FOUND",
            f"We don't have {args.product_name} on the menu.",
            available=False,
        )

    product = match.product
    price = ctx.restaurant.format_price(product.price)
    if product.available:
        message = f"{product.name} is available for {price}."
        if product.description:
            message = f"{message} {product.description}."
    else:
        message = f"{product.name} is sold out right now."
    return ToolResult(
        tool_name="check_product_availability",
        success=True,
        data={
            "available": product.available,
            "product_name": product.name,
            "price": product.price,
            "category": product.category,
            "description": product.description,
        },
        message=message,
    )


async def get_restaurant_info(args: RestaurantInfoArgs, ctx: ToolContext) -> ToolResult:
    restaurant = ctx.restaurant
    hours = "; ".join(f"{days}: {span}" for days, span in restaurant.opening_hours.items())
    info = {
        "address": restaurant.address,
        "phone": restaurant.phone,
        "hours": hours or None,
        "instagram": restaurant.instagram,
    }
    templates = {
        "address": "We're at {}",
        "phone": "You can call us on {}",
        "hours": "Opening hours: {}",
        "instagram": "Find us on Instagram: {}",
    }

    wanted = list(info) if args.info_type == "all" else [args.info_type]
    found = {key: info[key] for key in wanted if info[key]}
    if not found:
        return ToolResult.failure(
            "get_restaurant_info",
            "INFO_UNAVAILABLE",
            "I don't have that information at hand.",
            info_type=args.info_type,
        )

    parts = [templates[key].format(value) for key, value in found.items()]
    return ToolResult(
        tool_name="get_restaurant_info",
        success=True,
        data={"name": restaurant.name, **found},
        message=". ".join(parts) + ".",
    )
