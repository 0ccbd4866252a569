"""Cart tools owned by the SALES capability."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from orderflow.memory.models import CartItem, CartOperation, CartTotals
from orderflow.memory.store import find_cart_item

from .base import NoArguments, ToolContext, ToolResult

_logger = logging.getLogger("orderflow.tools")


class AddItemArgs(BaseModel):
    product_name: str = Field(min_length=1, description="Menu item name as listed on the menu.")
    quantity: int = Field(default=1, gt=0, description="How many units the customer wants in total.")
    unit_price: float | None = Field(
        default=None, ge=0, description="Unit price; taken from the menu when omitted."
    )
    notes: str | None = Field(default=None, description="Preparation notes such as 'no onions'.")
    modifiers: list[str] = Field(
        default_factory=list,
        description="Options from get_product_modifiers, e.g. ['Extra Cheese']; their prices are added to the unit price.",
    )


class RemoveItemArgs(BaseModel):
    product_name: str = Field(min_length=1, description="Item to remove from the cart.")


class UpdateQuantityArgs(BaseModel):
    product_name: str = Field(min_length=1, description="Item already in the cart.")
    new_quantity: int = Field(ge=0, description="New total quantity; 0 removes the item.")


class ProductModifiersArgs(BaseModel):
    product_name: str = Field(min_length=1, description="Menu item to list extras, sizes and preferences for.")


class ClearCartArgs(BaseModel):
    abandon: bool = Field(
        default=False, description="True when the customer gives up on ordering altogether."
    )


def _totals_data(ctx: ToolContext, totals: CartTotals) -> dict:
    return {
        "cart_total": totals.new_total,
        "items_count": totals.new_count,
        "formatted_total": ctx.restaurant.format_price(totals.new_total),
    }


def _cart_line(ctx: ToolContext, count: int, total: float) -> str:
    noun = "item" if count == 1 else "items"
    return f"Cart total: {ctx.restaurant.format_price(total)} ({count} {noun})."


async def add_item_to_order(args: AddItemArgs, ctx: ToolContext) -> ToolResult:
    match = ctx.restaurant.find_product(args.product_name)
    if match.product is None:
        if match.ambiguous:
            options = ", ".join(p.name for p in match.candidates)
            return ToolResult.failure(
                "add_item_to_order",
                "AMBIGUOUS_PRODUCT",
                f"Which one did you mean: {options}?",
                candidates=[p.name for p in match.candidates],
            )
        return ToolResult.failure(
            "add_item_to_order",
            "PRODUCT_NOT_FOUND",
            f"Sorry, {args.product_name} isn't on our menu.",
            product_name=args.product_name,
        )
    product = match.product
    if not product.available:
        return ToolResult.failure(
            "add_item_to_order",
            "PRODUCT_UNAVAILABLE",
            f"Sorry, {product.name} is sold out right now.",
            product_name=product.name,
        )

    chosen = []
    for name in args.modifiers:
        modifier = ctx.restaurant.find_modifier(product, name)
        if modifier is None:
            options = ", ".join(m.name for m in ctx.restaurant.modifiers_for(product)) or "none"
            return ToolResult.failure(
                "add_item_to_order",
                "MODIFIER_NOT_AVAILABLE",
                f"{name} isn't an option for {product.name}. Options: {options}.",
                product_name=product.name,
                modifier=name,
            )
        chosen.append(modifier)

    base_price = args.unit_price if args.unit_price is not None else product.price
    unit_price = base_price + sum(modifier.price for modifier in chosen)
    notes = "; ".join(filter(None, [", ".join(m.name for m in chosen), args.notes])) or None
    item = CartItem(
        product_name=product.name,
        quantity=args.quantity,
        unit_price=unit_price,
        notes=notes,
    )
    was_updated = find_cart_item(ctx.cart, product.name) is not None
    totals = ctx.store.atomic_update_cart(ctx.conversation_id, CartOperation.ADD, item)
    _logger.info(
        "Cart %s for %s: %s x%s (total=%.2f)",
        "updated" if was_updated else "add",
        ctx.conversation_id,
        product.name,
        args.quantity,
        totals.new_total,
    )

    verb = "Updated" if was_updated else "Added"
    label = f"{product.name} with {', '.join(m.name for m in chosen)}" if chosen else product.name
    return ToolResult(
        tool_name="add_item_to_order",
        success=True,
        data={
            "product_name": product.name,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "modifiers": [{"name": m.name, "price": m.price} for m in chosen],
            "line_total": item.line_total,
            "was_updated": was_updated,
            **_totals_data(ctx, totals),
        },
        message=f"{verb} {item.quantity}x {label}. {_cart_line(ctx, totals.new_count, totals.new_total)}",
    )


def _resolve_cart_item(ctx: ToolContext, product_name: str) -> CartItem | None:
    """Find the cart line for a mention, accepting the same aliases and plurals as adding."""

    match = ctx.restaurant.find_product(product_name)
    if match.product is not None:
        existing = find_cart_item(ctx.cart, match.product.name)
        if existing is not None:
            return existing
    return find_cart_item(ctx.cart, product_name)


async def remove_item_from_order(args: RemoveItemArgs, ctx: ToolContext) -> ToolResult:
    existing = _resolve_cart_item(ctx, args.product_name)
    name = existing.product_name if existing else args.product_name
    placeholder = CartItem(product_name=name, quantity=1, unit_price=0.0)
    totals = ctx.store.atomic_update_cart(ctx.conversation_id, CartOperation.REMOVE, placeholder)
    if not totals.changed:
        return ToolResult.failure(
            "remove_item_from_order",
            "ITEM_NOT_IN_CART",
            f"{args.product_name} isn't in your cart.",
            product_name=args.product_name,
        )
    return ToolResult(
        tool_name="remove_item_from_order",
        success=True,
        data={"product_name": name, **_totals_data(ctx, totals)},
        message=f"Removed {name}. {_cart_line(ctx, totals.new_count, totals.new_total)}",
    )


async def update_item_quantity(args: UpdateQuantityArgs, ctx: ToolContext) -> ToolResult:
    if args.new_quantity == 0:
        result = await remove_item_from_order(RemoveItemArgs(product_name=args.product_name), ctx)
        result.tool_name = "update_item_quantity"
        return result

    existing = _resolve_cart_item(ctx, args.product_name)
    name = existing.product_name if existing else args.product_name
    placeholder = CartItem(product_name=name, quantity=args.new_quantity, unit_price=0.0)
    totals = ctx.store.atomic_update_cart(ctx.conversation_id, CartOperation.UPDATE, placeholder)
    if not totals.changed:
        return ToolResult.failure(
            "update_item_quantity",
            "ITEM_NOT_IN_CART",
            f"{args.product_name} isn't in your cart yet.",
            product_name=args.product_name,
        )
    return ToolResult(
        tool_name="update_item_quantity",
        success=True,
        data={"product_name": name, "quantity": args.new_quantity, **_totals_data(ctx, totals)},
        message=f"{name} is now x{args.new_quantity}. {_cart_line(ctx, totals.new_count, totals.new_total)}",
    )


async def get_cart_summary(args: NoArguments, ctx: ToolContext) -> ToolResult:
    cart = ctx.store.get_conversation(ctx.conversation_id).cart
    if not cart:
        return ToolResult(
            tool_name="get_cart_summary",
            success=True,
            data={"items": [], "cart_total": 0.0, "items_count": 0},
            message="Your cart is empty.",
        )

    total = sum(item.line_total for item in cart)
    count = sum(item.quantity for item in cart)
    lines = ", ".join(f"{item.quantity}x {item.product_name}" for item in cart)
    return ToolResult(
        tool_name="get_cart_summary",
        success=True,
        data={
            "items": [item.to_dict() for item in cart],
            "cart_total": total,
            "items_count": count,
            "formatted_total": ctx.restaurant.format_price(total),
        },
        message=f"In your cart: {lines}. Total {ctx.restaurant.format_price(total)}.",
    )


async def get_product_modifiers(args: ProductModifiersArgs, ctx: ToolContext) -> ToolResult:
    match = ctx.restaurant.find_product(args.product_name)
    if match.product is None:
        return ToolResult.failure(
            "get_product_modifiers",
            "PRODUCT_NOT_FOUND",
            f"Sorry, {args.product_name} isn't on our menu.",
            product_name=args.product_name,
        )

    product = match.product
    options = ctx.restaurant.modifiers_for(product)
    grouped: dict[str, list[dict]] = {}
    for modifier in options:
        grouped.setdefault(modifier.modifier_type, []).append({"name": modifier.name, "price": modifier.price})

    if not options:
        message = f"{product.name} comes as it is, no extra options."
    else:
        listed = ", ".join(
            f"{m.name} (+{ctx.restaurant.format_price(m.price)})" if m.price else m.name for m in options
        )
        message = f"Options for {product.name}: {listed}."
    return ToolResult(
        tool_name="get_product_modifiers",
        success=True,
        data={"product_name": product.name, "modifiers": grouped, "total_count": len(options)},
        message=message,
    )


async def clear_cart(args: ClearCartArgs, ctx: ToolContext) -> ToolResult:
    totals = ctx.store.atomic_update_cart(ctx.conversation_id, CartOperation.CLEAR)
    patch = {"abandoned": True} if args.abandon else {}
    if patch:
        ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    return ToolResult(
        tool_name="clear_cart",
        success=True,
        data={"abandoned": args.abandon, **_totals_data(ctx, totals)},
        message="Your cart has been cleared.",
        metadata_patch=patch,
    )


UPSELL_CATEGORIES = ("Sides", "Drinks", "Desserts")


async def suggest_upsell(args: NoArguments, ctx: ToolContext, *, max_attempts: int = 2) -> ToolResult:
    attempts = int(ctx.metadata.get("upsell_attempts", 0))
    if attempts >= max_attempts:
        return ToolResult.failure(
            "suggest_upsell",
            "UPSELL_LIMIT_REACHED",
            "No more suggestions this time.",
            upsell_attempts=attempts,
        )

    in_cart = {item.key for item in ctx.cart}
    cart_categories = set()
    for item in ctx.cart:
        match = ctx.restaurant.find_product(item.product_name)
        if match.product:
            cart_categories.add(match.product.category.lower())

    suggestions = []
    for category in UPSELL_CATEGORIES:
        if category.lower() in cart_categories:
            continue
        for product in ctx.restaurant.products_in(category):
            if product.available and product.name.lower() not in in_cart:
                suggestions.append(product)
                break

    if not suggestions:
        return ToolResult.failure("suggest_upsell", "NO_SUGGESTIONS", "Nothing else to suggest.")

    patch = {"upsell_attempts": attempts + 1}
    ctx.store.atomic_update_state(ctx.conversation_id, None, patch)
    picks = suggestions[:2]
    names = " or ".join(f"{p.name} ({ctx.restaurant.format_price(p.price)})" for p in picks)
    return ToolResult(
        tool_name="suggest_upsell",
        success=True,
        data={
            "suggestions": [{"name": p.name, "price": p.price, "category": p.category} for p in picks],
            "upsell_attempts": attempts + 1,
        },
        message=f"Would you like to add {names}?",
        metadata_patch=patch,
    )
