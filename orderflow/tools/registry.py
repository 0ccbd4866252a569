"""Static dispatch table of every tool, keyed by name."""

from __future__ import annotations

from functools import partial
from typing import Mapping

from orderflow.planner.types import Capability

from . import cart, checkout, logistics, menu
from .address import AddressValidator
from .base import NoArguments, ToolSpec


def build_tool_registry(
    address_validator: AddressValidator,
    *,
    max_upsell_attempts: int = 2,
) -> dict[str, ToolSpec]:
    specs = [
        # MENU
        ToolSpec(
            "send_menu_link",
            Capability.MENU,
            menu.send_menu_link,
            NoArguments,
            "Share the link to the full menu.",
        ),
        ToolSpec(
            "check_product_availability",
            Capability.MENU,
            menu.check_product_availability,
            menu.ProductAvailabilityArgs,
            "Look up whether a menu item exists, its price and whether it is available.",
        ),
        # SALES
        ToolSpec(
            "add_item_to_order",
            Capability.SALES,
            cart.add_item_to_order,
            cart.AddItemArgs,
            "Add a menu item to the cart, or set its quantity if it is already there.",
            mutates_cart=True,
        ),
        ToolSpec(
            "remove_item_from_order",
            Capability.SALES,
            cart.remove_item_from_order,
            cart.RemoveItemArgs,
            "Remove an item from the cart.",
            mutates_cart=True,
        ),
        ToolSpec(
            "update_item_quantity",
            Capability.SALES,
            cart.update_item_quantity,
            cart.UpdateQuantityArgs,
            "Change the quantity of an item already in the cart.",
            mutates_cart=True,
        ),
        ToolSpec(
            "get_cart_summary",
            Capability.SALES,
            cart.get_cart_summary,
            NoArguments,
            "Read back the current cart with totals.",
        ),
        ToolSpec(
            "get_product_modifiers",
            Capability.SALES,
            cart.get_product_modifiers,
            cart.ProductModifiersArgs,
            "List the extras, sizes and preferences available for a menu item, with prices.",
        ),
        ToolSpec(
            "clear_cart",
            Capability.SALES,
            cart.clear_cart,
            cart.ClearCartArgs,
            "Empty the cart when the customer wants to start over or cancel.",
            mutates_cart=True,
        ),
        ToolSpec(
            "suggest_upsell",
            Capability.SALES,
            partial(cart.suggest_upsell, max_attempts=max_upsell_attempts),
            NoArguments,
            "Suggest a side, drink or dessert that complements the cart.",
        ),
        # CHECKOUT
        ToolSpec(
            "validate_delivery_address",
            Capability.CHECKOUT,
            partial(checkout.validate_delivery_address, validator=address_validator),
            checkout.ValidateAddressArgs,
            "Validate the delivery address and get the delivery fee.",
        ),
        ToolSpec(
            "list_payment_methods",
            Capability.CHECKOUT,
            checkout.list_payment_methods,
            NoArguments,
            "List accepted payment methods.",
        ),
        ToolSpec(
            "check_order_prerequisites",
            Capability.CHECKOUT,
            checkout.check_order_prerequisites,
            NoArguments,
            "Check what is still missing before the order can be placed, with totals.",
        ),
        ToolSpec(
            "create_order",
            Capability.CHECKOUT,
            checkout.create_order,
            checkout.CreateOrderArgs,
            "Place the order. Only call after the customer explicitly confirmed.",
            mutates_cart=True,
        ),
        # SUPPORT
        ToolSpec(
            "get_restaurant_info",
            Capability.SUPPORT,
            menu.get_restaurant_info,
            menu.RestaurantInfoArgs,
            "Get the restaurant address, phone, opening hours or Instagram.",
        ),
        # LOGISTICS
        ToolSpec(
            "set_delivery_type",
            Capability.LOGISTICS,
            logistics.set_delivery_type,
            logistics.DeliveryTypeArgs,
            "Record whether the order is for delivery or pickup.",
        ),
        ToolSpec(
            "set_address",
            Capability.LOGISTICS,
            logistics.set_address,
            logistics.AddressArgs,
            "Record the delivery address (unvalidated).",
        ),
        ToolSpec(
            "set_payment_method",
            Capability.LOGISTICS,
            logistics.set_payment_method,
            logistics.PaymentMethodArgs,
            "Record the payment method.",
        ),
    ]
    return {spec.name: spec for spec in specs}


def tools_for(registry: Mapping[str, ToolSpec], capability: Capability) -> tuple[str, ...]:
    return tuple(name for name, spec in registry.items() if spec.capability is capability)
