"""Services package - Exchange gateways and infrastructure components."""

from .broker_base import ExchangeGateway, get_gateway, list_gateways, register_gateway

__all__ = [
    # Gateway abstraction
    "ExchangeGateway",
    "get_gateway",
    "list_gateways",
    "register_gateway",
]
