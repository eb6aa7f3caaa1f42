from payment_engine.gateway.auth import AuthorizationDataSource, StaticAuthorizationDataSource
from payment_engine.gateway.base import GatewayClient
from payment_engine.gateway.mock_gateway import MockGateway

__all__ = [
    "AuthorizationDataSource",
    "StaticAuthorizationDataSource",
    "GatewayClient",
    "MockGateway",
]
