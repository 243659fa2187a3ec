from quoteguard.api.server import QuoteServer, create_app

__all__ = ["QuoteServer", "create_app"]
