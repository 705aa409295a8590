from chatastro.middleware.correlation import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]
