from chatastro.payment.router import router as payment_router

__all__ = ["payment_router"]
