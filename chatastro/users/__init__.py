from chatastro.users.router import router as users_router

__all__ = ["users_router"]
