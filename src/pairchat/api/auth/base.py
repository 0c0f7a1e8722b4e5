"""
Authentication provider abstractions for the HTTP surface.

An 'AuthProvider' integrates with a FastAPI application to identify the
current user on every request. 'BearerTokenAuth' is the shipped
implementation: it exposes the account routes under '/auth' and resolves the
'Authorization: Bearer <token>' header through the identity provider.
"""

from abc import ABC, abstractmethod

from fastapi import FastAPI, Request


class AuthProvider(ABC):
    """
    Abstract base class for request authentication.

    Implementors must supply a FastAPI dependency that resolves to the current
    user ID ('get_current_user_id') and a setup hook that registers all required
    routes with the application ('bind_to_app').
    """

    @abstractmethod
    async def get_current_user_id(self, request: Request) -> str:
        """FastAPI dependency that returns the authenticated user's ID.

        Raise 'AuthenticationError' if the request carries no valid credentials;
        the application maps it to a 401 response.
        """
        pass

    @abstractmethod
    def bind_to_app(self, app: FastAPI) -> None:
        """Register the routes required by this provider."""
        pass
