"""
Frame integrations module for Meural Manager.

Provides the client for the Meural digital frame API.
"""

from frame_integrations.meural import (
    MeuralClient,
    MeuralError,
    MeuralAuthError,
    MeuralConfigError,
    MeuralNotFoundError,
    MeuralUploadError,
    MeuralRateLimitError,
)

__all__ = [
    "MeuralClient",
    "MeuralError",
    "MeuralAuthError",
    "MeuralConfigError",
    "MeuralNotFoundError",
    "MeuralUploadError",
    "MeuralRateLimitError",
]
