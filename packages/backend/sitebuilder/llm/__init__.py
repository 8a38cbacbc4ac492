from .provider import GenerationProvider, Message, ProviderFactory
from .retry import backoff_delay, with_retry

__all__ = [
    "GenerationProvider",
    "Message",
    "ProviderFactory",
    "backoff_delay",
    "with_retry",
]
