"""Factory for creating channel transport instances."""

from ..config import StoreConfig
from .base import ChannelTransport
from .memory import MemoryChannel
from .telegram import TelegramTransport


def make_transport(config: StoreConfig) -> ChannelTransport:
    """
    Create a transport instance based on configuration.

    Args:
        config: Store configuration

    Returns:
        ChannelTransport for the configured provider

    Raises:
        ConfigError: If Telegram credentials are missing
        NotImplementedError: If provider is not supported
    """
    if config.provider == "telegram":
        config.require_credentials()
        return TelegramTransport(
            bot_token=config.bot_token,
            chat_id=config.chat_id,
            api_base=config.api_base,
            max_retries=config.max_transport_retries,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            request_timeout=config.request_timeout,
        )

    elif config.provider == "memory":
        return MemoryChannel()

    else:
        raise NotImplementedError(f"Provider {config.provider} not supported")
