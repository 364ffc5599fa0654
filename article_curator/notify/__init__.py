"""Outbound notification of curated items."""

from .discord import DiscordNotifier, format_publish_time

__all__ = ['DiscordNotifier', 'format_publish_time']
