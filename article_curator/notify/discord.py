"""
Discord webhook notifier.

Posts one summary embed and then the selected items grouped by source, each
source in batches of at most ``max_embeds_per_message`` embeds. Every POST
goes through the retry executor with the HTTP and rate-limit predicates.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import aiohttp
import structlog

from ..config import DiscordConfig
from ..errors import CuratorError, NotificationError
from ..logging import get_logger, log_error
from ..models import Item
from ..processing.filtering import group_by_source, rank_by_relevance
from ..retry import RetryExecutor, any_condition, http_retry_condition, rate_limit_condition
from ..utils import chunk_list, truncate_text

BOT_NAME = "AI Article Bot"
FOOTER_TEXT = "AI Article Collector"

EMPTY_COLOR = 0x808080
ERROR_COLOR = 0xFF0000
SOURCE_COLORS = {
    "qiita": 0x55C500,
    "zenn": 0x3EA8FF,
    "hackernews": 0xFF6600,
    "devto": 0x0A0A0A,
}
SOURCE_ICONS = {
    "qiita": "📝",
    "zenn": "📚",
    "hackernews": "🔥",
    "devto": "💻",
}
POPULARITY_LABELS = {
    "hackernews": ("⬆️", "Points"),
    "qiita": ("👍", "Likes+Stocks"),
    "devto": ("❤️", "Reactions"),
}

MAX_TITLE_LENGTH = 256
MAX_EXCERPT_LENGTH = 300
MAX_EMBED_CHARACTERS = 6000
MAX_TAGS = 5
MAX_ERROR_LENGTH = 1800
SOURCE_PAUSE_SECONDS = 1.0
BATCH_PAUSE_SECONDS = 0.5


def format_publish_time(published_at: datetime, now: datetime | None = None) -> str:
    """Relative age such as "3 days ago", "5 hours ago" or "12 minutes ago"."""
    now = now or datetime.now(timezone.utc)
    elapsed = (now - published_at).total_seconds()
    hours = int(elapsed // 3600)
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days != 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    minutes = max(1, int(elapsed // 60))
    return f"{minutes} minute{'s' if minutes != 1 else ''} ago"


class DiscordNotifier:
    """Sends curated items to a Discord channel through a webhook."""

    def __init__(
        self,
        webhook_url: str,
        max_embeds_per_message: int = 10,
        embed_color: int = 0x00FF7F,
        timeout_ms: float = 15000,
        retry_executor: RetryExecutor | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not 1 <= max_embeds_per_message <= 10:
            raise ValueError("Discord allows between 1 and 10 embeds per message")
        self.webhook_url = webhook_url
        self.max_embeds_per_message = max_embeds_per_message
        self.embed_color = embed_color
        self.timeout_ms = timeout_ms
        self.logger = logger or get_logger(__name__)
        self.retry_executor = retry_executor or RetryExecutor(logger=self.logger)
        self._sleep = sleep
        self._should_retry = any_condition(http_retry_condition(), rate_limit_condition())

    @classmethod
    def from_config(
        cls,
        config: DiscordConfig,
        timeout_ms: float | None = None,
        retry_executor: RetryExecutor | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> "DiscordNotifier":
        if not config.webhook_url:
            raise NotificationError("Discord webhook URL is not configured")
        return cls(
            webhook_url=config.webhook_url,
            max_embeds_per_message=config.max_articles_per_batch,
            embed_color=config.embed_color_value,
            timeout_ms=timeout_ms or 15000,
            retry_executor=retry_executor,
            logger=logger,
        )

    async def send(self, items: list[Item]) -> bool:
        """Deliver the selected items. Returns False if any message failed."""
        try:
            if not items:
                await self.send_message({"embeds": [self.create_empty_embed()]})
                self.logger.info("Sent empty-result notification")
                return True

            self.logger.info("Discord notification started", items=len(items))
            groups = group_by_source(items)
            await self.send_message({"embeds": [self.create_summary_embed(items, groups)]})

            for source, source_items in groups.items():
                await self._send_source(source, source_items)
                await self._sleep(SOURCE_PAUSE_SECONDS)

            self.logger.info("Discord notification completed", items=len(items))
            return True
        except (CuratorError, aiohttp.ClientError) as e:
            self.logger.error(**log_error(e, context="discord_notification", items=len(items)))
            return False

    async def _send_source(self, source: str, items: list[Item]) -> None:
        batches = chunk_list(rank_by_relevance(items), self.max_embeds_per_message)
        icon = SOURCE_ICONS.get(source, "📄")

        for index, batch in enumerate(batches):
            header = f"{icon} **{source} articles**"
            if len(batches) > 1:
                header += f" ({index + 1}/{len(batches)})"
            await self.send_message({
                "content": header,
                "embeds": [self.create_item_embed(item) for item in batch],
            })
            if index < len(batches) - 1:
                await self._sleep(BATCH_PAUSE_SECONDS)

        self.logger.debug("Source items sent", source=source, items=len(items), batches=len(batches))

    def create_summary_embed(self, items: list[Item], groups: dict[str, list[Item]]) -> dict[str, Any]:
        counts = "\n".join(
            f"{SOURCE_ICONS.get(source, '📄')} {source}: {len(group)}" for source, group in groups.items()
        )
        average = sum(item.relevance_score for item in items) / len(items)
        top = max(items, key=lambda item: item.relevance_score)
        now = datetime.now(timezone.utc)
        return {
            "title": "🤖 AI article digest",
            "description": f"Articles collected today: **{len(items)}**\n\n{counts}",
            "color": self.embed_color,
            "timestamp": now.isoformat(),
            "author": {"name": BOT_NAME},
            "fields": [
                {"name": "📊 Average relevance", "value": f"{average:.3f}", "inline": True},
                {"name": "🎯 Top article", "value": truncate_text(top.title, 50), "inline": True},
            ],
            "footer": {"text": f"{FOOTER_TEXT} • {now:%Y-%m-%d}"},
        }

    def create_empty_embed(self) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "title": "📭 AI article digest",
            "description": "No articles were collected today.",
            "color": EMPTY_COLOR,
            "timestamp": now.isoformat(),
            "author": {"name": BOT_NAME},
            "fields": [{
                "name": "💡 Hint",
                "value": "Adjust the search terms or run again later.",
                "inline": False,
            }],
            "footer": {"text": f"{FOOTER_TEXT} • {now:%Y-%m-%d}"},
        }

    def create_item_embed(self, item: Item) -> dict[str, Any]:
        """Build the embed for one item."""
        source = item.source.value
        published = format_publish_time(item.published_at)

        fields = [{"name": "📅 Published", "value": published, "inline": True}]
        if item.popularity:
            _, label = POPULARITY_LABELS.get(source, ("👍", "Score"))
            fields.append({"name": f"📊 {label}", "value": f"{item.popularity:g}", "inline": True})
        fields.append({
            "name": "🎯 Relevance",
            "value": f"{item.relevance_score * 100:.1f}%",
            "inline": True,
        })

        return {
            "title": truncate_text(item.title, MAX_TITLE_LENGTH),
            "description": self._format_description(item),
            "url": item.url,
            "color": SOURCE_COLORS.get(source, self.embed_color),
            "timestamp": item.published_at.isoformat(),
            "author": {"name": f"{item.author} • {source}"},
            "fields": fields,
            "footer": {"text": f"Relevance: {item.relevance_score:.3f} • {published}"},
        }

    def _format_description(self, item: Item) -> str:
        parts = []
        if item.excerpt:
            parts.append(truncate_text(item.excerpt, MAX_EXCERPT_LENGTH))
        if item.tags:
            tags = " ".join(f"`{tag}`" for tag in item.tags[:MAX_TAGS])
            parts.append(f"\n**Tags:** {tags}")
        if item.popularity:
            emoji, _ = POPULARITY_LABELS.get(item.source.value, ("👍", "Score"))
            parts.append(f"\n{emoji} **{item.popularity:g}**")
        return truncate_text("".join(parts), MAX_EMBED_CHARACTERS - 500)

    async def send_message(self, payload: dict[str, Any]) -> None:
        """POST one webhook message, retrying transient failures.

        Raises:
            RetryExhaustedError: If every attempt failed
        """
        async def post() -> None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.webhook_url, json=payload) as response:
                    if response.status != 204:
                        body = await response.text()
                        raise NotificationError(
                            f"Discord API returned status {response.status}",
                            status=response.status,
                            body=body[:200],
                        )

        await self.retry_executor.with_retry_condition(
            post, self._should_retry, operation_name="Discord webhook message"
        )

    async def send_test_message(self) -> bool:
        """Post a single test embed to verify the webhook."""
        now = datetime.now(timezone.utc)
        embed = {
            "title": "🧪 Test message",
            "description": "Connectivity check for the AI article bot.",
            "color": self.embed_color,
            "timestamp": now.isoformat(),
            "author": {"name": f"{BOT_NAME} - Test"},
            "fields": [{"name": "✅ Status", "value": "Operating normally", "inline": True}],
            "footer": {"text": f"Test Message • {now:%Y-%m-%d %H:%M:%S} UTC"},
        }
        try:
            await self.send_message({"embeds": [embed]})
        except (CuratorError, aiohttp.ClientError) as e:
            self.logger.error(**log_error(e, context="discord_test_message"))
            return False
        self.logger.info("Discord test message sent")
        return True

    def create_error_embed(self, error: BaseException) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        message = truncate_text(str(error) or type(error).__name__, MAX_ERROR_LENGTH)
        return {
            "title": "❌ AI article bot error",
            "description": f"The run failed with an error:\n```{message}```",
            "color": ERROR_COLOR,
            "timestamp": now.isoformat(),
            "author": {"name": f"{BOT_NAME} - Error"},
            "fields": [
                {"name": "🕒 Occurred", "value": f"{now:%Y-%m-%d %H:%M:%S} UTC", "inline": True},
                {"name": "💡 Next step", "value": "Check the logs to find the cause", "inline": True},
            ],
            "footer": {"text": f"Error Notification • {FOOTER_TEXT}"},
        }

    async def send_error_notification(self, error: BaseException) -> bool:
        """Report a failed run to the channel. Delivery problems are logged, never raised."""
        try:
            await self.send_message({"embeds": [self.create_error_embed(error)]})
        except (CuratorError, aiohttp.ClientError, TimeoutError) as e:
            self.logger.warning(**log_error(e, context="discord_error_notification"))
            return False
        self.logger.info("Discord error notification sent", error_type=type(error).__name__)
        return True
