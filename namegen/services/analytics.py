"""
Analytics Ingestion - Client behaviour events and page views.

Records are not persisted; each one becomes a structured log line (and a
counter increment) for the log pipeline to pick up.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError
from structlog import get_logger

from namegen.models.api import AnalyticsEvent, AnalyticsPayload, AnalyticsPayloadType, PageView
from namegen.observability.metrics import metrics

logger = get_logger(__name__)

DEFAULT_CLIENT_IP = "127.0.0.1"

EventHandler = Callable[[AnalyticsEvent, str], Awaitable[None]]


def client_ip_from_headers(headers: Mapping[str, str]) -> str:
    """First x-forwarded-for hop, then x-real-ip, then loopback."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return headers.get("x-real-ip") or DEFAULT_CLIENT_IP


async def _name_generated(event: AnalyticsEvent, client_ip: str) -> None:
    props = event.properties
    logger.info(
        "analytics_name_generated",
        session_id=event.session_id,
        plan_type=props.get("planType"),
        name_count=props.get("nameCount"),
        gender=props.get("gender"),
        is_authenticated=props.get("isAuthenticated"),
    )


async def _interaction(event: AnalyticsEvent, client_ip: str) -> None:
    logger.info(
        "analytics_interaction",
        element=event.properties.get("element"),
        action=event.properties.get("action"),
        page=event.page,
    )


async def _conversion(event: AnalyticsEvent, client_ip: str) -> None:
    logger.info(
        "analytics_conversion",
        conversion_type=event.properties.get("type"),
        value=event.properties.get("value"),
        user_id=event.user_id,
    )


async def _client_error(event: AnalyticsEvent, client_ip: str) -> None:
    logger.warning(
        "analytics_client_error",
        error=event.properties.get("error"),
        context=event.properties.get("context"),
        page=event.page,
    )


async def _identify(event: AnalyticsEvent, client_ip: str) -> None:
    logger.info(
        "analytics_identify",
        user_id=event.user_id,
        traits=event.properties.get("traits"),
    )


async def _generic(event: AnalyticsEvent, client_ip: str) -> None:
    logger.info(
        "analytics_event",
        event_name=event.event,
        session_id=event.session_id,
        page=event.page,
    )


EVENT_HANDLERS: dict[str, EventHandler] = {
    "name_generated": _name_generated,
    "interaction": _interaction,
    "conversion": _conversion,
    "error": _client_error,
    "identify": _identify,
}


class AnalyticsIngestor:
    """Dispatches an analytics batch record by record."""

    def __init__(self, handlers: dict[str, EventHandler] | None = None) -> None:
        self.handlers = handlers if handlers is not None else EVENT_HANDLERS

    async def ingest(self, payload: AnalyticsPayload, client_ip: str) -> int:
        """Process a batch; returns the number of records accepted."""
        logger.debug(
            "analytics_batch_received",
            kind=payload.type.value,
            count=len(payload.data),
            client_ip=client_ip,
        )
        if payload.type == AnalyticsPayloadType.EVENTS:
            return await self.process_events(payload.data, client_ip)
        return self.process_page_views(payload.data, client_ip)

    async def process_events(self, records: list[Any], client_ip: str) -> int:
        accepted = 0
        for record in records:
            if not isinstance(record, dict):
                logger.warning("analytics_record_not_object", kind="events")
                continue
            try:
                event = AnalyticsEvent.model_validate(record)
            except ValidationError as exc:
                logger.warning("analytics_record_invalid", kind="events", errors=exc.error_count())
                continue

            handler = self.handlers.get(event.event, _generic)
            await handler(event, client_ip)
            metrics.record_analytics(
                "events", event.event if event.event in self.handlers else "generic"
            )
            accepted += 1
        return accepted

    def process_page_views(self, records: list[Any], client_ip: str) -> int:
        accepted = 0
        for record in records:
            if not isinstance(record, dict):
                logger.warning("analytics_record_not_object", kind="page_views")
                continue
            try:
                view = PageView.model_validate(record)
            except ValidationError as exc:
                logger.warning(
                    "analytics_record_invalid", kind="page_views", errors=exc.error_count()
                )
                continue

            logger.info(
                "analytics_page_view",
                page=view.page,
                title=view.title,
                session_id=view.session_id,
                referrer=view.referrer,
                utm_source=view.utm_source,
                utm_medium=view.utm_medium,
                utm_campaign=view.utm_campaign,
            )
            metrics.record_analytics("page_views", "page_view")
            accepted += 1
        return accepted
