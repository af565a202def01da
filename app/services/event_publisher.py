"""
Kafka event publisher — fire-and-forget.

Publishes inspection lifecycle events for downstream consumers
(report rendering, dashboards, data warehouse sync).
Gracefully degrades if Kafka is unavailable.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

import structlog
from app.core.config import get_settings
from app.schemas.certificate import CertificateResult
from app.schemas.inspection_response import CompletionResult

logger = structlog.get_logger()

_producer = None


async def _get_producer():
    global _producer
    settings = get_settings()
    if not settings.kafka_enabled:
        return None
    if _producer is None:
        from aiokafka import AIOKafkaProducer
        _producer = AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap)
        await _producer.start()
    return _producer


async def stop_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def _publish(event: dict, key: str) -> None:
    settings = get_settings()
    if not settings.kafka_enabled:
        return

    try:
        producer = await _get_producer()
        if producer:
            await producer.send_and_wait(
                settings.kafka_topic_inspection_events,
                json.dumps(event).encode("utf-8"),
                key=key.encode("utf-8"),
            )
            logger.info("kafka_event_published", event_type=event["event_type"], key=key)
    except Exception as e:
        # Fire-and-forget: log but don't fail the request
        logger.warning("kafka_publish_failed", event_type=event["event_type"], error=str(e))


async def publish_scored_event(result: CompletionResult) -> None:
    await _publish(
        {
            "event_type": "INSPECTION_SCORED",
            "inspection_id": result.inspection_id,
            "rating": result.score.rating,
            "certification": result.score.certification.value,
            "has_red_flags": result.score.has_red_flags,
            "total_repair_cost": result.score.total_repair_cost,
            "emitted_at": datetime.now(timezone.utc).isoformat(),
        },
        key=str(result.inspection_id),
    )


async def publish_certificate_event(certificate: CertificateResult) -> None:
    await _publish(
        {
            "event_type": "CERTIFICATE_ISSUED",
            "inspection_id": certificate.inspection_id,
            "certificate_number": certificate.certificate_number,
            "certification": certificate.certification,
            "rating": certificate.rating,
            "issued_at": certificate.issued_at.isoformat(),
            "expires_at": certificate.expires_at.isoformat(),
        },
        key=str(certificate.inspection_id),
    )
