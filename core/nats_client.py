"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between services

This module wraps nats-py with a small event bus: an `Event` envelope,
stream selection by subject prefix, and durable pull consumers that feed
async handlers.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING

import nats
from nats.errors import TimeoutError as NATSTimeoutError
from nats.js.errors import BadRequestError

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that keeps Decimal amounts exact"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types exchanged on the bus"""

    # Donation pipeline (consumed)
    DONATION_CONFIRMED = "donation.confirmed"

    # Governance Events
    PROPOSAL_CREATED = "governance.proposal.created"
    VOTE_CAST = "governance.vote.cast"
    PROPOSAL_EXECUTED = "governance.proposal.executed"

    # Campaign Events
    MILESTONE_APPROVED = "campaign.milestone.approved"


class ServiceSource(Enum):
    """Service sources for events"""

    GOVERNANCE_SERVICE = "governance_service"
    DONATION_SERVICE = "donation_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[EventType, str],
        source: Union[ServiceSource, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source.value if isinstance(source, Enum) else source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


class NATSEventBus:
    """
    NATS JetStream event bus on nats-py.

    Publishes `Event` envelopes to the stream owning the subject prefix and
    runs one pull-consumer task per subscription.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as the connection name)
            config: Optional ConfigManager instance for service discovery
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)
        self.url = config.get_service_config().nats_url

        self._nc = None
        self._js = None
        self._subscriptions: Dict[str, bool] = {}  # pattern -> active
        self._subscription_tasks: List[asyncio.Task] = []
        self._known_streams: Dict[str, List[str]] = {}
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.url], name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS at {self.url}: {e}")
            raise

    async def _ensure_stream(self, stream_name: str, subjects: List[str]):
        if self._known_streams.get(stream_name) == subjects:
            return
        try:
            await self._js.add_stream(name=stream_name, subjects=subjects, max_msgs=100000)
            logger.debug(f"Stream '{stream_name}' ready")
        except BadRequestError as e:
            # Stream already exists with a different configuration
            logger.debug(f"Stream creation note: {e}")
        self._known_streams[stream_name] = subjects

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to NATS JetStream.

        The stream is chosen from the first subject token:
        - governance.* -> governance-stream
        - campaign.* -> campaign-stream
        - donation.* -> donation-stream
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            subject = event.type
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()

            stream_name = self._get_stream_name_for_event(event.type)
            subject_prefix = event.type.split('.')[0]
            await self._ensure_stream(stream_name, [f"{subject_prefix}.>"])

            ack = await self._js.publish(subject, data, stream=stream_name)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    def _get_stream_name_for_event(self, event_type: str) -> str:
        """Map an event type (or subject prefix) to its JetStream stream name"""
        prefix = event_type.split('.')[0]

        stream_mappings = {
            "governance": "governance-stream",
            "campaign": "campaign-stream",
            "donation": "donation-stream",
        }

        return stream_mappings.get(prefix, f"{prefix}-stream")

    async def subscribe_to_events(
        self, pattern: str, handler: Callable, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a pattern using a JetStream pull consumer.

        Args:
            pattern: Subject pattern to subscribe to (e.g., "donation.confirmed")
            handler: Async callback function receiving an Event
            durable: Optional durable name for the consumer
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return None

        self._subscriptions[pattern] = True
        task = asyncio.create_task(
            self._jetstream_consumer_loop(pattern, handler, durable)
        )
        self._subscription_tasks.append(task)

        logger.info(f"Subscribed to {pattern} (JetStream consumer)")
        return durable or pattern

    def _wrap_message(self, msg, pattern: str) -> Event:
        data = json.loads(msg.data.decode()) if msg.data else {}

        # Full envelope published by another NATSEventBus
        if isinstance(data, dict) and 'type' in data and 'source' in data and 'data' in data:
            return Event.from_dict(data)

        # Raw payload from a producer that does not use the envelope
        event = Event.__new__(Event)
        event.id = str(uuid.uuid4())
        event.type = msg.subject or pattern
        event.source = 'external'
        event.subject = msg.subject
        event.timestamp = datetime.now(timezone.utc).isoformat()
        event.data = data
        event.metadata = {}
        event.version = '1.0.0'
        return event

    async def _jetstream_consumer_loop(self, pattern: str, handler: Callable, durable: Optional[str]):
        """Pull messages in batches, hand each Event to the handler, ack it"""
        prefix = pattern.split('.')[0]
        stream_name = self._get_stream_name_for_event(prefix)
        consumer_name = durable or f"{prefix}-consumer"
        subject = pattern.replace("*", ">") if pattern.endswith("*") else pattern

        logger.info(f"Starting JetStream consumer: stream={stream_name}, consumer={consumer_name}, pattern={pattern}")

        try:
            await self._ensure_stream(stream_name, [f"{prefix}.>"])
            psub = await self._js.pull_subscribe(subject, durable=consumer_name, stream=stream_name)

            while self._subscriptions.get(pattern, False):
                try:
                    messages = await psub.fetch(batch=10, timeout=1)
                except NATSTimeoutError:
                    continue
                except Exception as pull_e:
                    logger.warning(f"Pull error (will retry): {pull_e}")
                    await asyncio.sleep(5)
                    continue

                logger.debug(f"Pulled {len(messages)} messages from {stream_name}/{consumer_name}")
                for msg in messages:
                    try:
                        event = self._wrap_message(msg, pattern)
                        await handler(event)
                    except Exception as msg_e:
                        logger.error(f"Error processing message on {msg.subject}: {msg_e}")
                    finally:
                        await msg.ack()

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"JetStream consumer loop error for {pattern}: {e}")
        finally:
            self._subscriptions[pattern] = False
            logger.info(f"JetStream consumer stopped: {consumer_name}")

    async def unsubscribe(self, pattern: str) -> bool:
        """Stop the consumer loop for a pattern"""
        if self._subscriptions.get(pattern):
            self._subscriptions[pattern] = False
            logger.info(f"Unsubscribed from {pattern}")
            return True
        return False

    async def close(self):
        """Stop consumers and drain the connection"""
        for pattern in list(self._subscriptions.keys()):
            self._subscriptions[pattern] = False

        for task in self._subscription_tasks:
            if not task.done():
                task.cancel()
        if self._subscription_tasks:
            await asyncio.gather(*self._subscription_tasks, return_exceptions=True)
        self._subscription_tasks = []

        if self._nc is not None:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected


# Singleton instance
_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(
    service_name: str,
    config: Optional["ConfigManager"] = None,
) -> NATSEventBus:
    """
    Get or create event bus instance.

    Args:
        service_name: Name of the service using the event bus
        config: Optional ConfigManager instance for service discovery

    Returns:
        NATSEventBus instance
    """
    global _event_bus

    if _event_bus is None:
        _event_bus = NATSEventBus(
            service_name=service_name,
            config=config,
        )
        await _event_bus.connect()

    return _event_bus
