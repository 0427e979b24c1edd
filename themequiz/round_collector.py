"""
Time-bounded message collection for a quiz round.

A round listens to its text channel through two subscriptions sharing one
deadline: one for correct answers and one for in-round commands. Each
subscription is an async iterator that ends with an ``EndReason``.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from .answer_matcher import is_answer
from .models import ChatMessage

logger = logging.getLogger(__name__)

_END = object()


class EndReason(Enum):
    """Why a subscription stopped delivering messages."""
    TIMEOUT = "timeout"
    FORCED = "forced"
    DISPOSED = "disposed"


class GameCommand(Enum):
    """Commands players can type while a round is running."""
    STOP = "stop"
    HINT = "hint"


def parse_command(content: str, prefix: str) -> Optional[GameCommand]:
    """Return the command a message is exactly made of, if any."""
    text = content.strip()
    for command in GameCommand:
        if text == f"{prefix}{command.value}":
            return command
    return None


class MessageSubscription:
    """
    Messages of one channel accepted by a predicate until a deadline.

    The first call to ``stop`` decides the end reason; later calls, including
    the deadline firing after a forced stop, do nothing.
    """

    def __init__(
        self,
        channel_id: int,
        predicate: Callable[[ChatMessage], bool],
        timeout: float,
        on_dispose: Optional[Callable[["MessageSubscription"], None]] = None
    ):
        self.channel_id = channel_id
        self.predicate = predicate
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + timeout
        self._queue: asyncio.Queue = asyncio.Queue()
        self._end_reason: Optional[EndReason] = None
        self._on_dispose = on_dispose

    @property
    def end_reason(self) -> Optional[EndReason]:
        return self._end_reason

    @property
    def ended(self) -> bool:
        return self._end_reason is not None

    @property
    def remaining(self) -> float:
        return max(0.0, self._deadline - self._loop.time())

    def offer(self, message: ChatMessage) -> bool:
        """Queue a message if the subscription is open and the predicate accepts it."""
        if self.ended or message.channel_id != self.channel_id:
            return False

        try:
            accepted = self.predicate(message)
        except Exception as e:
            logger.error(f"Subscription predicate failed for channel {self.channel_id}: {e}", exc_info=True)
            return False

        if accepted:
            self._queue.put_nowait(message)
        return accepted

    def stop(self, reason: EndReason = EndReason.FORCED) -> bool:
        """
        End the subscription.

        Returns:
            True if this call ended it, False if it had already ended
        """
        if self._end_reason is not None:
            return False

        self._end_reason = reason

        # Pending messages are dropped; the iterator ends right away.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

        if self._on_dispose is not None:
            self._on_dispose(self)

        logger.debug(
            f"Subscription for channel {self.channel_id} ended: {reason.value}",
            extra={
                'event_type': 'subscription_ended',
                'channel_id': self.channel_id,
                'reason': reason.value,
                'timestamp': time.time()
            }
        )
        return True

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChatMessage:
        if self.ended:
            raise StopAsyncIteration

        remaining = self._deadline - self._loop.time()
        if remaining <= 0:
            self.stop(EndReason.TIMEOUT)
            raise StopAsyncIteration

        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            self.stop(EndReason.TIMEOUT)
            raise StopAsyncIteration

        if item is _END or self.ended:
            raise StopAsyncIteration
        return item


class MessageHub:
    """Fans incoming chat messages out to the open subscriptions of their channel."""

    def __init__(self):
        self._subscriptions: Dict[int, List[MessageSubscription]] = {}

    def subscribe(
        self,
        channel_id: int,
        predicate: Callable[[ChatMessage], bool],
        timeout: float
    ) -> MessageSubscription:
        subscription = MessageSubscription(channel_id, predicate, timeout, on_dispose=self._remove)
        self._subscriptions.setdefault(channel_id, []).append(subscription)
        return subscription

    def dispatch(self, message: ChatMessage) -> int:
        """
        Deliver a message to every subscription of its channel.

        Returns:
            Number of subscriptions that accepted the message
        """
        accepted = 0
        for subscription in list(self._subscriptions.get(message.channel_id, [])):
            if subscription.offer(message):
                accepted += 1
        return accepted

    def active_count(self, channel_id: Optional[int] = None) -> int:
        if channel_id is not None:
            return len(self._subscriptions.get(channel_id, []))
        return sum(len(subscriptions) for subscriptions in self._subscriptions.values())

    def _remove(self, subscription: MessageSubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.channel_id)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.channel_id]


@dataclass
class RoundCollectorResult:
    end_reason: EndReason
    answers_collected: int
    commands_collected: int

    @property
    def forced(self) -> bool:
        return self.end_reason is EndReason.FORCED


class RoundCollector:
    """Runs the answer and command subscriptions of one round side by side."""

    def __init__(
        self,
        transport,
        channel_id: int,
        accepted_answers: Iterable[str],
        prefix: str,
        duration: float
    ):
        """
        Initialize the collector.

        Args:
            transport: Chat transport providing ``subscribe`` and ``force_end``
            channel_id: Text channel the round is played in
            accepted_answers: Answers counted as correct this round
            prefix: Guild command prefix
            duration: Length of the collection window in seconds
        """
        self.transport = transport
        self.channel_id = channel_id
        self.accepted_answers = list(accepted_answers)
        self.prefix = prefix
        self.duration = duration
        self._answers: Optional[MessageSubscription] = None
        self._commands: Optional[MessageSubscription] = None
        self._answer_count = 0
        self._command_count = 0

    @property
    def is_open(self) -> bool:
        return self._answers is not None and not self._answers.ended

    def _is_answer(self, message: ChatMessage) -> bool:
        return not message.author_is_bot and is_answer(message.content, self.accepted_answers)

    def _is_command(self, message: ChatMessage) -> bool:
        return not message.author_is_bot and parse_command(message.content, self.prefix) is not None

    async def run(
        self,
        on_answer: Callable[[ChatMessage], Awaitable[None]],
        on_command: Callable[[GameCommand, ChatMessage], Awaitable[None]]
    ) -> RoundCollectorResult:
        """
        Collect until the deadline passes or the round is force stopped.

        Handlers run one message at a time per subscription. Both
        subscriptions are disposed when this returns or raises.
        """
        if self._answers is not None:
            raise RuntimeError("RoundCollector can only run once")

        self._answers = self.transport.subscribe(self.channel_id, self._is_answer, self.duration)
        self._commands = self.transport.subscribe(self.channel_id, self._is_command, self.duration)

        try:
            await asyncio.gather(
                self._collect_answers(on_answer),
                self._collect_commands(on_command)
            )
        finally:
            self.dispose()

        return RoundCollectorResult(
            end_reason=self._answers.end_reason,
            answers_collected=self._answer_count,
            commands_collected=self._command_count
        )

    async def _collect_answers(self, on_answer) -> None:
        try:
            async for message in self._answers:
                self._answer_count += 1
                await on_answer(message)
        finally:
            self._commands.stop(EndReason.DISPOSED)

    async def _collect_commands(self, on_command) -> None:
        async for message in self._commands:
            command = parse_command(message.content, self.prefix)
            if command is None:
                continue
            self._command_count += 1
            await on_command(command, message)

    def force_stop(self) -> bool:
        """End the answer subscription with ``EndReason.FORCED``."""
        if self._answers is None:
            return False
        return self.transport.force_end(self._answers)

    def dispose(self) -> None:
        for subscription in (self._answers, self._commands):
            if subscription is not None:
                subscription.stop(EndReason.DISPOSED)
