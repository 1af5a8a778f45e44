"""Helpers shared by the test modules."""

import asyncio

from coreader.domain.entities.connection import Connection


def drain(connection: Connection) -> list:
    """Pop every queued outbound message, skipping the stop marker."""
    messages = []
    while True:
        try:
            item = connection.outbound.get_nowait()
        except asyncio.QueueEmpty:
            return messages
        if item is not None:
            messages.append(item)


def of_type(messages: list, message_type: str) -> list:
    return [m for m in messages if m.type == message_type]
