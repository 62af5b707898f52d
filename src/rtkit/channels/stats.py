"""Channel statistics snapshot."""

from __future__ import annotations

from datetime import datetime

import msgspec

__all__ = ['ChannelStats']


class ChannelStats(msgspec.Struct, frozen=True, gc=False):
    """Statistics snapshot for an unbounded MPSC channel."""

    sender_count: int
    weak_sender_count: int
    queue_size: int
    senders_closed: bool
    receiver_closed: bool
    created_at: datetime
    high_watermark: int
    total_sent: int
    total_received: int
