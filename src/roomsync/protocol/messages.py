"""The five protocol message kinds and their wire codec.

Every frame starts with a varuint tag.  Tag values are part of the wire
contract shared with the relay and with every other client, so they must
never be renumbered:

====  ===============  ==============================================
Tag   Kind             Payload
====  ===============  ==============================================
0     Sync             varuint step, bytes payload
1     Awareness        bytes awareness update
2     Auth             varuint outcome, string reason
3     QueryAwareness   (empty)
4     Custom           string target, string payload
====  ===============  ==============================================
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar, Union

from roomsync.core.encoding import Decoder, Encoder
from roomsync.core.errors import MalformedMessage, UnknownMessageKind


class MessageKind(enum.IntEnum):
    SYNC = 0
    AWARENESS = 1
    AUTH = 2
    QUERY_AWARENESS = 3
    CUSTOM = 4


class SyncStep(enum.IntEnum):
    """Sub-step of a Sync frame.

    STEP1 carries the sender's state vector and asks for what it is
    missing; STEP2 carries the responder's state; UPDATE carries an
    incremental change.
    """

    STEP1 = 0
    STEP2 = 1
    UPDATE = 2


class AuthOutcome(enum.IntEnum):
    PERMISSION_DENIED = 0
    PERMISSION_GRANTED = 1


@dataclass(frozen=True)
class SyncMessage:
    step: SyncStep
    payload: bytes

    kind: ClassVar[MessageKind] = MessageKind.SYNC

    def encode(self) -> bytes:
        encoder = Encoder()
        encoder.write_var_uint(self.kind)
        encoder.write_var_uint(self.step)
        encoder.write_var_bytes(self.payload)
        return encoder.to_bytes()


@dataclass(frozen=True)
class AwarenessMessage:
    update: bytes

    kind: ClassVar[MessageKind] = MessageKind.AWARENESS

    def encode(self) -> bytes:
        encoder = Encoder()
        encoder.write_var_uint(self.kind)
        encoder.write_var_bytes(self.update)
        return encoder.to_bytes()


@dataclass(frozen=True)
class AuthMessage:
    outcome: AuthOutcome
    reason: str = ""

    kind: ClassVar[MessageKind] = MessageKind.AUTH

    @property
    def denied(self) -> bool:
        return self.outcome == AuthOutcome.PERMISSION_DENIED

    def encode(self) -> bytes:
        encoder = Encoder()
        encoder.write_var_uint(self.kind)
        encoder.write_var_uint(self.outcome)
        encoder.write_var_string(self.reason)
        return encoder.to_bytes()


@dataclass(frozen=True)
class QueryAwarenessMessage:
    kind: ClassVar[MessageKind] = MessageKind.QUERY_AWARENESS

    def encode(self) -> bytes:
        encoder = Encoder()
        encoder.write_var_uint(self.kind)
        return encoder.to_bytes()


@dataclass(frozen=True)
class CustomMessage:
    """Application-level point-to-point message relayed to *target*."""

    target: str
    payload: str

    kind: ClassVar[MessageKind] = MessageKind.CUSTOM

    def encode(self) -> bytes:
        encoder = Encoder()
        encoder.write_var_uint(self.kind)
        encoder.write_var_string(self.target)
        encoder.write_var_string(self.payload)
        return encoder.to_bytes()


Message = Union[
    SyncMessage,
    AwarenessMessage,
    AuthMessage,
    QueryAwarenessMessage,
    CustomMessage,
]


def encode_message(message: Message) -> bytes:
    """Serialize any message variant to a single frame."""
    return message.encode()


def read_message_kind(decoder: Decoder) -> MessageKind:
    """Read the leading tag.

    Raises:
        MalformedMessage: The buffer is empty or the tag is truncated.
        UnknownMessageKind: The tag is well-formed but not one of the five kinds.
    """
    tag = decoder.read_var_uint()
    try:
        return MessageKind(tag)
    except ValueError:
        raise UnknownMessageKind(tag) from None


def decode_message(data: bytes) -> Message:
    """Parse one complete frame.

    The whole buffer must be consumed; trailing bytes are treated as
    corruption.

    Raises:
        MalformedMessage: Empty, truncated, or otherwise invalid buffer.
        UnknownMessageKind: Unrecognized tag.
    """
    decoder = Decoder(data)
    kind = read_message_kind(decoder)
    message: Message

    if kind == MessageKind.SYNC:
        raw_step = decoder.read_var_uint()
        try:
            step = SyncStep(raw_step)
        except ValueError:
            raise MalformedMessage(f"Unknown sync step: {raw_step}") from None
        message = SyncMessage(step, decoder.read_var_bytes())

    elif kind == MessageKind.AWARENESS:
        message = AwarenessMessage(decoder.read_var_bytes())

    elif kind == MessageKind.AUTH:
        raw_outcome = decoder.read_var_uint()
        try:
            outcome = AuthOutcome(raw_outcome)
        except ValueError:
            raise MalformedMessage(f"Unknown auth outcome: {raw_outcome}") from None
        message = AuthMessage(outcome, decoder.read_var_string())

    elif kind == MessageKind.QUERY_AWARENESS:
        message = QueryAwarenessMessage()

    else:
        message = CustomMessage(decoder.read_var_string(), decoder.read_var_string())

    decoder.expect_end()
    return message
