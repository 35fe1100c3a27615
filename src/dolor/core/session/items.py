"""Conversation item variants and their JSON wire form.

Stored history is a list of these four variants.  The wire form follows the
agent runtime's input-item shape (``type`` tag plus variant fields); any key a
variant does not declare is carried untouched in ``extra``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union

MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass
class Message:
    role: str
    content: Any
    extra: Dict[str, Any] = field(default_factory=dict)

    TYPE: ClassVar[str] = "message"

    def payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "extra": self.extra}

    def map_payload(self, fn: Callable[[Any], Any]) -> "Message":
        return dataclasses.replace(self, content=fn(self.content), extra=fn(self.extra))

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "type": self.TYPE, "role": self.role, "content": self.content}

    @property
    def is_interrupted(self) -> bool:
        return bool(self.extra.get("interrupted"))


@dataclass
class ToolCall:
    """A tool invocation.

    ``call_id`` is the pairing key when the runtime supplies one; otherwise
    ``id`` pairs with ``ToolOutput.call_id``.
    """

    id: Optional[str]
    name: str
    arguments: Any = ""
    call_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    TYPE: ClassVar[str] = "function_call"

    @property
    def pairing_id(self) -> Optional[str]:
        return self.call_id or self.id

    def payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "call_id": self.call_id,
            "name": self.name,
            "arguments": self.arguments,
            "extra": self.extra,
        }

    def map_payload(self, fn: Callable[[Any], Any]) -> "ToolCall":
        return dataclasses.replace(self, arguments=fn(self.arguments), extra=fn(self.extra))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {**self.extra, "type": self.TYPE}
        if self.id is not None:
            data["id"] = self.id
        if self.call_id is not None:
            data["call_id"] = self.call_id
        data["name"] = self.name
        data["arguments"] = self.arguments
        return data


@dataclass
class ToolOutput:
    call_id: str
    output: Any
    extra: Dict[str, Any] = field(default_factory=dict)

    TYPE: ClassVar[str] = "function_call_output"

    def payload(self) -> Dict[str, Any]:
        return {"call_id": self.call_id, "output": self.output, "extra": self.extra}

    def map_payload(self, fn: Callable[[Any], Any]) -> "ToolOutput":
        return dataclasses.replace(self, output=fn(self.output), extra=fn(self.extra))

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "type": self.TYPE, "call_id": self.call_id, "output": self.output}


@dataclass
class Reasoning:
    content: Any
    extra: Dict[str, Any] = field(default_factory=dict)

    TYPE: ClassVar[str] = "reasoning"

    def payload(self) -> Dict[str, Any]:
        return {"content": self.content, "extra": self.extra}

    def map_payload(self, fn: Callable[[Any], Any]) -> "Reasoning":
        return dataclasses.replace(self, content=fn(self.content), extra=fn(self.extra))

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "type": self.TYPE, "content": self.content}


ConversationItem = Union[Message, ToolCall, ToolOutput, Reasoning]


def _split_extra(data: Dict[str, Any], declared: tuple) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in declared and k != "type"}


def item_from_dict(data: Dict[str, Any]) -> ConversationItem:
    """Parse one wire item.  Raises ``ValueError`` for anything that is not a known variant."""
    if not isinstance(data, dict):
        raise ValueError(f"Conversation item must be an object, got {type(data).__name__}")

    item_type = data.get("type")
    if item_type is None and "role" in data:
        item_type = Message.TYPE

    if item_type == Message.TYPE:
        role = data.get("role")
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        return Message(
            role=role,
            content=data.get("content", ""),
            extra=_split_extra(data, ("role", "content")),
        )
    if item_type == ToolCall.TYPE:
        if not data.get("id") and not data.get("call_id"):
            raise ValueError("function_call item has neither id nor call_id")
        return ToolCall(
            id=data.get("id"),
            call_id=data.get("call_id"),
            name=str(data.get("name") or ""),
            arguments=data.get("arguments", ""),
            extra=_split_extra(data, ("id", "call_id", "name", "arguments")),
        )
    if item_type == ToolOutput.TYPE:
        call_id = data.get("call_id")
        if not call_id:
            raise ValueError("function_call_output item has no call_id")
        return ToolOutput(
            call_id=call_id,
            output=data.get("output", ""),
            extra=_split_extra(data, ("call_id", "output")),
        )
    if item_type == Reasoning.TYPE:
        return Reasoning(
            content=data.get("content", ""),
            extra=_split_extra(data, ("content",)),
        )
    raise ValueError(f"Unknown conversation item type: {item_type!r}")


def items_to_wire(items: List[ConversationItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


# Convenience constructors mirroring the runtime's input helpers.

def user_message(text: str) -> Message:
    return Message(role="user", content=text)


def system_message(text: str) -> Message:
    return Message(role="system", content=text)


def assistant_message(text: str, **extra: Any) -> Message:
    return Message(role="assistant", content=text, extra=dict(extra))
