"""Type definitions for ledger queries, commands and contracts."""

import secrets
from dataclasses import dataclass, field
from typing import Optional, Union

from .util import now_ms


@dataclass(slots=True)
class Contract:
    """
    One ledger record as returned by a query.

    The payload is whatever the ledger returned; this layer does not
    interpret it.
    """
    contract_id: str
    payload: dict = field(default_factory=dict)
    template_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Contract":
        """Build from the ledger's JSON representation."""
        return cls(
            contract_id=str(data.get("contractId", "")),
            payload=data.get("payload") or {},
            template_id=data.get("templateId"),
        )

    def to_dict(self) -> dict:
        """Convert to the ledger's JSON representation."""
        d = {"contractId": self.contract_id, "payload": self.payload}
        if self.template_id is not None:
            d["templateId"] = self.template_id
        return d


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """Template ids plus a field filter. Template order is preserved."""
    template_ids: tuple[str, ...]
    query: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "QueryRequest":
        return cls(
            template_ids=tuple(data.get("templateIds") or ()),
            query=data.get("query") or {},
        )

    def to_dict(self) -> dict:
        return {"templateIds": list(self.template_ids), "query": self.query}


@dataclass(slots=True)
class CreateCommand:
    """Create a contract of ``template_id`` with ``payload``."""
    template_id: str
    payload: dict

    def to_dict(self) -> dict:
        return {"templateId": self.template_id, "payload": self.payload}


@dataclass(slots=True)
class ExerciseCommand:
    """Exercise ``choice`` on an existing contract."""
    template_id: str
    contract_id: str
    choice: str
    argument: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "templateId": self.template_id,
            "contractId": self.contract_id,
            "choice": self.choice,
            "argument": self.argument,
        }


SubCommand = Union[CreateCommand, ExerciseCommand]


def sub_command_from_dict(data: dict) -> SubCommand:
    """Parse a sub-command; anything with a choice is an exercise."""
    if "choice" in data:
        return ExerciseCommand(
            template_id=data.get("templateId", ""),
            contract_id=data.get("contractId", ""),
            choice=data["choice"],
            argument=data.get("argument") or {},
        )
    return CreateCommand(
        template_id=data.get("templateId", ""),
        payload=data.get("payload") or {},
    )


@dataclass(slots=True)
class CommandRequest:
    """
    A batch of sub-commands submitted atomically under one party.

    ``command_id`` should be unique per submission; see new_command_id().
    """
    party: str
    application_id: str
    command_id: str
    commands: list[SubCommand] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "CommandRequest":
        return cls(
            party=data.get("party", ""),
            application_id=data.get("applicationId", ""),
            command_id=data.get("commandId", ""),
            commands=[sub_command_from_dict(c) for c in data.get("list") or []],
        )

    def to_dict(self) -> dict:
        return {
            "party": self.party,
            "applicationId": self.application_id,
            "commandId": self.command_id,
            "list": [c.to_dict() for c in self.commands],
        }


def new_command_id(prefix: str = "cmd") -> str:
    """
    Generate a command id from the current time and a random component.

    Example: ``create-1737554400000-9f1c2a7e4b3d``
    """
    return f"{prefix}-{now_ms()}-{secrets.token_hex(6)}"
