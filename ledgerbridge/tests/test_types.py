"""Tests for ledger data types."""

import re

from ledgerbridge.types import (
    CommandRequest,
    Contract,
    CreateCommand,
    ExerciseCommand,
    QueryRequest,
    new_command_id,
    sub_command_from_dict,
)


class TestContract:
    """Tests for Contract."""

    def test_from_dict(self):
        c = Contract.from_dict({
            "contractId": "#1:0",
            "templateId": "PredictionMarkets:Market",
            "payload": {"question": "Will it rain?"},
        })
        assert c.contract_id == "#1:0"
        assert c.template_id == "PredictionMarkets:Market"
        assert c.payload == {"question": "Will it rain?"}

    def test_missing_payload(self):
        c = Contract.from_dict({"contractId": "#2:0"})
        assert c.payload == {}
        assert c.to_dict() == {"contractId": "#2:0", "payload": {}}


class TestQueryRequest:
    """Tests for QueryRequest."""

    def test_to_dict_preserves_order(self):
        req = QueryRequest(("B", "A"), {"owner": "alice"})
        assert req.to_dict() == {"templateIds": ["B", "A"], "query": {"owner": "alice"}}

    def test_from_dict_defaults(self):
        req = QueryRequest.from_dict({})
        assert req.template_ids == ()
        assert req.query == {}


class TestCommands:
    """Tests for command types."""

    def test_create_wire_format(self):
        cmd = CommandRequest(
            party="alice",
            application_id="prediction-markets",
            command_id="create-1-abc",
            commands=[CreateCommand("PredictionMarkets:Market", {"question": "Q"})],
        )
        assert cmd.to_dict() == {
            "party": "alice",
            "applicationId": "prediction-markets",
            "commandId": "create-1-abc",
            "list": [{"templateId": "PredictionMarkets:Market", "payload": {"question": "Q"}}],
        }

    def test_exercise_wire_format(self):
        ex = ExerciseCommand("PredictionMarkets:Market", "#1:0", "BuyShares", {"amount": 10})
        assert ex.to_dict() == {
            "templateId": "PredictionMarkets:Market",
            "contractId": "#1:0",
            "choice": "BuyShares",
            "argument": {"amount": 10},
        }

    def test_from_dict_distinguishes_sub_commands(self):
        cmd = CommandRequest.from_dict({
            "party": "bob",
            "applicationId": "app",
            "commandId": "c1",
            "list": [
                {"templateId": "T", "payload": {"a": 1}},
                {"templateId": "T", "contractId": "#1", "choice": "Close", "argument": {}},
            ],
        })
        assert isinstance(cmd.commands[0], CreateCommand)
        assert isinstance(cmd.commands[1], ExerciseCommand)
        assert cmd.commands[1].choice == "Close"

    def test_sub_command_defaults(self):
        ex = sub_command_from_dict({"choice": "Resolve"})
        assert ex.argument == {}


class TestNewCommandId:
    """Tests for new_command_id."""

    def test_format(self):
        assert re.fullmatch(r"create-\d{13}-[0-9a-f]{12}", new_command_id("create"))

    def test_unique(self):
        ids = {new_command_id("exercise") for _ in range(1000)}
        assert len(ids) == 1000
