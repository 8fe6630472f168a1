from datetime import date
from decimal import Decimal

import httpx
import openai
import pytest

from app.errors import (
    DecodeError,
    EmptyInputError,
    MalformedResponseError,
    NoFinancialDataError,
    TransportError,
)
from app.llm.prompts import TOOL_NAME
from tests.helpers.openai_stub import raw_tool_response, text_response, tool_response

HDFC_SAVINGS = {
    "institution_name": "HDFC",
    "institution_type": "bank",
    "asset_name": "Savings Account",
    "current_value": 5000,
}


class TestRequest:
    def test_sends_system_prompt_user_text_and_tool(self, parser, chat):
        chat.queue(tool_response(transactions=[
            {"transaction_date": "2024-05-01", "amount": 12.5, "category": "food", "description": "Lunch"},
        ]))

        parser.parse("Spent 12.50 on lunch")

        call = chat.calls[0]
        assert call["model"] == "test-model"
        assert call["messages"][0]["role"] == "system"
        assert date.today().isoformat() in call["messages"][0]["content"]
        assert call["messages"][1] == {"role": "user", "content": "Spent 12.50 on lunch"}
        assert call["tools"][0]["function"]["name"] == TOOL_NAME

    def test_tool_schema_enumerates_institution_types(self, parser, chat):
        chat.queue(tool_response(assets=[HDFC_SAVINGS]))

        parser.parse("HDFC savings has 5000")

        params = chat.calls[0]["tools"][0]["function"]["parameters"]
        asset_schema = params["properties"]["assets"]["items"]
        assert asset_schema["properties"]["institution_type"]["enum"] == [
            "bank", "broker", "mutual_fund", "other",
        ]
        assert set(asset_schema["required"]) == {
            "institution_name", "institution_type", "asset_name", "current_value",
        }

    def test_uses_configured_timeout_unless_caller_overrides(self, parser, chat):
        chat.queue(tool_response(assets=[HDFC_SAVINGS]), tool_response(assets=[HDFC_SAVINGS]))

        parser.parse("HDFC savings has 5000")
        parser.parse("HDFC savings has 5000", timeout=2.5)

        assert chat.calls[0]["timeout"] == 10.0
        assert chat.calls[1]["timeout"] == 2.5


class TestDecoding:
    def test_decodes_transactions(self, parser, chat):
        chat.queue(tool_response(transactions=[
            {"transaction_date": "2024-05-01", "amount": 12.5, "category": "food", "description": "Lunch"},
            {"transaction_date": "2024-05-02", "amount": -3, "currency": "EUR", "category": "refund", "description": "Coffee"},
        ]))

        data = parser.parse("two things")

        assert [t.category for t in data.transactions] == ["food", "refund"]
        assert data.transactions[0].amount == Decimal("12.5")
        assert data.transactions[0].currency == "USD"
        assert data.transactions[0].confirm is False
        assert data.transactions[1].currency == "EUR"
        assert data.assets == []

    def test_asset_currency_defaults_to_usd(self, parser, chat):
        chat.queue(tool_response(assets=[
            HDFC_SAVINGS,
            {**HDFC_SAVINGS, "asset_name": "Fixed Deposit", "currency": ""},
            {**HDFC_SAVINGS, "asset_name": "Recurring Deposit", "currency": None},
            {**HDFC_SAVINGS, "asset_name": "NRE Account", "currency": "INR"},
        ]))

        data = parser.parse("assets")

        assert [a.currency for a in data.assets] == ["USD", "USD", "USD", "INR"]

    def test_null_optional_fields_take_their_defaults(self, parser, chat):
        chat.queue(tool_response(
            transactions=[{
                "transaction_date": "2024-05-01", "amount": 5, "category": "food",
                "currency": None, "description": None, "confirm": None,
            }],
            assets=[{**HDFC_SAVINGS, "currency": None, "description": None, "confirm": None}],
        ))

        data = parser.parse("snack 5, HDFC savings 5000")

        txn = data.transactions[0]
        assert (txn.currency, txn.description, txn.confirm) == ("USD", "", False)
        asset = data.assets[0]
        assert (asset.currency, asset.description, asset.confirm) == ("USD", None, False)

    def test_null_lists_are_treated_as_empty(self, parser, chat):
        chat.queue(raw_tool_response('{"transactions": null, "assets": [%s]}' % (
            '{"institution_name": "Zerodha", "institution_type": "broker", '
            '"asset_name": "Stock Portfolio", "current_value": 100000}'
        )))

        data = parser.parse("Zerodha portfolio is 100000")

        assert data.transactions == []
        assert data.assets[0].institution_type == "broker"

    def test_invalid_json_arguments_raise_decode_error(self, parser, chat):
        chat.queue(raw_tool_response('{"transactions": [ {"amount": '))

        with pytest.raises(DecodeError):
            parser.parse("Spent 5")

    def test_unknown_institution_type_raises_decode_error(self, parser, chat):
        chat.queue(tool_response(assets=[{**HDFC_SAVINGS, "institution_type": "crypto_exchange"}]))

        with pytest.raises(DecodeError):
            parser.parse("Binance has 10")

    def test_missing_required_asset_field_raises_decode_error(self, parser, chat):
        asset = {k: v for k, v in HDFC_SAVINGS.items() if k != "current_value"}
        chat.queue(tool_response(assets=[asset]))

        with pytest.raises(DecodeError):
            parser.parse("HDFC savings")

    def test_tool_call_with_nothing_extracted_is_no_financial_data(self, parser, chat):
        chat.queue(tool_response(transactions=[], assets=[]))

        with pytest.raises(NoFinancialDataError):
            parser.parse("hello")


class TestFailures:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_input_never_calls_model(self, parser, chat, text):
        with pytest.raises(EmptyInputError):
            parser.parse(text)
        assert chat.calls == []

    def test_sdk_error_is_transport_error(self, parser, chat):
        request = httpx.Request("POST", "https://example.invalid/chat/completions")
        chat.queue(openai.APIConnectionError(request=request))

        with pytest.raises(TransportError):
            parser.parse("Spent 5 on coffee")

    def test_timeout_is_transport_error(self, parser, chat):
        request = httpx.Request("POST", "https://example.invalid/chat/completions")
        chat.queue(openai.APITimeoutError(request=request))

        with pytest.raises(TransportError):
            parser.parse("Spent 5 on coffee")

    @pytest.mark.parametrize("count", [0, 2])
    def test_choice_count_other_than_one_is_transport_error(self, parser, chat, count):
        response = tool_response(assets=[HDFC_SAVINGS])
        response.choices = response.choices * count
        chat.queue(response)

        with pytest.raises(TransportError):
            parser.parse("HDFC savings has 5000")

    def test_plain_reply_carries_model_text(self, parser, chat):
        chat.queue(text_response("I couldn't find any expense in that message."))

        with pytest.raises(NoFinancialDataError) as exc_info:
            parser.parse("Remind me to call mom")

        assert exc_info.value.reply == "I couldn't find any expense in that message."

    def test_truncated_reply_is_malformed(self, parser, chat):
        chat.queue(text_response("Sure, here is", finish_reason="length"))

        with pytest.raises(MalformedResponseError):
            parser.parse("Spent 5 on coffee")

    def test_unexpected_tool_name_is_not_decoded(self, parser, chat):
        chat.queue(tool_response(assets=[HDFC_SAVINGS], name="something_else"))

        with pytest.raises(MalformedResponseError):
            parser.parse("HDFC savings has 5000")
