from loguru import logger
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from app.errors import (
    DecodeError,
    EmptyInputError,
    MalformedResponseError,
    NoFinancialDataError,
    TransportError,
)
from app.llm.prompts import PARSE_FINANCIAL_DATA_TOOL, TOOL_NAME, build_system_prompt
from app.models.schemas import FinancialData


class FinancialParser:
    """Turns a free-text message into candidate transactions and assets.

    Wraps one long-lived OpenAI-compatible client. The model is asked to call
    the `parse_financial_data` tool; its arguments are validated against
    `FinancialData`. Every failure is raised as an `ExtractionError` subclass,
    never retried.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 10.0,
        client: OpenAI | None = None,
    ):
        self.client = client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )
        self.model = model
        self.timeout = timeout

    def parse(self, text: str, timeout: float | None = None) -> FinancialData:
        if not text or not text.strip():
            raise EmptyInputError("Nothing to parse: the message is empty")

        logger.debug("Parsing financial data: {}", text)

        messages = [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": text},
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=[PARSE_FINANCIAL_DATA_TOOL],
                temperature=0.1,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except OpenAIError as e:
            logger.error("LLM request failed: {}", e)
            raise TransportError(f"Extraction request failed: {e}") from e

        choices = response.choices or []
        if len(choices) != 1:
            logger.error("LLM returned {} choices, expected 1", len(choices))
            raise TransportError(
                f"Extraction returned {len(choices)} choices, expected exactly one"
            )

        choice = choices[0]
        reply = (choice.message.content or "").strip() or None

        for tool_call in choice.message.tool_calls or []:
            if tool_call.function.name == TOOL_NAME:
                return self._decode(tool_call.function.arguments, reply)

        if choice.finish_reason == "stop":
            logger.info("No financial data in message, model replied: {}", reply)
            raise NoFinancialDataError("No financial data found in message", reply=reply)

        raise MalformedResponseError(
            f"Response has no {TOOL_NAME} call (finish_reason={choice.finish_reason})"
        )

    def _decode(self, arguments: str, reply: str | None) -> FinancialData:
        logger.debug("LLM tool arguments: {}", arguments)
        try:
            data = FinancialData.model_validate_json(arguments or "")
        except ValidationError as e:
            logger.error("Failed to decode {} arguments: {}", TOOL_NAME, e)
            raise DecodeError(f"Could not decode extracted data: {e}") from e

        if data.is_empty():
            raise NoFinancialDataError("No financial data found in message", reply=reply)
        return data
