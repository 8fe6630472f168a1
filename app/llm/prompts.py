from datetime import date

from app.models.schemas import INSTITUTION_TYPES

TOOL_NAME = "parse_financial_data"

SYSTEM_PROMPT = """\
You are a financial assistant that parses personal financial data from natural language.

Your job is to extract two kinds of records and return them by calling the
`parse_financial_data` function:

1. Expenses / transactions: money the user spent
2. Assets: the current value of something the user owns at a bank, broker or fund

Rules for transactions:
1. transaction_date is an ISO 8601 date (YYYY-MM-DD). If the user does not say when, use today's date.
2. Parse amounts in various formats: "5k" = 5000, "1.5k" = 1500, "$3,200" = 3200
3. category is ONE lowercase word (e.g. food, travel, entertainment, groceries, rent)
4. description is a concise, short description of the item
5. currency is a 3-letter code; use "USD" when the user does not mention one

Rules for assets:
1. institution_name is the bank, broker or fund house only (e.g. "HDFC", "Citibank", "Zerodha")
2. institution_type is exactly one of: bank, broker, mutual_fund, other
3. asset_name is concise and must NOT include the institution name:
   - "Fixed Deposit" (not "Citibank Fixed Deposit")
   - "Savings Account" (not "HDFC Savings Account")
   - "Stock Portfolio" (not "Zerodha Portfolio")
4. current_value is the value the user states now, not a difference
5. currency defaults to "USD" when the user does not mention one

Examples:
- "I have $5000 in my HDFC savings account"
  → asset: institution_name "HDFC", institution_type "bank", asset_name "Savings Account", current_value 5000, currency "USD"
- "My Zerodha portfolio is worth INR 100000"
  → asset: institution_name "Zerodha", institution_type "broker", asset_name "Stock Portfolio", current_value 100000, currency "INR"
- "Added 10000 to my HDFC mutual fund"
  → asset: institution_name "HDFC", institution_type "mutual_fund", asset_name "Mutual Fund", current_value 10000
- "Spent 12.50 on lunch today"
  → transaction: transaction_date today, amount 12.50, category "food", description "Lunch"

If the message contains no expense and no asset, do NOT call the function.
Reply with one short sentence telling the user what you could not understand.
"""

TODAY_LINE = "Today's date is {today}."


def build_system_prompt(today: date | None = None) -> str:
    today = today or date.today()
    return SYSTEM_PROMPT + "\n" + TODAY_LINE.format(today=today.isoformat())


PARSE_FINANCIAL_DATA_TOOL = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": "Parse financial data including expenses and assets from natural language input.",
        "parameters": {
            "type": "object",
            "properties": {
                "transactions": {
                    "type": "array",
                    "description": "List of expenses or transactions",
                    "items": {
                        "type": "object",
                        "properties": {
                            "transaction_date": {
                                "type": "string",
                                "description": "Date of transaction in ISO 8601 format (e.g., 2021-09-01) if specified else today's date.",
                            },
                            "amount": {
                                "type": "number",
                                "description": "Amount of the transaction",
                            },
                            "currency": {
                                "type": "string",
                                "description": "Currency code of the amount (default: USD)",
                            },
                            "category": {
                                "type": "string",
                                "description": "One word category of the expense (e.g., food, travel, entertainment)",
                            },
                            "description": {
                                "type": "string",
                                "description": "Concise and short description of the item",
                            },
                        },
                        "required": ["transaction_date", "amount", "category", "description"],
                    },
                },
                "assets": {
                    "type": "array",
                    "description": "List of assets",
                    "items": {
                        "type": "object",
                        "properties": {
                            "institution_name": {
                                "type": "string",
                                "description": "Name of the institution (e.g., HDFC Bank, Zerodha)",
                            },
                            "institution_type": {
                                "type": "string",
                                "description": "Type of institution (e.g., bank, broker, mutual_fund, other)",
                                "enum": list(INSTITUTION_TYPES),
                            },
                            "asset_name": {
                                "type": "string",
                                "description": "Name of the asset (e.g., Savings Account, Stock Portfolio)",
                            },
                            "current_value": {
                                "type": "number",
                                "description": "Current value of the asset",
                            },
                            "currency": {
                                "type": "string",
                                "description": "Currency of the asset value (default: USD)",
                            },
                            "description": {
                                "type": "string",
                                "description": "Additional description of the asset",
                            },
                            "confirm": {
                                "type": "boolean",
                                "description": "Whether the asset entry is confirmed",
                            },
                        },
                        "required": ["institution_name", "institution_type", "asset_name", "current_value"],
                    },
                },
            },
        },
    },
}
