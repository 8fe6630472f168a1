import asyncio
from datetime import date
from decimal import Decimal

from loguru import logger
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from app.deps import Services
from app.errors import (
    EmptyInputError,
    LedgerError,
    NoFinancialDataError,
    TransportError,
)
from app.models.schemas import Asset, IngestionResult, Transaction


def _services(context: ContextTypes.DEFAULT_TYPE) -> Services:
    return context.application.bot_data["services"]


def _format_amount(amount: Decimal, currency: str) -> str:
    """Format an amount with its currency: '1,234.50 USD'."""
    if amount == amount.to_integral_value():
        return f"{int(amount):,} {currency}"
    return f"{amount:,.2f} {currency}"


def _transaction_line(txn: Transaction) -> str:
    line = f"{_format_amount(txn.amount, txn.currency)} on {txn.category}"
    if txn.description:
        line += f" — {txn.description}"
    return f"{line} ({txn.transaction_date.isoformat()})"


def _asset_line(asset: Asset) -> str:
    return (
        f"{asset.institution_name} {asset.asset_name} "
        f"({asset.institution_type}): {_format_amount(asset.current_value, asset.currency)}"
    )


def _result_summary(result: IngestionResult) -> str:
    """Describe what an ingestion saved, one record per line."""
    if result.kind == "transactions":
        lines = [f"Saved {len(result.transactions)} expense(s):"]
        lines += [f"• {_transaction_line(t)}" for t in result.transactions]
        return "\n".join(lines)

    lines = [f"Saved {len(result.assets)} asset(s):"]
    lines += [f"• {_asset_line(a)}" for a in result.assets]
    for failure in result.failures:
        c = failure.candidate
        lines.append(f"✗ {c.institution_name} {c.asset_name}: {failure.error}")
    if result.skipped_transactions:
        lines.append(
            f"({result.skipped_transactions} expense(s) in the same message were "
            "not saved — send them separately.)"
        )
    return "\n".join(lines)


def _error_message(exc: LedgerError) -> str:
    """Turn an ingestion failure into something friendly to show the user."""
    if isinstance(exc, NoFinancialDataError):
        return exc.reply or "I couldn't find an expense or an asset in that. Could you rephrase?"
    if isinstance(exc, EmptyInputError):
        return "Send me something like “Spent 12.50 on lunch”."
    if isinstance(exc, TransportError):
        return "I couldn't reach the language model right now. Please try again in a bit."
    return f"Something went wrong: {exc.message}"


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    await update.message.reply_text(
        "Hey! I'm your Ledger bot.\n\n"
        "Tell me what you spent or what your accounts are worth and I'll record it.\n\n"
        "Examples:\n"
        '• "Spent 12.50 on lunch today"\n'
        '• "Paid 40 for a taxi yesterday"\n'
        '• "My HDFC savings account has 5000"\n\n'
        "Commands:\n"
        "/assets — Show your assets\n"
        "/today — Today's spending by category\n"
        "/help — Show this message"
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command."""
    await start_command(update, context)


async def assets_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /assets command."""
    assets = _services(context).repo.list_assets()
    if not assets:
        await update.message.reply_text("No assets recorded yet.")
        return

    lines = ["Your assets:\n"]
    for i, asset in enumerate(assets, 1):
        line = f"{i}. {_asset_line(asset)}"
        if not asset.confirm:
            line += " (unconfirmed)"
        lines.append(line)
    await update.message.reply_text("\n".join(lines))


async def today_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /today command."""
    today = date.today()
    summaries = _services(context).reports.top_categories(today, today)
    if not summaries:
        await update.message.reply_text("Nothing spent today.")
        return

    lines = ["Spent today:\n"]
    for row in summaries:
        lines.append(f"• {row.category}: {row.total_spent:,}")
    await update.message.reply_text("\n".join(lines))


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming text messages — the main ingestion entry point."""
    user_text = update.message.text.strip()
    logger.info("Telegram message: {}", user_text)

    await update.message.chat.send_action("typing")

    orchestrator = _services(context).orchestrator
    try:
        result = await asyncio.to_thread(orchestrator.process, user_text)
    except LedgerError as e:
        logger.warning("Telegram message not ingested: {}", e.message)
        await update.message.reply_text(_error_message(e))
        return

    if result.kind == "transactions":
        ids = [t.id for t in result.transactions]
        buttons = [
            InlineKeyboardButton("Confirm ✓", callback_data="confirm_yes"),
            InlineKeyboardButton("Discard ✗", callback_data="confirm_no"),
        ]
    else:
        ids = [a.id for a in result.assets]
        buttons = [
            InlineKeyboardButton("Confirm ✓", callback_data="confirm_yes"),
            InlineKeyboardButton("Later", callback_data="confirm_later"),
        ]

    context.user_data["pending"] = {"kind": result.kind, "ids": ids}
    await update.message.reply_text(
        _result_summary(result), reply_markup=InlineKeyboardMarkup([buttons])
    )


async def handle_confirmation(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle Confirm / Discard / Later button presses."""
    query = update.callback_query
    await query.answer()

    pending = context.user_data.pop("pending", None)
    if not pending:
        await query.edit_message_text("Nothing to confirm. Send a new message.")
        return

    repo = _services(context).repo
    kind, ids = pending["kind"], pending["ids"]

    try:
        if query.data == "confirm_later":
            await query.edit_message_text(query.message.text + "\n\nLeft unconfirmed.")
        elif query.data == "confirm_no" and kind == "transactions":
            for id in ids:
                repo.delete_transaction(id)
            await query.edit_message_text(query.message.text + "\n\nDiscarded.")
        elif query.data == "confirm_yes" and kind == "transactions":
            for id in ids:
                txn = repo.get_transaction(id)
                if txn is not None:
                    repo.update_transaction(id, txn.model_copy(update={"confirm": True}))
            await query.edit_message_text(query.message.text + "\n\nConfirmed ✓")
        elif query.data == "confirm_yes":
            for id in ids:
                repo.set_asset_confirm(id, True)
            await query.edit_message_text(query.message.text + "\n\nConfirmed ✓")
        else:
            await query.edit_message_text("I'm not sure what to do with that.")
    except LedgerError as e:
        logger.error("Error applying confirmation: {}", e.message)
        await query.edit_message_text(f"Something went wrong: {e.message}")


def build_bot_app(token: str, services: Services) -> Application:
    """Build and return the Telegram bot application."""
    app = Application.builder().token(token).build()
    app.bot_data["services"] = services

    # Command handlers
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("assets", assets_command))
    app.add_handler(CommandHandler("today", today_command))

    # Callback query handler for confirmations
    app.add_handler(CallbackQueryHandler(handle_confirmation))

    # Message handlers
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    return app
