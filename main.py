#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RustLens Quiz — Telegram bot front end.

Shows the next scheduled question, records the answer through the quiz
service (SM-2 applied right after every answer) and sends reports.
Single user: only ALLOWED_USER_ID is served.
"""

import io
import logging
import traceback
from datetime import datetime, time as dtime, timezone
from functools import wraps

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, InputFile
from telegram.ext import (
    Application, CommandHandler, CallbackQueryHandler, ContextTypes,
)
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from config.settings import settings
from core.analytics_engine import format_report_as_text, report_filename
from core.database import Database
from core.models import AppSettings, Question
from core.quiz_service import AnswerResult, QuestionNotFound, QuizService

logging.basicConfig(format=settings.LOG_FORMAT, level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

service = QuizService(Database(settings.DB_PATH), settings.QUESTIONS_PATH)

_LABELS = ["A", "B", "C", "D", "E", "F"]

# ═══════════════════════════════════════════════════
#  Rendering helpers
# ═══════════════════════════════════════════════════
def category_label(category: str) -> str:
    return " ".join(w.capitalize() for w in category.split("_"))


def difficulty_stars(difficulty: int) -> str:
    return "★" * difficulty + "☆" * (5 - difficulty)


def format_question(q: Question, prefs: AppSettings) -> str:
    timer = f" | ⏱ {prefs.time_per_question}s" if prefs.timed_mode else ""
    lines = [
        f"🧠 *{category_label(q.category)}* {difficulty_stars(q.difficulty)}{timer}",
        "",
        f"```\n{q.code}\n```" if q.code else "",
        escape_markdown(q.question),
        "",
    ]
    for i, opt in enumerate(q.options[:len(_LABELS)]):
        lines.append(f"{_LABELS[i]}) {escape_markdown(opt)}")
    return "\n".join(lines)


def question_keyboard(q: Question) -> InlineKeyboardMarkup:
    row = [
        InlineKeyboardButton(_LABELS[i], callback_data=f"opt_{q.id}_{i}")
        for i in range(min(len(q.options), len(_LABELS)))
    ]
    return InlineKeyboardMarkup([
        row,
        [InlineKeyboardButton("⏭ Skip", callback_data="next_question"),
         InlineKeyboardButton("⏹ End", callback_data="end_quiz")],
    ])


def format_result(q: Question, result: AnswerResult, selected: int) -> str:
    head = "✅ *Correct!*" if result.correct else "❌ *Wrong.*"
    lines = [head, ""]
    for i, opt in enumerate(q.options[:len(_LABELS)]):
        if i == result.correct_index:
            icon = "✅"
        elif i == selected:
            icon = "❌"
        else:
            icon = "◻️"
        lines.append(f"{icon} {_LABELS[i]}) {escape_markdown(opt)}")
    if result.explanation:
        lines += ["", f"💡 {escape_markdown(result.explanation)}"]
    if q.rust_book_link:
        lines += ["", f"📖 {escape_markdown(q.rust_book_link)}"]
    days = result.state.interval
    lines += ["", f"🔁 Next review in {days} day(s)" if days else "🔁 Next review in 10 minutes"]
    return "\n".join(lines)


def main_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("🧠 Practice",  callback_data="menu_quiz")],
        [InlineKeyboardButton("📊 Stats",     callback_data="menu_stats"),
         InlineKeyboardButton("📄 Report",    callback_data="menu_report")],
        [InlineKeyboardButton("⚙️ Settings",  callback_data="menu_settings")],
    ])


def settings_keyboard(prefs: AppSettings) -> InlineKeyboardMarkup:
    def onoff(flag: bool) -> str:
        return "on" if flag else "off"
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(f"💡 Explanations: {onoff(prefs.explanations_enabled)}",
                              callback_data="set_explanations_enabled")],
        [InlineKeyboardButton(f"⏱ Timed mode: {onoff(prefs.timed_mode)}",
                              callback_data="set_timed_mode")],
        [InlineKeyboardButton("⬅️ Back", callback_data="menu_back")],
    ])


def allowed_only(handler):
    @wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if user is None or user.id != settings.ALLOWED_USER_ID:
            if update.message:
                await update.message.reply_text("⛔ Not authorised.")
            return
        return await handler(update, context)
    return wrapper

# ═══════════════════════════════════════════════════
#  /start  /stats  /report  /settings
# ═══════════════════════════════════════════════════
async def _summary_text() -> str:
    stats = await service.get_stats()
    due = await service.due_count()
    return (
        f"🦀 *RustLens Quiz*\n\n"
        f"📌 Bank: *{service.question_count}* questions | ⏰ Due: *{due}*\n"
        f"✅ {stats.correct_answers}/{stats.total_questions} correct | "
        f"🔥 Streak: *{stats.current_streak}* day(s)"
    )


@allowed_only
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = await _summary_text()
    if update.callback_query:
        await update.callback_query.answer()
        await update.callback_query.edit_message_text(
            text, reply_markup=main_keyboard(), parse_mode=ParseMode.MARKDOWN)
    else:
        await update.message.reply_text(text, reply_markup=main_keyboard(), parse_mode=ParseMode.MARKDOWN)


@allowed_only
async def stats_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    report = await service.generate_report()
    s = report["summary"]
    lines = [
        "📊 *Statistics*\n",
        f"Answered: *{s['total_questions']}* | Accuracy: *{s['accuracy']}%*",
        f"Streak: *{s['current_streak']}* (best {s['longest_streak']})\n",
    ]
    for c in report["category_breakdown"]:
        if c["attempted"]:
            lines.append(f"• {category_label(c['category'])}: {c['accuracy']}% ({c['status']})")
    target = update.callback_query or update.message
    text = "\n".join(lines)
    if update.callback_query:
        await update.callback_query.answer()
        await target.edit_message_text(text, reply_markup=main_keyboard(), parse_mode=ParseMode.MARKDOWN)
    else:
        await target.reply_text(text, reply_markup=main_keyboard(), parse_mode=ParseMode.MARKDOWN)


@allowed_only
async def report_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.callback_query:
        await update.callback_query.answer()
    now = datetime.now(timezone.utc)
    text = format_report_as_text(await service.generate_report(), now)
    await context.bot.send_document(
        chat_id=update.effective_chat.id,
        document=InputFile(io.BytesIO(text.encode("utf-8")),
                           filename=report_filename("text", now.date())),
        caption="📄 Performance report",
    )


@allowed_only
async def settings_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    prefs = await service.get_settings()
    if update.callback_query:
        await update.callback_query.answer()
        await update.callback_query.edit_message_text("⚙️ Settings", reply_markup=settings_keyboard(prefs))
    else:
        await update.message.reply_text("⚙️ Settings", reply_markup=settings_keyboard(prefs))


@allowed_only
async def toggle_setting(update: Update, context: ContextTypes.DEFAULT_TYPE):
    q = update.callback_query
    await q.answer()
    name = q.data.replace("set_", "", 1)
    prefs = await service.get_settings()
    prefs = await service.update_settings({name: not getattr(prefs, name)})
    await q.edit_message_text("⚙️ Settings", reply_markup=settings_keyboard(prefs))

# ═══════════════════════════════════════════════════
#  Quiz
# ═══════════════════════════════════════════════════
async def _send_next(update: Update, context: ContextTypes.DEFAULT_TYPE, exclude=None):
    nxt = await service.next_question(exclude=exclude)
    q = update.callback_query
    if not nxt:
        text = "📭 The question bank is empty."
        if q:
            await q.edit_message_text(text, reply_markup=main_keyboard())
        else:
            await update.message.reply_text(text, reply_markup=main_keyboard())
        return
    context.user_data["current_qid"] = nxt.id
    prefs = await service.get_settings()
    text, kb = format_question(nxt, prefs), question_keyboard(nxt)
    try:
        if q:
            await q.edit_message_text(text, reply_markup=kb, parse_mode=ParseMode.MARKDOWN)
        else:
            await update.message.reply_text(text, reply_markup=kb, parse_mode=ParseMode.MARKDOWN)
    except TelegramError as e:
        logger.warning(f"_send_next: {e}")


@allowed_only
async def quiz_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.callback_query:
        await update.callback_query.answer()
    context.user_data.update({"quiz_correct": 0, "quiz_total": 0})
    await _send_next(update, context)


@allowed_only
async def quiz_option(update: Update, context: ContextTypes.DEFAULT_TYPE):
    q = update.callback_query
    await q.answer()
    qid, idx = q.data[len("opt_"):].rsplit("_", 1)
    selected = int(idx)
    try:
        question = service.get_question(qid)
        result = await service.submit_answer(qid, selected)
    except QuestionNotFound:
        await q.edit_message_text("❌ Question not found.", reply_markup=main_keyboard())
        return

    context.user_data["quiz_total"] = context.user_data.get("quiz_total", 0) + 1
    if result.correct:
        context.user_data["quiz_correct"] = context.user_data.get("quiz_correct", 0) + 1

    kb = InlineKeyboardMarkup([[
        InlineKeyboardButton("⏭ Next question", callback_data="next_question"),
        InlineKeyboardButton("⏹ End", callback_data="end_quiz"),
    ]])
    await q.edit_message_text(format_result(question, result, selected),
                              reply_markup=kb, parse_mode=ParseMode.MARKDOWN)


@allowed_only
async def next_question(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await _send_next(update, context, exclude=context.user_data.get("current_qid"))


@allowed_only
async def quiz_end(update: Update, context: ContextTypes.DEFAULT_TYPE):
    q = update.callback_query
    await q.answer()
    correct = context.user_data.get("quiz_correct", 0)
    total = context.user_data.get("quiz_total", 0)
    pct = round(correct / total * 100) if total else 0
    await q.edit_message_text(
        f"🎉 *Session finished*\n\n✅ {correct}/{total} ({pct}%)",
        parse_mode=ParseMode.MARKDOWN, reply_markup=main_keyboard(),
    )
    context.user_data.clear()

# ═══════════════════════════════════════════════════
#  Daily reminder
# ═══════════════════════════════════════════════════
async def send_daily_report(context: ContextTypes.DEFAULT_TYPE):
    try:
        text = await _summary_text()
        await context.bot.send_message(
            chat_id=settings.ALLOWED_USER_ID, text=text,
            parse_mode=ParseMode.MARKDOWN, reply_markup=main_keyboard(),
        )
    except TelegramError as e:
        logger.error(f"daily_report error: {e}")

# ═══════════════════════════════════════════════════
#  Error handler
# ═══════════════════════════════════════════════════
async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("Exception while handling an update:", exc_info=context.error)
    if not (isinstance(update, Update) and update.effective_chat):
        return
    tb = "".join(traceback.format_exception(None, context.error, context.error.__traceback__))
    logger.debug(tb)
    try:
        await context.bot.send_message(
            chat_id=update.effective_chat.id,
            text="⚠️ Something went wrong. The error has been logged.",
        )
    except TelegramError as e:
        logger.error(f"error handler failed: {e}")

# ═══════════════════════════════════════════════════
#  main
# ═══════════════════════════════════════════════════
async def _post_init(application: Application):
    await service.start()


def build_application(token: str) -> Application:
    app = Application.builder().token(token).post_init(_post_init).build()

    for cmd, fn in [
        ("start",    start),      ("quiz",   quiz_cmd),
        ("stats",    stats_cmd),  ("report", report_cmd),
        ("settings", settings_cmd),
    ]:
        app.add_handler(CommandHandler(cmd, fn))

    for pattern, fn in [
        (r"^opt_.+_\d+$",      quiz_option),
        (r"^next_question$",   next_question),
        (r"^end_quiz$",        quiz_end),
        (r"^menu_quiz$",       quiz_cmd),
        (r"^menu_stats$",      stats_cmd),
        (r"^menu_report$",     report_cmd),
        (r"^menu_settings$",   settings_cmd),
        (r"^menu_back$",       start),
        (r"^set_(explanations_enabled|timed_mode)$", toggle_setting),
    ]:
        app.add_handler(CallbackQueryHandler(fn, pattern=pattern))

    app.add_error_handler(error_handler)

    if app.job_queue:
        app.job_queue.run_daily(
            send_daily_report,
            time=dtime(hour=settings.DAILY_REPORT_HOUR, minute=settings.DAILY_REPORT_MINUTE,
                       tzinfo=timezone.utc),
            name="daily_report",
        )
    return app


def main():
    settings.require_bot_credentials()
    app = build_application(settings.BOT_TOKEN)
    logger.info("🚀 RustLens Quiz bot started")
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
