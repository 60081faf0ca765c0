"""
Task Board Bot
──────────────
Telegram host for the task board. Each chat gets its own filtered board
view; the reminder scheduler runs on the bot's event loop for the
lifetime of the application.

Commands:
    /board                      — show the filtered board
    /find <text>                — search titles and descriptions
    /category <name|any>        — filter by category
    /assignee <name|unassigned|any> — filter by assignee
    /clear                      — clear all filters
    /move <task_id> <status>    — move a task to another column
    /done <task_id>             — toggle a task between done and the first column
    /add <title> [| description] — create a task
    /remind <task_id> <minutes> — schedule a reminder
    /reminders                  — list upcoming reminders
    /dismiss <reminder_id>      — mark a reminder delivered without notifying

Dependencies:
    pip install python-telegram-bot==20.* pyyaml
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from telegram import BotCommand, Update
from telegram.ext import Application, CommandHandler, ContextTypes

from .board import KanbanBoard
from .config import Config
from .filters import UNASSIGNED, FilterCriteria, assignable_contacts, has_active_filters
from .notifier import LogNotifier, Notifier, TelegramNotifier
from .reminders import EventLoopTimer, ReminderScheduler
from .resolve import EntityResolver
from .schema import Reminder, utc_now
from .store import CategoryStore, ContactStore, ReminderStore, StoreUnavailable, TaskStore

logger = logging.getLogger(__name__)

COMMANDS = [
    ("board", "Show the filtered board"),
    ("find", "Search tasks: /find <text>"),
    ("category", "Filter by category: /category <name|any>"),
    ("assignee", "Filter by assignee: /assignee <name|unassigned|any>"),
    ("clear", "Clear all filters"),
    ("move", "Move a task: /move <task_id> <status>"),
    ("done", "Toggle done: /done <task_id>"),
    ("add", "Create a task: /add <title> | <description>"),
    ("remind", "Schedule a reminder: /remind <task_id> <minutes>"),
    ("reminders", "List upcoming reminders"),
    ("dismiss", "Dismiss a reminder: /dismiss <reminder_id>"),
    ("help", "Show available commands"),
]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rendering & parsing
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def truncate(text: str, max_chars: int = 3500) -> str:
    """Truncate text to fit in a single Telegram message (4096 char limit)."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n…[truncated, {len(text) - max_chars} chars omitted]"


def parse_add_args(args: List[str]) -> Tuple[str, str]:
    """Split '/add' arguments into (title, description) on the first '|'."""
    text = " ".join(args).strip()
    title, _, description = text.partition("|")
    title = title.strip()
    if not title:
        raise ValueError("Usage: /add <title> | <description>")
    return title, description.strip()


def parse_minutes(value: str) -> int:
    try:
        minutes = int(value)
    except ValueError:
        raise ValueError(f"'{value}' is not a whole number of minutes")
    if minutes < 0:
        raise ValueError("Minutes must not be negative")
    return minutes


def describe_criteria(criteria: FilterCriteria, resolver: EntityResolver) -> str:
    if not has_active_filters(criteria):
        return "no filters"
    parts = []
    if criteria.search_query:
        parts.append(f'search "{criteria.search_query}"')
    if criteria.category_id:
        parts.append(f"category {resolver.category_name(criteria.category_id)}")
    if criteria.assignee_id == UNASSIGNED:
        parts.append("unassigned")
    elif criteria.assignee_id:
        parts.append(f"assignee {resolver.contact_name(criteria.assignee_id)}")
    return ", ".join(parts)


def render_board(board: KanbanBoard, resolver: EntityResolver) -> str:
    """Plain-text board: one block per column."""
    shown, total = board.counts()
    lines = [f"📋 {shown} of {total} tasks ({describe_criteria(board.criteria, resolver)})"]
    for status, tasks in board.columns_view().items():
        lines.append("")
        lines.append(f"{status.replace('_', ' ').title()} ({len(tasks)})")
        if not tasks:
            lines.append("  —")
        for task in tasks:
            who = ", ".join(resolver.assignee_names(task)) or "unassigned"
            lines.append(f"  {task.id} {task.title} [{resolver.category_name(task.category_id)}] · {who}")
    return truncate("\n".join(lines))


def render_reminders(reminders: List[Reminder], resolver: EntityResolver) -> str:
    if not reminders:
        return "No upcoming reminders."
    lines = ["⏰ Upcoming reminders"]
    for reminder in reminders:
        when = reminder.date.strftime("%Y-%m-%d %H:%M UTC")
        lines.append(f"  {reminder.id} {when} — {resolver.task_title(reminder.task_id)}")
    return truncate("\n".join(lines))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Bot
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BoardBot:
    """Wires stores, per-chat board views and the reminder scheduler to Telegram."""

    def __init__(
        self,
        cfg: Config,
        tasks: TaskStore,
        categories: CategoryStore,
        contacts: ContactStore,
        reminders: ReminderStore,
    ):
        self.cfg = cfg
        self.tasks = tasks
        self.categories = categories
        self.contacts = contacts
        self.reminders = reminders
        self.resolver = EntityResolver(tasks, categories, contacts)
        self.scheduler: Optional[ReminderScheduler] = None
        self._boards: Dict[int, KanbanBoard] = {}

    def board_for(self, chat_id: int) -> KanbanBoard:
        if chat_id not in self._boards:
            self._boards[chat_id] = KanbanBoard(self.tasks)
        return self._boards[chat_id]

    def make_notifier(self, app: Application) -> Notifier:
        if self.cfg.telegram_chat_id:
            return TelegramNotifier(app.bot, self.cfg.telegram_chat_id)
        logger.warning("telegram_chat_id not set, reminders will only be logged")
        return LogNotifier()

    def make_scheduler(self, notifier: Notifier) -> ReminderScheduler:
        return ReminderScheduler(
            self.reminders,
            self.tasks,
            notifier,
            interval_ms=self.cfg.reminder_interval_ms,
            timer=EventLoopTimer(),
            fallback_title=self.cfg.reminder_fallback_title,
            notification_title=self.cfg.notification_title,
        )

    # ── Filter commands ───────────────────────

    async def handle_board(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        board = self.board_for(update.effective_chat.id)
        await update.message.reply_text(render_board(board, self.resolver))

    async def handle_find(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        board = self.board_for(update.effective_chat.id)
        board.update_criteria(search_query=" ".join(context.args))
        await update.message.reply_text(render_board(board, self.resolver))

    async def handle_category(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        board = self.board_for(update.effective_chat.id)
        name = " ".join(context.args).strip()
        if not name or name.lower() == "any":
            board.update_criteria(category_id=None)
        else:
            category = self.resolver.find_category(name)
            if category is None:
                known = ", ".join(c.name for c in self.categories.list_categories())
                await update.message.reply_text(f"Unknown category '{name}'. Known: {known}")
                return
            board.update_criteria(category_id=category.id)
        await update.message.reply_text(render_board(board, self.resolver))

    async def handle_assignee(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        board = self.board_for(update.effective_chat.id)
        name = " ".join(context.args).strip()
        if not name or name.lower() == "any":
            board.update_criteria(assignee_id=None)
        elif name.lower() == UNASSIGNED:
            board.update_criteria(assignee_id=UNASSIGNED)
        else:
            candidates = assignable_contacts(self.contacts.list_contacts(), self.cfg.roles)
            match = self.resolver.find_contact(name)
            if match is None or match not in candidates:
                known = ", ".join(c.name for c in candidates) or "none"
                await update.message.reply_text(f"Unknown assignee '{name}'. Assignable: {known}")
                return
            board.update_criteria(assignee_id=match.id)
        await update.message.reply_text(render_board(board, self.resolver))

    async def handle_clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        board = self.board_for(update.effective_chat.id)
        board.clear_filters()
        await update.message.reply_text(render_board(board, self.resolver))

    # ── Task commands ─────────────────────────

    async def handle_move(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if len(context.args) != 2:
            await update.message.reply_text(
                f"Usage: /move <task_id> <status>\nColumns: {', '.join(self.tasks.columns)}"
            )
            return
        task_id, status = context.args
        board = self.board_for(update.effective_chat.id)
        result = board.on_task_move(task_id.upper(), status.lower())
        if not result.ok:
            await update.message.reply_text(f"⚠️ {result.message}")
            return
        await update.message.reply_text(f"✅ {result.task_id} → {result.status}")

    async def handle_done(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if len(context.args) != 1:
            await update.message.reply_text("Usage: /done <task_id>")
            return
        result = self.board_for(update.effective_chat.id).toggle_done(context.args[0].upper())
        if not result.ok:
            await update.message.reply_text(f"⚠️ {result.message}")
            return
        await update.message.reply_text(f"✅ {result.task_id} → {result.status}")

    async def handle_add(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            title, description = parse_add_args(context.args)
        except ValueError as e:
            await update.message.reply_text(str(e))
            return
        try:
            task = self.tasks.add_task(title, description=description)
        except StoreUnavailable as e:
            logger.error(f"Failed to add task: {e}")
            await update.message.reply_text("⚠️ Task store unavailable, try again later.")
            return
        await update.message.reply_text(f"🆕 {task.id} {task.title} ({task.status})")

    # ── Reminder commands ─────────────────────

    async def handle_remind(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if len(context.args) != 2:
            await update.message.reply_text("Usage: /remind <task_id> <minutes>")
            return
        task_id = context.args[0].upper()
        try:
            minutes = parse_minutes(context.args[1])
        except ValueError as e:
            await update.message.reply_text(str(e))
            return
        if self.tasks.get_task(task_id) is None:
            await update.message.reply_text(f"Task {task_id} not found")
            return
        try:
            reminder = self.reminders.add_reminder(task_id, utc_now() + timedelta(minutes=minutes))
        except StoreUnavailable as e:
            logger.error(f"Failed to add reminder: {e}")
            await update.message.reply_text("⚠️ Reminder store unavailable, try again later.")
            return
        await update.message.reply_text(f"⏰ {reminder.id} set for {task_id} in {minutes} min")

    async def handle_reminders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(render_reminders(self.reminders.upcoming(), self.resolver))

    async def handle_dismiss(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if len(context.args) != 1:
            await update.message.reply_text("Usage: /dismiss <reminder_id>")
            return
        reminder_id = context.args[0].upper()
        dismiss = self.scheduler.dismiss if self.scheduler else self.reminders.mark_reminder_sent
        if not dismiss(reminder_id):
            await update.message.reply_text(f"Reminder {reminder_id} not found")
            return
        await update.message.reply_text(f"🔕 {reminder_id} dismissed")

    async def handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        lines = ["Task board commands:"] + [f"/{name} — {desc}" for name, desc in COMMANDS]
        await update.message.reply_text("\n".join(lines))

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    def register_handlers(self, app: Application):
        handlers = {
            "board": self.handle_board,
            "find": self.handle_find,
            "category": self.handle_category,
            "assignee": self.handle_assignee,
            "clear": self.handle_clear,
            "move": self.handle_move,
            "done": self.handle_done,
            "add": self.handle_add,
            "remind": self.handle_remind,
            "reminders": self.handle_reminders,
            "dismiss": self.handle_dismiss,
            "help": self.handle_help,
            "start": self.handle_help,
        }
        for name, callback in handlers.items():
            app.add_handler(CommandHandler(name, callback))

    async def post_init(self, app: Application):
        await app.bot.set_my_commands([BotCommand(name, desc[:256]) for name, desc in COMMANDS])
        self.scheduler = self.make_scheduler(self.make_notifier(app))
        self.scheduler.start()

    async def post_shutdown(self, app: Application):
        if self.scheduler is not None:
            self.scheduler.stop()
        for board in self._boards.values():
            board.close()

    def run(self):
        """Build Telegram Application, register handlers, and start polling."""
        app = Application.builder().token(self.cfg.telegram_token()).build()
        self.register_handlers(app)
        app.post_init = self.post_init
        app.post_shutdown = self.post_shutdown
        logger.info("Starting task board bot…")
        app.run_polling(drop_pending_updates=True)
