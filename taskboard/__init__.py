# Task/reminder engine for the event-committee coordination board.
#
# Components:
#   schema.py    - Data model (Task, Category, Contact, Reminder, ColumnSet)
#   store.py     - In-memory entity stores with subscribe/notify and a
#                  pluggable key-value backend
#   resolve.py   - Referential lookups with display fallbacks
#   filters.py   - Pure filter/sort engine behind the Kanban view
#   board.py     - Kanban status machine and board view model
#   notifier.py  - Notifier interface (Telegram and log adapters)
#   reminders.py - Interval-driven reminder scheduler
#   config.py    - YAML configuration
#   bot.py       - Telegram chat host

__version__ = "0.1.0"
