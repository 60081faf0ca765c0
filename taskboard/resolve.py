"""
Referential lookups across stores.

Tasks point at categories and contacts, reminders point at tasks, and any
of those references may dangle. Lookups here never raise on a miss: they
log it and return a display fallback.
"""
import logging
from typing import List, Optional

from .schema import Category, Contact, Task
from .store import CategoryStore, ContactStore, TaskStore

logger = logging.getLogger(__name__)

FALLBACK_TASK_TITLE = "Reminder"
FALLBACK_CATEGORY_NAME = "Uncategorized"
FALLBACK_CONTACT_NAME = "Unknown contact"


class EntityResolver:
    """Read-only view over the stores for display-name resolution."""

    def __init__(self, tasks: TaskStore, categories: CategoryStore, contacts: ContactStore):
        self.tasks = tasks
        self.categories = categories
        self.contacts = contacts

    def task_title(self, task_id: str, default: str = FALLBACK_TASK_TITLE) -> str:
        task = self.tasks.get_task(task_id)
        if task is None:
            logger.info(f"Task {task_id} not found, using '{default}'")
            return default
        return task.title

    def category_name(self, category_id: Optional[str]) -> str:
        if not category_id:
            return FALLBACK_CATEGORY_NAME
        category = self.categories.get_category(category_id)
        if category is None:
            logger.info(f"Category {category_id} not found")
            return FALLBACK_CATEGORY_NAME
        return category.name

    def contact_name(self, contact_id: str) -> str:
        contact = self.contacts.get_contact(contact_id)
        if contact is None:
            logger.info(f"Contact {contact_id} not found")
            return FALLBACK_CONTACT_NAME
        return contact.name

    def assignee_names(self, task: Task) -> List[str]:
        return sorted(self.contact_name(cid) for cid in task.assignee_ids)

    def find_category(self, name: str) -> Optional[Category]:
        """Case-insensitive match on name or id."""
        needle = name.strip().lower()
        for category in self.categories.list_categories():
            if category.id.lower() == needle or category.name.lower() == needle:
                return category
        return None

    def find_contact(self, name: str) -> Optional[Contact]:
        """Case-insensitive match on name or id."""
        needle = name.strip().lower()
        for contact in self.contacts.list_contacts():
            if contact.id.lower() == needle or contact.name.lower() == needle:
                return contact
        return None
