"""
Inventory Module

Parses Ansible inventories and selects the hosts to supervise.
"""

from .parser import InventoryParser, ALL_GROUP, UNGROUPED_GROUP
from .view import InventoryView

__all__ = [
    "InventoryParser",
    "InventoryView",
    "ALL_GROUP",
    "UNGROUPED_GROUP",
]
