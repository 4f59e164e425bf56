"""
Inventory View

Read-only access to the hosts of an inventory file, filtered by group.
"""

from loguru import logger

from ..configs.types import HostSet
from ..errors import InventoryError, SelectionError
from .parser import ALL_GROUP, InventoryParser


class InventoryView:
    """Loads inventories and selects the hosts that get a supervisor"""

    @staticmethod
    def load(source_path: str) -> HostSet:
        """
        Load every host of an inventory file.

        Args:
            source_path: Path to an Ansible INI inventory

        Returns:
            HostSet in inventory declaration order

        Raises:
            InventoryError: if the file is unreadable or malformed
        """
        return InventoryParser.parse_file(source_path)

    @staticmethod
    def select(host_set: HostSet, selector: str) -> HostSet:
        """
        Keep the hosts that belong to the group named by ``selector``.

        The relative order of ``host_set`` is preserved, so the same inventory
        always yields the same sequence.

        Raises:
            SelectionError: if no host matches
            InventoryError: if a matched host uses a connection other than
                SSH or WinRM
        """
        selector = (selector or "").strip()
        if selector == ALL_GROUP:
            selected = host_set
        else:
            selected = HostSet(h for h in host_set if h.in_group(selector))

        if len(selected) == 0:
            raise SelectionError(selector)

        unreachable = [h for h in selected if not h.reachable]
        if unreachable:
            host = unreachable[0]
            raise InventoryError(
                f"host {host.name!r} in {selector!r} uses unsupported connection {host.connection!r}"
            )

        logger.debug(f"Selector {selector!r} matched {len(selected)} hosts: {', '.join(selected.names())}")
        return selected

    @staticmethod
    def load_selected(source_path: str, selector: str) -> HostSet:
        return InventoryView.select(InventoryView.load(source_path), selector)
