"""Order history kept by the client that placed the orders."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import DataServiceError
from .models import HistoryData, Order
from .tracking import normalize_tracking_code

logger = logging.getLogger(__name__)


class OrderHistory:
    """
    Persists ids of orders placed from this client and caches their details.

    Ids are never removed once recorded. A failed refresh keeps the last
    successful snapshot.
    """

    def __init__(self, data, history_file: Optional[str] = None) -> None:
        """
        Initialize the order history.

        Args:
            data: Data service client (see StoreDataClient)
            history_file: Path to store order ids. Defaults to ~/.storefront_orders.json
        """
        if history_file is None:
            history_file = str(Path.home() / ".storefront_orders.json")
        self.data = data
        self.history_file = history_file
        self.history: HistoryData = self._load_history()
        self._orders: list[Order] = []
        self.last_error: Optional[str] = None

    def _load_history(self) -> HistoryData:
        """Load recorded ids from file if it exists."""
        if os.path.exists(self.history_file):
            try:
                with open(self.history_file, "r") as f:
                    return HistoryData(**json.load(f))
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                logger.warning(f"Ignoring unreadable history file {self.history_file}: {e}")
        return HistoryData()

    def _save_history(self) -> bool:
        """Save recorded ids to file. Ids stay in memory if the write fails."""
        try:
            with open(self.history_file, "w") as f:
                json.dump(self.history.model_dump(), f)
            os.chmod(self.history_file, 0o600)
        except OSError as e:
            logger.error(f"Could not save order history to {self.history_file}: {e}")
            return False
        return True

    @property
    def order_ids(self) -> list[str]:
        return list(self.history.order_ids)

    @property
    def orders(self) -> list[Order]:
        """Orders from the last successful refresh."""
        return list(self._orders)

    def record(self, order_id: str) -> None:
        """Remember an order placed from this client."""
        if order_id in self.history.order_ids:
            return
        self.history = HistoryData(order_ids=self.history.order_ids + [order_id])
        self._save_history()

    async def refresh(self) -> bool:
        """
        Re-fetch all recorded orders.

        Returns:
            True if the snapshot was replaced, False if the fetch failed
        """
        try:
            orders = await self.data.get_orders(self.history.order_ids)
        except DataServiceError as e:
            logger.error(f"Could not refresh order history: {e}")
            self.last_error = e.message
            return False

        self._orders = orders
        self.last_error = None
        return True

    def find_by_tracking_code(self, code: str) -> Optional[Order]:
        """Look up an order in the last snapshot by its tracking code."""
        code = normalize_tracking_code(code)
        for order in self._orders:
            if order.tracking_code == code:
                return order
        return None
