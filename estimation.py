"""
An estimation: a titled bar bending schedule plus the scrap declared for it.
"""
import logging
import threading
from typing import Any, Mapping

from bar_schedule import BarLineItem, compute_item, steel_breakdown, total_steel_weight, weight_by_diameter
from constants import UNIT_WEIGHTS, STOCK_LENGTH_M
from errors import EstimationError
from rebar_optimizer import ScrapStockItem, OptimizationResult, optimize
from shapes import ShapeRegistry

logger = logging.getLogger(__name__)


class Estimation:
    """
    Holds line items and scrap, and serialises every mutation and read with a lock.

    `optimize` copies the current items and scrap under the lock and packs the
    copy, so an edit made while an optimization runs only affects the next one.
    """
    def __init__(self, title: str, registry: ShapeRegistry | None = None,
                 items: tuple[BarLineItem, ...] | list[BarLineItem] = (),
                 scrap_stock: tuple[ScrapStockItem, ...] | list[ScrapStockItem] = (),
                 unit_weights: Mapping[int, float] = UNIT_WEIGHTS,
                 stock_length_m: float = STOCK_LENGTH_M,
                 strict_diameter: bool = False):
        self.title = title
        self.registry = registry or ShapeRegistry()
        self.unit_weights = unit_weights
        self.stock_length_m = stock_length_m
        self.strict_diameter = strict_diameter
        self._items: list[BarLineItem] = list(items)
        self._scrap: list[ScrapStockItem] = list(scrap_stock)
        self._lock = threading.Lock()

    @property
    def items(self) -> tuple[BarLineItem, ...]:
        with self._lock:
            return tuple(self._items)

    @property
    def scrap_stock(self) -> tuple[ScrapStockItem, ...]:
        with self._lock:
            return tuple(self._scrap)

    def _compute(self, form: Mapping[str, Any]) -> BarLineItem:
        return compute_item(form, self.registry, self.unit_weights, self.strict_diameter)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._items):
            raise EstimationError(f'No line item at index {index} in {self.title!r}.')

    # --- Line items ---

    def add_item(self, form: Mapping[str, Any]) -> BarLineItem:
        item = self._compute(form)
        with self._lock:
            self._items.append(item)
        logger.debug('Added %s to %s: %.3f kg', item.bar_mark, self.title, item.total_weight_kg)
        return item

    def update_item(self, index: int, form: Mapping[str, Any]) -> BarLineItem:
        """Replaces one line item; the other items are left untouched."""
        item = self._compute(form)
        with self._lock:
            self._check_index(index)
            self._items[index] = item
        return item

    def delete_item(self, index: int) -> BarLineItem:
        with self._lock:
            self._check_index(index)
            return self._items.pop(index)

    def recompute_all(self) -> None:
        """Recomputes every item, e.g. after a custom shape they use was edited."""
        with self._lock:
            forms = [item.to_form() for item in self._items]
        items = [self._compute(form) for form in forms]
        with self._lock:
            self._items = items

    # --- Scrap ---

    def add_scrap(self, diameter_mm: Any, length_m: Any, quantity: Any) -> ScrapStockItem:
        """
        Declares reusable offcuts.

        Raises:
            InvalidScrapError: For a non-positive length or a quantity below 1.
        """
        scrap = ScrapStockItem.declare(diameter_mm, length_m, quantity)
        with self._lock:
            self._scrap.append(scrap)
        return scrap

    def remove_scrap(self, scrap_id: str) -> bool:
        with self._lock:
            before = len(self._scrap)
            self._scrap = [s for s in self._scrap if s.id != scrap_id]
            return len(self._scrap) != before

    # --- Rollups ---

    def total_steel_weight(self) -> float:
        return total_steel_weight(self.items)

    def weight_by_diameter(self) -> dict[int, float]:
        return weight_by_diameter(self.items)

    def steel_breakdown(self) -> dict[str, Any]:
        return steel_breakdown(self.items)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            items = tuple(self._items)
            scrap = tuple(self._scrap)
        return {'title': self.title, 'items': items, 'scrap_stock': scrap}

    def optimize(self) -> OptimizationResult:
        state = self.snapshot()
        logger.info('Optimizing %s: %d line item(s), %d scrap entr%s.', self.title,
                    len(state['items']), len(state['scrap_stock']),
                    'y' if len(state['scrap_stock']) == 1 else 'ies')
        return optimize(state['items'], state['scrap_stock'], self.stock_length_m)

    def to_dict(self) -> dict[str, Any]:
        state = self.snapshot()
        return {
            'title': state['title'],
            'items': [item.to_dict() for item in state['items']],
            'scrap_stock': [s.to_dict() for s in state['scrap_stock']],
            'total_steel_weight': total_steel_weight(state['items']),
        }
