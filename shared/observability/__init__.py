from .setup import setup_observability
from .metrics import (
    ecomm_orders_placed_total,
    ecomm_order_placement_duration_seconds,
    ecomm_stock_units_reserved_total,
    ecomm_stock_units_restored_total,
    ecomm_order_cancellations_total
)
