from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_placed_total = Counter(
    "ecomm_orders_placed_total",
    "Total order placement attempts",
    ["status"] # Labels: 'success' or the failure code, e.g. 'insufficient_stock'
)

ecomm_order_placement_duration_seconds = Histogram(
    "ecomm_order_placement_duration_seconds",
    "Order placement transaction duration in seconds"
)

ecomm_stock_units_reserved_total = Counter(
    "ecomm_stock_units_reserved_total",
    "Stock units decremented by committed orders"
)

ecomm_stock_units_restored_total = Counter(
    "ecomm_stock_units_restored_total",
    "Stock units given back by cancelled orders"
)

ecomm_order_cancellations_total = Counter(
    "ecomm_order_cancellations_total",
    "Total order cancellation attempts",
    ["status"] # Labels: 'success' or the failure code
)
