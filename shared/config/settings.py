import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# Absolute difference allowed between the client's total and the recomputed one
ORDER_TOTAL_TOLERANCE = Decimal(os.getenv("ORDER_TOTAL_TOLERANCE", "0.01"))

# Statuses from which an order can no longer be cancelled
ORDER_NON_CANCELLABLE_STATUSES = frozenset(
    s.strip()
    for s in os.getenv("ORDER_NON_CANCELLABLE_STATUSES", "delivered,cancelled").split(",")
    if s.strip()
)

# Upper bound (seconds) for one place/cancel/update transaction
ORDER_TRANSACTION_TIMEOUT = float(os.getenv("ORDER_TRANSACTION_TIMEOUT", "15"))

# Row lock wait bound (milliseconds), applied on PostgreSQL/MySQL
ORDER_LOCK_TIMEOUT_MS = int(os.getenv("ORDER_LOCK_TIMEOUT_MS", "5000"))

ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "20/minute")

TRACING_ENABLED = os.getenv("TRACING_ENABLED", "true").lower() == "true"
