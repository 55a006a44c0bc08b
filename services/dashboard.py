from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict

from database import as_utc, utc_now
from errors import BadRequestError
from repositories import OrderRepository, ProductRepository, ReviewRepository, UserRepository

# period -> (look-back window, bucket format)
PERIODS = {
    "day": (None, "%Y-%m-%d %H:00"),
    "week": (timedelta(days=7), "%Y-%m-%d"),
    "month": (timedelta(days=30), "%Y-%m-%d"),
    "year": (timedelta(days=365), "%Y-%m"),
}


class DashboardService:
    def __init__(
        self,
        users: UserRepository,
        products: ProductRepository,
        orders: OrderRepository,
        reviews: ReviewRepository,
    ):
        self.users = users
        self.products = products
        self.orders = orders
        self.reviews = reviews

    def general_stats(self) -> Dict[str, Any]:
        revenue = self.orders.revenue_summary()
        recent = self.orders.find(sort=[("created_at", -1)], limit=5)
        owners = self.users.find_by_ids([o["user_id"] for o in recent])
        return {
            "total_users": self.users.count(),
            "total_orders": self.orders.count(),
            "total_products": self.products.count(),
            "total_reviews": self.reviews.count(),
            "total_revenue": round(revenue["total"], 2),
            "average_order_value": round(revenue["average"], 2),
            "recent_orders": [
                {
                    "id": str(o["_id"]),
                    "user": owners[o["user_id"]]["name"] if o["user_id"] in owners else None,
                    "total_amount": o["total_amount"],
                    "status": o["status"],
                    "created_at": o.get("created_at"),
                }
                for o in recent
            ],
            "top_products": [
                {
                    "product_id": row["_id"],
                    "name": row.get("name"),
                    "total_sold": row["total_sold"],
                    "revenue": round(row["revenue"], 2),
                }
                for row in self.orders.top_products(5)
            ],
        }

    def sales_report(self, period: str = "month") -> Dict[str, Any]:
        if period not in PERIODS:
            raise BadRequestError(f"period must be one of: {', '.join(PERIODS)}")
        window, fmt = PERIODS[period]
        end = utc_now()
        if window is None:
            start = end.replace(hour=0, minute=0, second=0, microsecond=0)
        else:
            start = end - window

        buckets: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for order in self.orders.sales_between(start, end):
            key = as_utc(order["created_at"]).strftime(fmt)
            bucket = buckets.setdefault(key, {"date": key, "total_sales": 0.0, "order_count": 0})
            bucket["total_sales"] = round(bucket["total_sales"] + order["total_amount"], 2)
            bucket["order_count"] += 1
        return {
            "period": period,
            "date_range": {"start": start, "end": end},
            "data": list(buckets.values()),
        }
