"""Shared pytest fixtures: an in-process fake marketplace backend."""
from __future__ import annotations

from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient

from agromarket.core.session import SessionContext
from agromarket.integrations.marketplace_api import MarketplaceApi

TOKEN = "test-token"

PRODUCTS = {
    1: {
        "id": 1,
        "name": "Dairy Meal 70kg",
        "price": "500",
        "quantity": 10,
        "provider_id": 7,
        "shop_name": "Green Agrovet",
        "category": "feeds",
        "image_url": "/uploads/dairy.png",
    },
    2: {
        "id": 2,
        "name": "Dewormer 1L",
        "price": "1200",
        "quantity": 3,
        "provider_id": 7,
        "shop_name": "Green Agrovet",
        "category": "drugs",
    },
    3: {
        "id": 3,
        "name": "Mineral Lick",
        "price": "350",
        "quantity": 20,
        "provider_id": 9,
        "shop_name": "Valley Vet Supplies",
        "category": "feeds",
    },
}


class FakeBackend:
    """Stateful stand-in for the marketplace REST backend."""

    def __init__(self) -> None:
        self.products = {pid: dict(p) for pid, p in PRODUCTS.items()}
        self.cart: list[dict[str, Any]] = []
        self.orders: dict[int, dict[str, Any]] = {}
        self.requests: list[dict[str, Any]] = []
        self.initialize_responses: list[tuple[int, Any]] = []
        self.verify_responses: list[tuple[int, Any]] = []
        self.reinitialize_responses: list[tuple[int, Any]] = []
        self.seller_id = 7
        self._next_line_id = 1
        self._next_order_id = 100

    # helpers -------------------------------------------------------------

    def add_order(self, items: list[dict[str, Any]], **fields: Any) -> dict[str, Any]:
        order_id = fields.pop("id", None) or self._next_order_id
        self._next_order_id = max(self._next_order_id, order_id) + 1
        lines = []
        for index, item in enumerate(items, start=1):
            lines.append(
                {
                    "id": order_id * 10 + index,
                    "order_id": order_id,
                    "product_id": item["product_id"],
                    "qty": item["qty"],
                    "price": str(item["price"]),
                    "name": item.get("name", f"Product {item['product_id']}"),
                    "image_url": None,
                    "provider_id": item.get("provider_id"),
                }
            )
        order = {
            "id": order_id,
            "user_id": 42,
            "total": str(sum(float(line["price"]) * line["qty"] for line in lines)),
            "status": "pending",
            "payment_ref": None,
            "created_at": "2025-03-01T09:30:00Z",
            "items": lines,
            "buyer": {"name": "Jane Wanjiku", "phone": "0712345678"},
        }
        order.update(fields)
        self.orders[order["id"]] = order
        return order

    def _order_from_cart(self, **fields: Any) -> dict[str, Any]:
        items = [
            {
                "product_id": line["product_id"],
                "qty": line["qty"],
                "price": line["price"],
                "name": line["name"],
                "provider_id": line["provider_id"],
            }
            for line in self.cart
        ]
        return self.add_order(items, **fields)

    def _record(self, request: web.Request, body: Any) -> None:
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "query": dict(request.query),
                "body": body,
                "headers": request.headers.copy(),
            }
        )

    @staticmethod
    def _reply(queue: list[tuple[int, Any]], default: Any) -> web.Response:
        if queue:
            status, body = queue.pop(0)
            return web.json_response(body, status=status)
        return web.json_response(default)

    # app -----------------------------------------------------------------

    def make_app(self) -> web.Application:
        @web.middleware
        async def auth(request: web.Request, handler):
            body = None
            if request.can_read_body:
                body = await request.json()
            self._record(request, body)
            if request.headers.get("Authorization") != f"Bearer {TOKEN}":
                return web.json_response({"error": "Unauthorized"}, status=401)
            request["body"] = body
            return await handler(request)

        async def get_cart(request: web.Request) -> web.Response:
            return web.json_response(self.cart)

        async def add_to_cart(request: web.Request) -> web.Response:
            body = request["body"]
            product = self.products.get(body["product_id"])
            if product is None:
                return web.json_response({"error": "Product not found"}, status=404)
            vendors = {line["provider_id"] for line in self.cart}
            if vendors and product["provider_id"] not in vendors:
                return web.json_response(
                    {"error": "Cart already contains items from another shop"}, status=409
                )
            for line in self.cart:
                if line["product_id"] == product["id"]:
                    line["qty"] += body["qty"]
                    return web.json_response({"message": "Cart updated"})
            self.cart.append(
                {
                    "id": self._next_line_id,
                    "product_id": product["id"],
                    "qty": body["qty"],
                    "name": product["name"],
                    "price": product["price"],
                    "image_url": product.get("image_url"),
                    "stock": product["quantity"],
                    "provider_id": product["provider_id"],
                    "shop_name": product["shop_name"],
                }
            )
            self._next_line_id += 1
            return web.json_response({"message": "Added to cart"}, status=201)

        async def update_cart_item(request: web.Request) -> web.Response:
            line_id = int(request.match_info["item_id"])
            for line in self.cart:
                if line["id"] == line_id:
                    line["qty"] = request["body"]["qty"]
                    return web.json_response({"message": "Cart updated"})
            return web.json_response({"error": "Cart item not found"}, status=404)

        async def remove_cart_item(request: web.Request) -> web.Response:
            line_id = int(request.match_info["item_id"])
            self.cart = [line for line in self.cart if line["id"] != line_id]
            return web.json_response({"message": "Removed"})

        async def clear_cart(request: web.Request) -> web.Response:
            self.cart = []
            return web.json_response({"message": "Cart cleared"})

        async def checkout(request: web.Request) -> web.Response:
            if not self.cart:
                return web.json_response({"error": "Cart is empty"}, status=400)
            order = self._order_from_cart(status="completed")
            self.cart = []
            return web.json_response({"message": "Order placed", "order": order}, status=201)

        async def paystack_initialize(request: web.Request) -> web.Response:
            order = self._order_from_cart(payment_ref=f"ref_{self._next_order_id}")
            default = {
                "status": True,
                "data": {
                    "authorization_url": f"https://checkout.paystack.com/{order['payment_ref']}",
                    "reference": order["payment_ref"],
                },
            }
            return self._reply(self.initialize_responses, default)

        async def paystack_verify(request: web.Request) -> web.Response:
            reference = request["body"]["reference"]
            order = next(
                (o for o in self.orders.values() if o.get("payment_ref") == reference), None
            )
            if self.verify_responses:
                return self._reply(self.verify_responses, None)
            if order is None:
                return web.json_response({"error": "Reference not found"}, status=404)
            order["status"] = "completed"
            self.cart = []
            return web.json_response(
                {"message": "Payment verified", "data": {"status": "success"}, "order": order}
            )

        async def paystack_reinitialize(request: web.Request) -> web.Response:
            order = self.orders.get(request["body"]["order_id"])
            if order is None:
                return web.json_response({"error": "Order not found"}, status=404)
            default = {"authorization_url": f"https://checkout.paystack.com/re_{order['id']}"}
            return self._reply(self.reinitialize_responses, default)

        async def list_orders(request: web.Request) -> web.Response:
            return web.json_response(list(self.orders.values()))

        async def get_order(request: web.Request) -> web.Response:
            order = self.orders.get(int(request.match_info["order_id"]))
            if order is None:
                return web.json_response({"error": "Order not found"}, status=404)
            return web.json_response(order)

        def _seller_view(order: dict[str, Any]) -> dict[str, Any]:
            view = dict(order)
            view["items"] = [
                {k: v for k, v in item.items() if k != "provider_id"}
                for item in order["items"]
                if item.get("provider_id") == self.seller_id
            ]
            return view

        async def seller_orders(request: web.Request) -> web.Response:
            rows = [
                _seller_view(o)
                for o in self.orders.values()
                if any(i.get("provider_id") == self.seller_id for i in o["items"])
            ]
            return web.json_response(rows)

        async def seller_order(request: web.Request) -> web.Response:
            order = self.orders.get(int(request.match_info["order_id"]))
            if order is None:
                return web.json_response({"error": "Order not found"}, status=404)
            return web.json_response(_seller_view(order))

        async def seller_order_status(request: web.Request) -> web.Response:
            order = self.orders.get(int(request.match_info["order_id"]))
            if order is None:
                return web.json_response({"error": "Order not found"}, status=404)
            order["status"] = request["body"]["status"]
            return web.json_response({"message": "Status updated", "order": _seller_view(order)})

        async def products(request: web.Request) -> web.Response:
            rows = list(self.products.values())
            provider = request.query.get("provider_id")
            if provider:
                rows = [p for p in rows if str(p["provider_id"]) == provider]
            category = request.query.get("category")
            if category:
                rows = [p for p in rows if p["category"] == category]
            search = request.query.get("search")
            if search:
                rows = [p for p in rows if search.lower() in p["name"].lower()]
            page = int(request.query.get("page", 1))
            limit = int(request.query.get("limit", 12))
            start = (page - 1) * limit
            return web.json_response({"data": rows[start : start + limit], "total": len(rows)})

        app = web.Application(middlewares=[auth])
        app.router.add_get("/agro/cart", get_cart)
        app.router.add_post("/agro/cart/add", add_to_cart)
        app.router.add_put(r"/agro/cart/{item_id:\d+}", update_cart_item)
        app.router.add_delete(r"/agro/cart/{item_id:\d+}", remove_cart_item)
        app.router.add_delete("/agro/cart", clear_cart)
        app.router.add_post("/agro/orders/checkout", checkout)
        app.router.add_post("/agro/orders/paystack/initialize", paystack_initialize)
        app.router.add_post("/agro/orders/paystack/verify", paystack_verify)
        app.router.add_post("/agro/orders/paystack/reinitialize", paystack_reinitialize)
        app.router.add_get("/agro/orders/seller", seller_orders)
        app.router.add_get(r"/agro/orders/seller/{order_id:\d+}", seller_order)
        app.router.add_patch(r"/agro/orders/seller/{order_id:\d+}/status", seller_order_status)
        app.router.add_get("/agro/orders", list_orders)
        app.router.add_get(r"/agro/orders/{order_id:\d+}", get_order)
        app.router.add_get("/agro/products", products)
        return app


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
async def backend_client(aiohttp_client, backend: FakeBackend) -> TestClient:
    return await aiohttp_client(backend.make_app())


@pytest.fixture()
def buyer_context() -> SessionContext:
    return SessionContext(token=TOKEN, user_id=42, role="farmer")


@pytest.fixture()
def vendor_context() -> SessionContext:
    return SessionContext(token=TOKEN, user_id=5, role="agrovet", provider_id=7)


@pytest.fixture()
async def api(backend_client: TestClient, buyer_context: SessionContext):
    client = MarketplaceApi(
        buyer_context, base_url=str(backend_client.make_url("/")), prefix="/agro"
    )
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture()
async def vendor_api(backend_client: TestClient, vendor_context: SessionContext):
    client = MarketplaceApi(
        vendor_context, base_url=str(backend_client.make_url("/")), prefix="/agro"
    )
    try:
        yield client
    finally:
        await client.close()
