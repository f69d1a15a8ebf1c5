"""HTTP surface: status codes, payload validation and error bodies."""

from conftest import row_counts, stock_of


def _create_sale(client, operator, product, quantity, **extra):
    payload = {
        "user_id": operator.id,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": "2.50"}],
        "total_amount": "25.00",
    }
    payload.update(extra)
    return client.post("/api/transactions", json=payload)


class TestHealth:
    def test_health_reports_database(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["database"]["details"]["products"] == 0


class TestInventoryRoutes:
    def test_record_movement(self, client, make_product):
        product = make_product(stock=10)

        response = client.post("/api/inventory/movements", json={
            "product_id": product.id,
            "movement_type": "out",
            "quantity": 4,
            "notes": "sample",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["movement"]["quantity"] == -4
        assert body["movement"]["movement_type"] == "out"
        assert body["stock_quantity"] == 6
        assert stock_of(product.id) == 6

    def test_insufficient_stock_is_409(self, client, make_product):
        product = make_product(stock=70)

        response = client.post("/api/inventory/movements", json={
            "product_id": product.id,
            "movement_type": "out",
            "quantity": 200,
        })

        assert response.status_code == 409
        body = response.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["current_stock"] == 70
        assert body["details"]["requested_delta"] == -200
        assert stock_of(product.id) == 70

    def test_unknown_product_is_404(self, client, db_session):
        response = client.post("/api/inventory/movements", json={
            "product_id": 404,
            "movement_type": "in",
            "quantity": 1,
        })

        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"

    def test_missing_and_unknown_fields_are_400(self, client, db_session):
        missing = client.post("/api/inventory/movements", json={"product_id": 1, "quantity": 1})
        unknown = client.post("/api/inventory/movements", json={
            "product_id": 1, "movement_type": "in", "quantity": 1, "stock_quantity": 5,
        })
        decimal_quantity = client.post("/api/inventory/movements", json={
            "product_id": 1, "movement_type": "in", "quantity": 1.5,
        })

        assert missing.status_code == 400
        assert missing.get_json()["details"]["field"] == "movement_type"
        assert unknown.status_code == 400
        assert unknown.get_json()["details"]["field"] == "stock_quantity"
        assert decimal_quantity.status_code == 400

    def test_manual_adjustment(self, client, make_product):
        product = make_product(stock=70)

        response = client.post("/api/inventory/adjust", json={
            "product_id": product.id,
            "quantity": -15,
            "notes": "damage",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["movement"]["reference_type"] == "manual"
        assert body["movement"]["quantity"] == -15
        assert body["stock_quantity"] == 55

    def test_list_movements_with_filters(self, client, make_product):
        widget = make_product(stock=10, name="Widget")
        gadget = make_product(stock=10, name="Gadget")
        client.post("/api/inventory/adjust", json={"product_id": widget.id, "quantity": 3})
        client.post("/api/inventory/adjust", json={"product_id": gadget.id, "quantity": -2})
        client.post("/api/inventory/adjust", json={"product_id": widget.id, "quantity": -1})

        response = client.get(f"/api/inventory/movements?product_id={widget.id}&order_direction=asc")

        assert response.status_code == 200
        rows = response.get_json()["movements"]
        assert [(r["product_name"], r["quantity"]) for r in rows] == [("Widget", 3), ("Widget", -1)]

        paged = client.get("/api/inventory/movements?limit=1&offset=1").get_json()["movements"]
        assert [r["quantity"] for r in paged] == [-2]

    def test_list_movements_bad_query(self, client, db_session):
        assert client.get("/api/inventory/movements?limit=abc").status_code == 400
        assert client.get("/api/inventory/movements?order_by=notes").status_code == 400
        assert client.get("/api/inventory/movements?start_date=not-a-date").status_code == 400

    def test_product_movements_and_stock(self, client, make_product):
        product = make_product(stock=40)
        client.post("/api/inventory/adjust", json={"product_id": product.id, "quantity": -5})

        movements = client.get(f"/api/inventory/products/{product.id}/movements")
        stock = client.get(f"/api/inventory/products/{product.id}/stock")

        assert movements.status_code == 200
        assert [m["quantity"] for m in movements.get_json()["movements"]] == [-5]
        assert stock.get_json() == {
            "product_id": product.id,
            "stock_quantity": 35,
            "opening_stock": 40,
            "ledger_balance": -5,
            "consistent": True,
        }
        assert client.get("/api/inventory/products/999/stock").status_code == 404

    def test_bad_reference_fields_are_400(self, client, make_product):
        product = make_product(stock=10)
        base = {"product_id": product.id, "movement_type": "in", "quantity": 1}

        bad_notes = client.post("/api/inventory/movements", json={**base, "notes": {"a": 1}})
        bad_type = client.post("/api/inventory/movements", json={**base, "reference_type": ["x"]})
        bad_id = client.post("/api/inventory/movements", json={**base, "reference_id": "abc"})

        for response, field in ((bad_notes, "notes"), (bad_type, "reference_type"), (bad_id, "reference_id")):
            assert response.status_code == 400
            assert response.get_json()["kind"] == "invalid_input"
            assert response.get_json()["details"]["field"] == field
        assert stock_of(product.id) == 10

    def test_oversized_quantity_is_400(self, client, make_product):
        product = make_product(stock=10)

        response = client.post("/api/inventory/adjust", json={"product_id": product.id, "quantity": 10**20})

        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "quantity"
        assert stock_of(product.id) == 10


class TestTransactionRoutes:
    def test_create_sale(self, client, operator, make_product):
        product = make_product(stock=100)

        response = _create_sale(client, operator, product, 10, discount_amount="5.00", payment_method="cash")

        assert response.status_code == 201
        tx = response.get_json()["transaction"]
        assert tx["status"] == "completed"
        assert tx["total_amount"] == "25.00"
        assert tx["final_amount"] == "20.00"
        assert tx["items"][0]["quantity"] == 10
        assert tx["items"][0]["total_price"] == "25.00"
        assert stock_of(product.id) == 90

    def test_create_sale_string_ids_are_coerced(self, client, operator, make_product):
        product = make_product(stock=5)

        response = client.post("/api/transactions", json={
            "user_id": str(operator.id),
            "items": [{"product_id": str(product.id), "quantity": "2", "unit_price": 1}],
            "total_amount": 2,
        })

        assert response.status_code == 201
        assert stock_of(product.id) == 3

    def test_short_sale_is_409_and_writes_nothing(self, client, operator, make_product):
        product = make_product(stock=3)

        response = _create_sale(client, operator, product, 4)

        assert response.status_code == 409
        assert response.get_json()["details"]["product_id"] == product.id
        assert row_counts() == {"transactions": 0, "transaction_items": 0, "inventory_movements": 0}
        assert stock_of(product.id) == 3

    def test_sale_of_unknown_product_is_404(self, client, operator, db_session):
        response = client.post("/api/transactions", json={
            "user_id": operator.id,
            "items": [{"product_id": 31337, "quantity": 1, "unit_price": 1}],
            "total_amount": 1,
        })

        assert response.status_code == 404
        assert row_counts()["transactions"] == 0

    def test_create_sale_requires_fields(self, client, db_session):
        response = client.post("/api/transactions", json={"items": []})

        assert response.status_code == 400
        assert response.get_json()["kind"] == "invalid_input"

    def test_status_round_trip(self, client, operator, make_product):
        product = make_product(stock=100)
        tx_id = _create_sale(client, operator, product, 30).get_json()["transaction"]["id"]

        cancelled = client.patch(f"/api/transactions/{tx_id}", json={"status": "cancelled"})
        assert cancelled.status_code == 200
        assert cancelled.get_json()["transaction"]["status"] == "cancelled"
        assert stock_of(product.id) == 100

        completed = client.patch(f"/api/transactions/{tx_id}", json={"status": "completed"})
        assert completed.status_code == 200
        assert stock_of(product.id) == 70

    def test_patch_recomputes_final_amount(self, client, operator, make_product):
        product = make_product(stock=100)
        tx_id = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]

        response = client.patch(f"/api/transactions/{tx_id}", json={"discount_amount": "7.50"})

        assert response.status_code == 200
        assert response.get_json()["transaction"]["final_amount"] == "17.50"

    def test_patch_rejects_unknown_fields_and_missing_rows(self, client, operator, make_product):
        product = make_product(stock=100)
        tx_id = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]

        assert client.patch(f"/api/transactions/{tx_id}", json={"final_amount": "1.00"}).status_code == 400
        assert client.patch("/api/transactions/9999", json={"notes": "x"}).status_code == 404

    def test_get_and_list(self, client, operator, make_product):
        product = make_product(stock=100)
        first = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]
        second = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]
        client.patch(f"/api/transactions/{first}", json={"status": "cancelled"})

        single = client.get(f"/api/transactions/{second}")
        assert single.status_code == 200
        assert len(single.get_json()["transaction"]["items"]) == 1
        assert client.get("/api/transactions/9999").status_code == 404

        listed = client.get("/api/transactions").get_json()["transactions"]
        assert [t["id"] for t in listed] == [second, first]

        cancelled = client.get("/api/transactions?status=cancelled").get_json()["transactions"]
        assert [t["id"] for t in cancelled] == [first]

        assert client.get("/api/transactions?status=bogus").status_code == 400

    def test_get_includes_customer_user_and_product(self, client, operator, customer, make_product):
        product = make_product(stock=10, name="Widget")
        tx_id = _create_sale(client, operator, product, 1, customer_id=customer.id).get_json()["transaction"]["id"]

        tx = client.get(f"/api/transactions/{tx_id}").get_json()["transaction"]

        assert tx["customer"]["name"] == "Ada Buyer"
        assert tx["user"]["username"] == "cashier"
        assert tx["items"][0]["product"]["name"] == "Widget"
        assert tx["items"][0]["product"]["sku"] == product.sku

    def test_list_filters_and_paging(self, client, operator, customer, make_product):
        product = make_product(stock=100)
        first = _create_sale(client, operator, product, 1, customer_id=customer.id).get_json()["transaction"]["id"]
        second = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]
        third = _create_sale(client, operator, product, 1).get_json()["transaction"]["id"]

        by_customer = client.get(f"/api/transactions?customer_id={customer.id}").get_json()["transactions"]
        by_user = client.get(f"/api/transactions?user_id={operator.id}&limit=2").get_json()["transactions"]
        page_two = client.get("/api/transactions?limit=2&offset=2").get_json()["transactions"]

        assert [t["id"] for t in by_customer] == [first]
        assert [t["id"] for t in by_user] == [third, second]
        assert [t["id"] for t in page_two] == [first]
        assert client.get("/api/transactions?limit=0").status_code == 400
        assert client.get("/api/transactions?customer_id=abc").status_code == 400
