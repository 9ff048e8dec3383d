from datetime import date
from decimal import Decimal

from httpx import AsyncClient


class TestPaymentsApi:
    async def test_record_payment(self, client: AsyncClient, student, make_obligation):
        obligation = await make_obligation(student, "5000.00", due_date=date(2024, 3, 1))

        response = await client.post(
            "/api/v1/schools/1/payments",
            json={
                "student_id": student.id,
                "amount": "6000.00",
                "payment_method": "cash",
                "payment_date": "2024-02-04",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Payment recorded successfully"
        data = body["data"]
        assert data["payment"]["payment_reference"] == "PAY2402040001"
        assert data["allocations"][0]["obligation_id"] == obligation.id
        assert Decimal(data["allocations"][0]["allocated_amount"]) == Decimal("5000.00")
        assert Decimal(data["unallocated_amount"]) == Decimal("1000.00")

    async def test_replay_message(self, client: AsyncClient, student):
        body = {
            "student_id": student.id,
            "amount": "10",
            "payment_method": "online",
            "payment_date": "2024-02-04",
            "transaction_reference": "TX-API",
        }

        await client.post("/api/v1/schools/1/payments", json=body)
        response = await client.post("/api/v1/schools/1/payments", json=body)

        assert response.status_code == 201
        assert response.json()["message"] == "Payment already recorded"
        assert response.json()["data"]["replayed"] is True

    async def test_unknown_student_is_404(self, client: AsyncClient, student):
        response = await client.post(
            "/api/v1/schools/2/payments",
            json={
                "student_id": student.id,
                "amount": "10",
                "payment_method": "cash",
                "payment_date": "2024-02-04",
            },
        )

        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_non_positive_amount_is_422(self, client: AsyncClient, student):
        response = await client.post(
            "/api/v1/schools/1/payments",
            json={
                "student_id": student.id,
                "amount": "0",
                "payment_method": "cash",
                "payment_date": "2024-02-04",
            },
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "amount"

    async def test_verify_and_cancel_rules(self, client: AsyncClient, student):
        created = await client.post(
            "/api/v1/schools/1/payments",
            json={
                "student_id": student.id,
                "amount": "10",
                "payment_method": "bank_transfer",
                "payment_date": "2024-02-04",
            },
        )
        payment_id = created.json()["data"]["payment"]["id"]

        verified = await client.post(
            f"/api/v1/schools/1/payments/{payment_id}/verify", json={"verified_by_id": 4}
        )
        cancelled = await client.post(
            f"/api/v1/schools/1/payments/{payment_id}/cancel", json={"reason": "Too late"}
        )

        assert verified.status_code == 200
        assert verified.json()["data"]["payment_status"] == "completed"
        assert cancelled.status_code == 422

    async def test_get_and_list(self, client: AsyncClient, student):
        created = await client.post(
            "/api/v1/schools/1/payments",
            json={
                "student_id": student.id,
                "amount": "25",
                "payment_method": "bank_transfer",
                "payment_date": "2024-02-04",
            },
        )
        payment_id = created.json()["data"]["payment"]["id"]

        detail = await client.get(f"/api/v1/schools/1/payments/{payment_id}")
        pending = await client.get("/api/v1/schools/1/payments", params={"status": "pending"})
        missing = await client.get("/api/v1/schools/1/payments/9999")

        assert Decimal(detail.json()["data"]["unallocated_amount"]) == Decimal("25.00")
        assert [p["id"] for p in pending.json()["data"]["items"]] == [payment_id]
        assert pending.json()["data"]["total"] == 1
        assert missing.status_code == 404

    async def test_statistics(self, client: AsyncClient, student):
        for amount, method in (("25", "cash"), ("75", "mobile_money")):
            await client.post(
                "/api/v1/schools/1/payments",
                json={
                    "student_id": student.id,
                    "amount": amount,
                    "payment_method": method,
                    "payment_date": "2024-02-04",
                },
            )

        response = await client.get(
            "/api/v1/schools/1/payments/statistics",
            params={"start_date": "2024-02-01", "end_date": "2024-02-29"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_payments"] == 2
        assert Decimal(data["total_amount"]) == Decimal("100.00")
        assert data["by_method"]["mobile_money"]["count"] == 1
        assert data["by_status"]["pending"]["count"] == 1


class TestObligationsApi:
    async def test_discount_and_summary(self, client: AsyncClient, student, make_obligation):
        obligation = await make_obligation(student, "1000.00")

        discounted = await client.post(
            f"/api/v1/schools/1/obligations/{obligation.id}/discount",
            json={"amount": "250.00", "discount_type": "bursary", "reason": "Merit"},
        )
        summary = await client.get(f"/api/v1/schools/1/students/{student.id}/fee-summary")

        assert discounted.status_code == 200
        assert Decimal(discounted.json()["data"]["balance"]) == Decimal("750.00")
        assert Decimal(summary.json()["data"]["total_discount"]) == Decimal("250.00")
        assert summary.json()["data"]["payment_status"] == "pending"

    async def test_generate_from_fee_structures(self, client: AsyncClient, student):
        structure = await client.post(
            "/api/v1/schools/1/fee-structures",
            json={"name": "Term 2 Tuition", "category_code": "TUITION", "amount": "12000"},
        )
        structure_id = structure.json()["data"]["id"]

        generated = await client.post(
            "/api/v1/schools/1/obligations/generate",
            json={"student_id": student.id, "fee_structure_ids": [structure_id]},
        )
        outstanding = await client.get(
            f"/api/v1/schools/1/students/{student.id}/obligations",
            params={"outstanding_only": True},
        )

        assert generated.status_code == 201
        assert generated.json()["message"] == "Generated 1 obligations"
        assert len(outstanding.json()["data"]) == 1

    async def test_obligation_of_other_school_is_404(
        self, client: AsyncClient, student, make_obligation
    ):
        obligation = await make_obligation(student, "100.00")

        response = await client.get(f"/api/v1/schools/2/obligations/{obligation.id}")

        assert response.status_code == 404

    async def test_outstanding_route(self, client: AsyncClient, student, make_obligation):
        overdue = await make_obligation(
            student, "200.00", due_date=date(2024, 1, 1), is_overdue=True, overdue_days=10
        )
        await make_obligation(student, "300.00")

        everything = await client.get("/api/v1/schools/1/obligations/outstanding")
        overdue_only = await client.get(
            "/api/v1/schools/1/obligations/outstanding", params={"overdue_only": True}
        )

        assert everything.status_code == 200
        assert len(everything.json()["data"]) == 2
        rows = overdue_only.json()["data"]
        assert [r["obligation_id"] for r in rows] == [overdue.id]
        assert rows[0]["student_name"] == "Amina Otieno"

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.json() == {"status": "healthy"}
