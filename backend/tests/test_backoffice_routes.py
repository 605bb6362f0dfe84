# Overview: Pytest coverage for operator routes (fiscal jobs, shift, credits, expenses) and /health.

from posledger.models import CustomerCredit, Expense, Organization
from posledger.services import credit_service, expense_service, fiscal_job_service, goods_receipt_service


class TestTenantHeader:
    def test_missing_header_rejected(self, client, db_session):
        response = client.get('/api/fiscal/jobs')
        assert response.status_code == 400

    def test_malformed_header_rejected(self, client, db_session):
        response = client.get('/api/fiscal/jobs', headers={'X-Org-Id': 'acme'})
        assert response.status_code == 400

    def test_unknown_org_not_found(self, client, db_session):
        response = client.get('/api/fiscal/jobs', headers={'X-Org-Id': '9999'})
        assert response.status_code == 404

    def test_inactive_org_not_found(self, client, db_session, org_a, org_headers_a):
        org = db_session.get(Organization, org_a.id)
        org.is_active = False
        db_session.commit()

        response = client.get('/api/fiscal/jobs', headers=org_headers_a)
        assert response.status_code == 404


class TestFiscalRoutes:
    def test_list_jobs_scoped_to_tenant(self, client, db_session, org_a, org_b, org_headers_a):
        mine = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status")
        fiscal_job_service.enqueue(org_id=org_b.id, operation_type="shift_status")

        response = client.get('/api/fiscal/jobs', headers=org_headers_a)

        assert response.status_code == 200
        assert [j["id"] for j in response.json["jobs"]] == [mine.id]
        assert response.json["stats"]["pending"] == 1
        assert response.json["stats"]["failed"] == 0

    def test_invalid_status_filter(self, client, db_session, org_headers_a):
        response = client.get('/api/fiscal/jobs?status=lost', headers=org_headers_a)
        assert response.status_code == 400

    def test_other_tenant_job_not_found(self, client, db_session, org_b, org_headers_a):
        job = fiscal_job_service.enqueue(org_id=org_b.id, operation_type="shift_status")

        response = client.get(f'/api/fiscal/jobs/{job.id}', headers=org_headers_a)
        assert response.status_code == 404

    def test_queue_shift_open(self, client, db_session, printer_a, org_headers_a):
        response = client.post('/api/fiscal/shift/open', headers=org_headers_a)

        assert response.status_code == 202
        assert response.json["job"]["operation_type"] == "shift_open"
        assert response.json["job"]["status"] == "pending"

    def test_unknown_shift_operation(self, client, db_session, printer_a, org_headers_a):
        response = client.post('/api/fiscal/shift/reboot', headers=org_headers_a)
        assert response.status_code == 404

    def test_shift_without_printer(self, client, db_session, org_headers_a):
        response = client.post('/api/fiscal/shift/open', headers=org_headers_a)
        assert response.status_code == 400

    def test_cached_shift_state(self, client, db_session, printer_a, org_headers_a):
        response = client.get('/api/fiscal/shift', headers=org_headers_a)

        assert response.status_code == 200
        assert response.json["shift_open"] is False

    def test_shift_refresh_queues_status_job(self, client, db_session, printer_a, org_headers_a):
        response = client.get('/api/fiscal/shift?refresh=1', headers=org_headers_a)

        assert response.status_code == 200
        job = fiscal_job_service.get_job(response.json["status_job_id"])
        assert job.operation_type == "shift_status"


class TestCreditRoutes:
    def test_list_with_summary(self, client, db_session, org_a, customer_a, org_headers_a):
        credit = credit_service.create_credit(
            CustomerCredit, org_id=org_a.id, counterparty_id=customer_a.id, amount_cents=1000,
        )
        credit_service.add_payment(CustomerCredit, credit.id, 300, org_id=org_a.id)

        response = client.get('/api/credits/customer', headers=org_headers_a)

        assert response.status_code == 200
        assert len(response.json["credits"]) == 1
        summary = response.json["summary"]
        assert summary["total_amount_cents"] == 1000
        assert summary["total_remaining_cents"] == 700
        assert summary["by_status"]["partial"] == 1

    def test_credit_detail_reports_history_consistency(self, client, db_session, org_a, customer_a, org_headers_a):
        credit = credit_service.create_credit(
            CustomerCredit, org_id=org_a.id, counterparty_id=customer_a.id, amount_cents=1000,
        )
        credit_service.add_payment(CustomerCredit, credit.id, 1000, org_id=org_a.id)

        response = client.get(f'/api/credits/customer/{credit.id}', headers=org_headers_a)

        assert response.status_code == 200
        assert response.json["credit"]["status"] == "paid"
        assert response.json["credit"]["history_consistent"] is True

    def test_payment_entry_detail_is_consistent(self, client, db_session, org_a, customer_a, org_headers_a):
        credit = credit_service.create_credit(
            CustomerCredit, org_id=org_a.id, counterparty_id=customer_a.id, amount_cents=400,
            entry_type="payment",
        )

        response = client.get(f'/api/credits/customer/{credit.id}', headers=org_headers_a)

        assert response.status_code == 200
        assert response.json["credit"]["history_consistent"] is True

    def test_other_tenant_credit_not_found(self, client, db_session, org_b, customer_a, org_headers_a):
        credit = credit_service.create_credit(
            CustomerCredit, org_id=org_b.id, counterparty_id=customer_a.id, amount_cents=500,
        )

        response = client.get(f'/api/credits/customer/{credit.id}', headers=org_headers_a)
        assert response.status_code == 404

    def test_invalid_kind(self, client, db_session, org_headers_a):
        response = client.get('/api/credits/vendor', headers=org_headers_a)
        assert response.status_code == 404


class TestExpenseRoutes:
    def test_delete_reverses_supplier_payment(self, client, db_session, org_a, supplier_a, org_headers_a):
        receipt = goods_receipt_service.create_goods_receipt(
            org_id=org_a.id, supplier_id=supplier_a.id, total_cost_cents=1000, invoice_number="INV-7",
        )
        expense = expense_service.pay_goods_receipt(org_id=org_a.id, receipt_id=receipt.id, amount_cents=1000)

        response = client.delete(f'/api/expenses/{expense.id}', headers=org_headers_a)

        assert response.status_code == 200
        deleted = response.json["deleted"]
        assert deleted["reversed_cents"] == 1000
        assert deleted["credit_status"] == "pending"
        assert deleted["receipt_payment_status"] == "unpaid"
        assert db_session.query(Expense).count() == 0

    def test_get_expense(self, client, db_session, org_a, org_headers_a):
        expense = expense_service.create_expense(org_id=org_a.id, amount_cents=2500, description="Rent")

        response = client.get(f'/api/expenses/{expense.id}', headers=org_headers_a)

        assert response.status_code == 200
        assert response.json["expense"]["reference_number"] == expense.reference_number

    def test_delete_unknown_expense(self, client, db_session, org_headers_a):
        response = client.delete('/api/expenses/4242', headers=org_headers_a)
        assert response.status_code == 404

    def test_other_tenant_cannot_delete(self, client, db_session, org_b, org_headers_a):
        expense = expense_service.create_expense(org_id=org_b.id, amount_cents=100, description="Taxi")

        response = client.delete(f'/api/expenses/{expense.id}', headers=org_headers_a)

        assert response.status_code == 404
        assert db_session.query(Expense).count() == 1


class TestHealth:
    def test_healthy(self, client, db_session):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_failed_job_degrades_queue(self, client, db_session, org_a):
        job = fiscal_job_service.enqueue(org_id=org_a.id, operation_type="shift_status")
        fiscal_job_service.pick_up(job.id)
        fiscal_job_service.fail(job.id, "Printer offline", is_retriable=False)

        response = client.get('/health')

        assert response.status_code == 200
        assert response.json["status"] == "degraded"
        assert response.json["checks"]["fiscal_queue"]["details"]["failed_jobs"] == 1
