"""
Integration tests for the /api/admin endpoints.

The backend client is a ``MagicMock``; requests go through the full FastAPI
stack (auth gate, validation, exception handlers).
"""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from conftest import ALLOWLISTED_EMAIL, make_settings
from regadmin.clients.backend_client import (
    BackendError,
    BackendUnavailableError,
    InvalidTokenError,
)
from regadmin.main import create_app

REGISTRATIONS = "product_registrations"
COMPANIES = "companies"


# =============================================================================
# Health / error shape
# =============================================================================


def test_health_needs_no_auth(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_backend_error_is_500_with_message(client, mock_backend, admin_headers):
    mock_backend.select.side_effect = BackendError("relation does not exist", status_code=404)

    response = client.get("/api/admin/companies", headers=admin_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "relation does not exist"}


def test_unhandled_exception_is_500(client, mock_backend, admin_headers):
    mock_backend.select.side_effect = RuntimeError("kaboom")

    response = client.get("/api/admin/companies", headers=admin_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "kaboom"}


# =============================================================================
# Auth gate
# =============================================================================


class TestAuthGate:

    def test_no_credentials(self, client, mock_backend):
        response = client.get("/api/admin/companies")

        assert response.status_code == 401
        assert response.json() == {"error": "missing credentials"}
        mock_backend.select.assert_not_called()
        mock_backend.get_user.assert_not_called()

    def test_static_key_header(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = [{"code": "A", "name": "Alpha"}]

        response = client.get("/api/admin/companies", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"rows": [{"code": "A", "name": "Alpha"}]}
        mock_backend.get_user.assert_not_called()

    def test_static_key_query_param(self, client, mock_backend):
        mock_backend.select.return_value = []

        response = client.get("/api/admin/companies", params={"admin_key": "static-admin-key"})

        assert response.status_code == 200

    def test_legacy_key_header(self, client, mock_backend):
        mock_backend.select.return_value = []

        response = client.get("/api/admin/companies", headers={"X-Legacy-Admin-Key": "static-admin-key"})

        assert response.status_code == 200

    def test_wrong_static_key(self, client):
        response = client.get("/api/admin/companies", headers={"X-Admin-Key": "guess"})

        assert response.status_code == 401
        assert response.json() == {"error": "missing credentials"}

    def test_bearer_admin_role_mixed_case(self, client, mock_backend):
        mock_backend.get_user.return_value = {
            "id": "u1",
            "email": "person@example.com",
            "app_metadata": {"role": "Admin"},
        }
        mock_backend.select.return_value = []

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 200
        mock_backend.get_user.assert_called_once_with("tok")

    def test_bearer_allowlisted_email(self, client, mock_backend):
        mock_backend.get_user.return_value = {"id": "u2", "email": ALLOWLISTED_EMAIL.lower()}
        mock_backend.select.return_value = []

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 200

    def test_bearer_non_admin(self, client, mock_backend):
        mock_backend.get_user.return_value = {
            "id": "u3",
            "email": "nobody@example.com",
            "app_metadata": {"role": "viewer"},
        }

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 403
        assert response.json() == {"error": "forbidden"}
        mock_backend.select.assert_not_called()

    def test_bearer_rejected(self, client, mock_backend):
        mock_backend.get_user.side_effect = InvalidTokenError("invalid JWT", status_code=401)

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 401
        assert response.json() == {"error": "invalid token"}

    def test_bearer_without_user(self, client, mock_backend):
        mock_backend.get_user.return_value = None

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 401
        assert response.json() == {"error": "invalid token"}

    def test_identity_service_down(self, client, mock_backend):
        mock_backend.get_user.side_effect = BackendUnavailableError("down", status_code=503)

        response = client.get("/api/admin/companies", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 500
        assert response.json() == {"error": "auth error"}

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/admin/list"),
            ("get", "/api/admin/company-code"),
            ("post", "/api/admin/set-customer-code"),
            ("post", "/api/admin/product"),
            ("delete", "/api/admin/product/1"),
            ("post", "/api/admin/bulk-delete"),
            ("post", "/api/admin/import-csv"),
            ("get", "/api/admin/export"),
        ],
    )
    def test_every_admin_route_is_gated(self, client, mock_backend, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401
        assert mock_backend.method_calls == []


# =============================================================================
# Companies and customer codes
# =============================================================================


class TestCompanies:

    def test_list_companies(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = [{"code": "A", "name": "Alpha"}, {"code": "B", "name": "Beta"}]

        response = client.get("/api/admin/companies", headers=admin_headers)

        assert response.json()["rows"][1] == {"code": "B", "name": "Beta"}
        mock_backend.select.assert_called_once_with(COMPANIES, columns="code,name", order="code.asc")

    def test_company_code_from_rpc(self, client, mock_backend, admin_headers):
        mock_backend.rpc.return_value = {"plain_code": "P-77"}

        response = client.get("/api/admin/company-code", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"plain_code": "P-77"}
        mock_backend.rpc.assert_called_once_with("get_customer_code", {"p_company_code": "ACME"})
        mock_backend.select.assert_not_called()

    def test_company_code_rpc_list_result(self, client, mock_backend, admin_headers):
        mock_backend.rpc.return_value = [{"plain_code": "P-1"}]

        response = client.get("/api/admin/company-code", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"plain_code": "P-1"}

    def test_company_code_fallback(self, client, mock_backend, admin_headers):
        mock_backend.rpc.side_effect = BackendUnavailableError("no function", status_code=404)
        mock_backend.select.return_value = [{"plain_code": "P-9"}]

        response = client.get("/api/admin/company-code", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"plain_code": "P-9"}
        mock_backend.select.assert_called_once_with(
            COMPANIES, columns="plain_code", filters={"code": "ACME"}, limit=1
        )

    def test_company_code_unknown_company(self, client, mock_backend, admin_headers):
        mock_backend.rpc.side_effect = BackendUnavailableError("no function", status_code=404)
        mock_backend.select.return_value = []

        response = client.get("/api/admin/company-code", params={"code": "NOPE"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"plain_code": None}

    def test_set_customer_code(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/set-customer-code",
            json={"company_code": "ACME", "plain_code": "P-1"},
            headers=admin_headers,
        )

        assert response.json() == {"ok": True}
        mock_backend.rpc.assert_called_once_with(
            "set_customer_code", {"p_company_code": "ACME", "p_plain_code": "P-1"}
        )

    def test_set_customer_code_missing_field(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/set-customer-code",
            json={"company_code": "ACME"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "plain_code" in response.json()["error"]
        mock_backend.rpc.assert_not_called()

    def test_set_customer_code_has_no_fallback(self, client, mock_backend, admin_headers):
        mock_backend.rpc.side_effect = BackendUnavailableError("no function", status_code=404)

        response = client.post(
            "/api/admin/set-customer-code",
            json={"company_code": "ACME", "plain_code": "P-1"},
            headers=admin_headers,
        )

        assert response.status_code == 500
        assert response.json() == {"error": "no function"}


# =============================================================================
# Registrations
# =============================================================================


class TestListRegistrations:

    def test_rpc_rows(self, client, mock_backend, admin_headers):
        mock_backend.rpc.return_value = [{"id": 1, "brand_name": "B"}]

        response = client.get("/api/admin/list", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"rows": [{"id": 1, "brand_name": "B"}]}
        mock_backend.rpc.assert_called_once_with("get_company_portal", {"p_plain_code": "ACME"})

    def test_rpc_null_result_is_empty(self, client, mock_backend, admin_headers):
        mock_backend.rpc.return_value = None

        response = client.get("/api/admin/list", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"rows": []}

    def test_fallback_to_table(self, client, mock_backend, admin_headers):
        mock_backend.rpc.side_effect = BackendUnavailableError("no function", status_code=404)
        mock_backend.select.return_value = [{"id": 2}]

        response = client.get("/api/admin/list", params={"code": "ACME"}, headers=admin_headers)

        assert response.json() == {"rows": [{"id": 2}]}
        mock_backend.select.assert_called_once_with(REGISTRATIONS, filters={"company_code": "ACME"})

    def test_real_rpc_error_not_masked(self, client, mock_backend, admin_headers):
        mock_backend.rpc.side_effect = BackendError("permission denied for function", status_code=403)

        response = client.get("/api/admin/list", params={"code": "ACME"}, headers=admin_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "permission denied for function"}
        mock_backend.select.assert_not_called()


class TestUpsertProduct:

    def test_insert_creates_missing_company(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = []
        mock_backend.insert.side_effect = [[{"id": 7}], [{"id": 42}]]

        response = client.post(
            "/api/admin/product",
            json={
                "company_code": " ACME ",
                "company_name": "Acme Ltd",
                "product": {
                    "brand_name": "Sunny",
                    "common_label": "Oil",
                    "registration_date": "5/3/24",
                    "unexpected": "dropped",
                },
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "id": 42}
        company_call, registration_call = mock_backend.insert.call_args_list
        assert company_call.args == (COMPANIES, {"code": "ACME", "name": "Acme Ltd"})
        assert registration_call.args == (
            REGISTRATIONS,
            {
                "company_code": "ACME",
                "company_id": 7,
                "brand_name": "Sunny",
                "common_label": "Oil",
                "registration_date": "2024-03-05",
            },
        )
        assert registration_call.kwargs == {"returning": "id"}

    def test_insert_reuses_existing_company(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = [{"id": 3}]
        mock_backend.insert.return_value = [{"id": 50}]

        response = client.post(
            "/api/admin/product",
            json={"company_code": "ACME", "product": {"brand_name": "B"}},
            headers=admin_headers,
        )

        assert response.json() == {"ok": True, "id": 50}
        mock_backend.insert.assert_called_once()
        assert mock_backend.insert.call_args.args[1]["company_id"] == 3

    def test_company_named_after_code_when_no_name(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = []
        mock_backend.insert.side_effect = [[{"id": 1}], [{"id": 2}]]

        client.post(
            "/api/admin/product",
            json={"company_code": "ACME", "product": {"brand_name": "B"}},
            headers=admin_headers,
        )

        assert mock_backend.insert.call_args_list[0].args == (COMPANIES, {"code": "ACME", "name": "ACME"})

    def test_insert_without_company(self, client, mock_backend, admin_headers):
        mock_backend.insert.return_value = [{"id": 5}]

        response = client.post("/api/admin/product", json={"product": {"brand_name": "B"}}, headers=admin_headers)

        assert response.json() == {"ok": True, "id": 5}
        mock_backend.select.assert_not_called()
        values = mock_backend.insert.call_args.args[1]
        assert values["company_code"] == ""
        assert values["company_id"] is None

    def test_update_by_id(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/product",
            json={"product": {"id": 42, "brand_name": "New name", "expiry_date": ""}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        mock_backend.update.assert_called_once_with(
            REGISTRATIONS,
            {"brand_name": "New name", "expiry_date": None},
            filters={"id": 42},
        )
        mock_backend.insert.assert_not_called()

    def test_missing_product(self, client, mock_backend, admin_headers):
        response = client.post("/api/admin/product", json={"company_code": "ACME"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"error": "missing product"}
        assert mock_backend.method_calls == []

    def test_bad_date_rejected_before_persistence(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/product",
            json={"company_code": "ACME", "product": {"brand_name": "B", "expiry_date": "next year"}},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "expiry_date" in response.json()["error"]
        assert mock_backend.method_calls == []

    def test_backend_failure(self, client, mock_backend, admin_headers):
        mock_backend.update.side_effect = BackendError("row-level security", status_code=403)

        response = client.post(
            "/api/admin/product",
            json={"product": {"id": "abc", "brand_name": "B"}},
            headers=admin_headers,
        )

        assert response.status_code == 500
        assert response.json() == {"error": "row-level security"}


class TestDelete:

    def test_delete_one(self, client, mock_backend, admin_headers):
        response = client.delete("/api/admin/product/42", headers=admin_headers)

        assert response.json() == {"ok": True}
        mock_backend.delete.assert_called_once_with(REGISTRATIONS, filters={"id": "42"})

    def test_bulk_delete(self, client, mock_backend, admin_headers):
        response = client.post("/api/admin/bulk-delete", json={"ids": [1, 2, "x"]}, headers=admin_headers)

        assert response.json() == {"ok": True}
        mock_backend.delete.assert_called_once_with(REGISTRATIONS, filters={"id": [1, 2, "x"]})

    def test_bulk_delete_empty(self, client, mock_backend, admin_headers):
        response = client.post("/api/admin/bulk-delete", json={"ids": []}, headers=admin_headers)

        assert response.json() == {"ok": True}
        mock_backend.delete.assert_not_called()

    @pytest.mark.parametrize("body", [{"ids": "1,2"}, {}, {"ids": {"a": 1}}])
    def test_bulk_delete_requires_list(self, client, mock_backend, admin_headers, body):
        response = client.post("/api/admin/bulk-delete", json=body, headers=admin_headers)

        assert response.status_code == 400
        assert "ids" in response.json()["error"]
        mock_backend.delete.assert_not_called()


# =============================================================================
# Import / Export
# =============================================================================


CSV_BODY = (
    "brand_name,common_label,registration_date\n"
    "A,Label A,2024-1-2\n"
    ",No brand,\n"
    "B,Label B,3/4/25\n"
).encode("utf-8")


class TestImport:

    def test_import_csv_replace_mode(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY, "text/csv")},
            data={"company_code": "ACME", "replace_mode": "true"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "results": {"total": 2, "success": 2, "failed": 0, "errors": []},
        }
        mock_backend.delete.assert_called_once_with(REGISTRATIONS, filters={"company_code": "ACME"})
        (_, batch), _ = mock_backend.insert.call_args
        assert [r["registration_date"] for r in batch] == ["2024-01-02", "2025-04-03"]

    @pytest.mark.parametrize("flag", ["0", "false", "", "yes"])
    def test_replace_mode_off(self, client, mock_backend, admin_headers, flag):
        client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY, "text/csv")},
            data={"company_code": "ACME", "replace_mode": flag},
            headers=admin_headers,
        )

        mock_backend.delete.assert_not_called()

    def test_replace_mode_one(self, client, mock_backend, admin_headers):
        client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY, "text/csv")},
            data={"company_code": "ACME", "replace_mode": "1"},
            headers=admin_headers,
        )

        mock_backend.delete.assert_called_once()

    def test_failed_batch_reported(self, client, mock_backend, admin_headers):
        mock_backend.insert.side_effect = BackendError("value too long", status_code=400)

        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY, "text/csv")},
            data={"company_code": "ACME"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["results"] == {
            "total": 2, "success": 0, "failed": 2, "errors": ["value too long"],
        }

    def test_import_xlsx(self, client, mock_backend, admin_headers):
        from regadmin.services.export_service import build_export_workbook

        xlsx = build_export_workbook([{"brand_name": "X", "common_label": "Y", "expiry_date": "2030-12-01"}])

        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.xlsx", xlsx, "application/octet-stream")},
            data={"company_code": "ACME"},
            headers=admin_headers,
        )

        assert response.json()["results"]["success"] == 1
        (_, batch), _ = mock_backend.insert.call_args
        assert batch[0]["company_code"] == "ACME"
        assert batch[0]["expiry_date"] == "2030-12-01"

    def test_missing_file(self, client, mock_backend, admin_headers):
        response = client.post("/api/admin/import-csv", data={"company_code": "ACME"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"error": "missing file"}

    def test_missing_company_code(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY, "text/csv")},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"error": "missing company_code"}
        mock_backend.insert.assert_not_called()

    def test_unreadable_workbook(self, client, mock_backend, admin_headers):
        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.xlsx", b"not a workbook", "application/octet-stream")},
            data={"company_code": "ACME", "replace_mode": "1"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        mock_backend.delete.assert_not_called()

    def test_oversize_upload_rejected(self, mock_backend, admin_headers):
        app = create_app(make_settings(max_upload_bytes=64), backend=mock_backend)
        client = TestClient(app, raise_server_exceptions=False)

        response = client.post(
            "/api/admin/import-csv",
            files={"file": ("products.csv", CSV_BODY * 10, "text/csv")},
            data={"company_code": "ACME"},
            headers=admin_headers,
        )

        assert response.status_code == 413
        assert response.json() == {"error": "file too large"}
        assert mock_backend.method_calls == []


class TestExport:

    def test_export_workbook(self, client, mock_backend, admin_headers):
        mock_backend.select.return_value = [
            {"id": 1, "company_code": "ACME", "brand_name": "B1", "common_label": "L1", "expiry_date": None},
            {"id": 2, "company_code": "ACME", "brand_name": "B2", "common_label": "L2", "expiry_date": "2030-01-01"},
        ]

        response = client.get("/api/admin/export", params={"code": "ACME"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == (
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="registrations_ACME.xlsx"' in response.headers["content-disposition"]
        mock_backend.select.assert_called_once_with(REGISTRATIONS, filters={"company_code": "ACME"})

        ws = load_workbook(BytesIO(response.content)).active
        assert ws.max_row == 3
        assert ws.cell(row=3, column=2).value == "B2"
        assert ws.cell(row=3, column=10).value == "2030-01-01"

    def test_missing_code(self, client, mock_backend, admin_headers):
        response = client.get("/api/admin/export", headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"error": "missing code"}
        mock_backend.select.assert_not_called()


# =============================================================================
# Rate limiting
# =============================================================================


class TestRateLimit:

    def make_client(self, mock_backend, **overrides):
        return TestClient(create_app(make_settings(**overrides), backend=mock_backend))

    def test_request_after_default_limit_is_rejected(self, mock_backend):
        client = self.make_client(mock_backend)

        for _ in range(1000):
            assert client.get("/health").status_code == 200

        response = client.get("/health")

        assert response.status_code == 429
        assert response.json() == {"error": "Too many requests, please try again later."}

    def test_limit_is_shared_across_routes(self, mock_backend, admin_headers):
        mock_backend.select.return_value = []
        client = self.make_client(mock_backend, rate_limit="2/15 minutes")

        assert client.get("/health").status_code == 200
        assert client.get("/api/admin/companies", headers=admin_headers).status_code == 200

        response = client.get("/api/admin/companies", headers=admin_headers)

        assert response.status_code == 429
        assert "error" in response.json()
        assert mock_backend.select.call_count == 1

    def test_limit_applies_before_auth(self, mock_backend):
        client = self.make_client(mock_backend, rate_limit="1/15 minutes")

        assert client.get("/api/admin/companies").status_code == 401
        assert client.get("/api/admin/companies").status_code == 429

    def test_limit_can_be_disabled(self, mock_backend):
        client = self.make_client(mock_backend, rate_limit="1/15 minutes", rate_limit_enabled=False)

        for _ in range(3):
            assert client.get("/health").status_code == 200
