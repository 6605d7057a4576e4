"""Form screens: redirects with notices on success, inline errors on failure."""
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

import main

from views import GENERIC_FAILURE


def notice_of(response):
    return parse_qs(urlparse(response.headers["location"]).query)["notice"][0]


def post(client, path, data):
    return client.post(path, data=data, follow_redirects=False)


def test_pages_render(client):
    for path, title in [("/", "Dashboard"), ("/expenses", "Expenses"), ("/vendors", "Vendors"), ("/categories", "Categories")]:
        response = client.get(path)
        assert response.status_code == 200
        assert f"<h1>{title}</h1>" in response.text


def test_add_category_redirects_with_notice(client):
    response = post(client, "/categories", {"name": "Groceries"})

    assert response.status_code == 303
    assert notice_of(response) == 'Category "Groceries" has been added.'
    page = client.get(response.headers["location"])
    assert 'Category &#34;Groceries&#34; has been added.' in page.text
    assert "<td>Groceries</td>" in page.text


def test_duplicate_category_shows_field_error(client):
    post(client, "/categories", {"name": "Groceries"})

    response = post(client, "/categories", {"name": "groceries"})

    assert response.status_code == 409
    assert "Category name already exists." in response.text
    assert response.text.count("<td>Groceries</td>") == 1


def test_edit_category(client):
    post(client, "/categories", {"name": "Dining"})
    category_id = client.get("/api/categories").json()[0]["id"]

    page = client.get("/categories", params={"edit": category_id})
    assert "Update Category" in page.text
    assert f'action="/categories/{category_id}"' in page.text

    response = post(client, f"/categories/{category_id}", {"name": "Dining Out"})
    assert response.status_code == 303
    assert notice_of(response) == 'Category "Dining Out" has been updated.'


def test_delete_category_in_use_shows_blocking_error(client):
    post(client, "/categories", {"name": "Rent"})
    category_id = client.get("/api/categories").json()[0]["id"]
    assert post(client, "/expenses", {"date": "2024-07-01", "amount": "1200", "category": "Rent"}).status_code == 303

    response = post(client, f"/categories/{category_id}/delete", {})

    assert response.status_code == 409
    assert "is currently assigned to one or more expenses." in response.text
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Rent"]


def test_add_expense_with_invalid_amount_shows_error(client):
    post(client, "/categories", {"name": "Groceries"})

    response = post(client, "/expenses", {"date": "2024-07-28", "amount": "-5", "category": "Groceries"})

    assert response.status_code == 400
    assert "Amount must be positive." in response.text
    assert client.get("/api/expenses").json() == []


def test_add_expense_rejects_non_finite_amount(client):
    post(client, "/categories", {"name": "Groceries"})

    for amount in ("nan", "inf"):
        response = post(client, "/expenses", {"date": "2024-07-28", "amount": amount, "category": "Groceries"})
        assert response.status_code == 400
        assert "Input should be a finite number" in response.text

    assert client.get("/api/expenses").json() == []
    dashboard = client.get("/api/dashboard").json()
    assert dashboard["total_expenses"] == 0
    assert dashboard["balance"] == 0


def test_add_expense_requires_fields(client):
    response = post(client, "/expenses", {"date": "", "amount": "", "category": ""})

    assert response.status_code == 400
    assert "Expense date is required." in response.text
    assert "Amount is required." in response.text
    assert "Category is required." in response.text


def test_add_and_delete_expense(client):
    post(client, "/categories", {"name": "Groceries"})
    post(client, "/vendors", {"name": "SuperMart"})

    response = post(client, "/expenses", {
        "date": "2024-07-28", "amount": "75.50", "category": "Groceries", "vendor": "SuperMart", "notes": "Weekly shopping",
    })
    assert response.status_code == 303
    assert notice_of(response) == "Added Groceries expense of $75.50."

    expense = client.get("/api/expenses").json()[0]
    assert expense["vendor"] == "SuperMart"

    response = post(client, f"/expenses/{expense['id']}/delete", {})
    assert response.status_code == 303
    assert client.get("/api/expenses").json() == []


def test_vendor_form_validates_email(client):
    response = post(client, "/vendors", {"name": "City Power", "contact_email": "billing"})

    assert response.status_code == 400
    assert "Invalid email address." in response.text
    assert client.get("/api/vendors").json() == []


def test_dashboard_income_and_balance(client):
    post(client, "/categories", {"name": "Groceries"})
    response = post(client, "/income", {"amount": "5000"})
    assert response.status_code == 303
    post(client, "/expenses", {"date": "2024-07-28", "amount": "2350.75", "category": "Groceries"})

    page = client.get("/")

    assert "$5,000.00" in page.text
    assert "$2,350.75" in page.text
    assert "$2,649.25" in page.text


def test_negative_income_shows_error(client):
    response = post(client, "/income", {"amount": "-1"})
    assert response.status_code == 400
    assert "Income must be a non-negative number." in response.text


def test_non_finite_income_shows_error(client):
    response = post(client, "/income", {"amount": "nan"})
    assert response.status_code == 400
    assert "Income must be a non-negative number." in response.text
    assert client.get("/api/dashboard").json()["income"] == 0


def test_reset_from_dashboard(client):
    post(client, "/categories", {"name": "Groceries"})
    post(client, "/expenses", {"date": "2024-07-28", "amount": "10", "category": "Groceries"})

    response = post(client, "/reset", {})

    assert response.status_code == 303
    assert notice_of(response) == "All data reset (1 expenses removed)."
    assert client.get("/api/dashboard").json()["expense_count"] == 0


def test_pages_show_generic_failure_when_storage_is_unavailable(monkeypatch):
    monkeypatch.setattr(main, "app_state", {"store": None, "query_cache": None})
    client = TestClient(main.app)

    for path in ("/", "/expenses", "/vendors", "/categories"):
        response = client.get(path)
        assert response.status_code == 503
        assert response.headers["content-type"].startswith("text/html")
        assert GENERIC_FAILURE in response.text

    response = client.post("/expenses", data={"date": "2024-07-28", "amount": "10", "category": "Groceries"})
    assert response.status_code == 503
    assert GENERIC_FAILURE in response.text

    assert client.get("/api/dashboard").json() == {"detail": "Database service not available."}
