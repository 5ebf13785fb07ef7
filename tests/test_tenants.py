import pytest
from fastapi import status


def test_create_tenant(client):
    """Test creating a tenant"""
    response = client.post(
        "/api/tenants",
        json={"name": "Boulangerie Lefèvre"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["name"] == "Boulangerie Lefèvre"
    assert data["plan"] == "FREE"
    assert "id" in data
    assert "created_at" in data


def test_create_tenant_with_plan(client):
    response = client.post("/api/tenants", json={"name": "Studio Graphique", "plan": "tpe"})
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["plan"] == "TPE"


def test_create_tenant_unknown_plan(client):
    response = client.post("/api/tenants", json={"name": "Studio Graphique", "plan": "GOLD"})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_list_tenants(client, tenant):
    """Test listing tenants"""
    response = client.get("/api/tenants")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert len(data) >= 1
    assert any(t["id"] == tenant.id for t in data)


def test_list_tenants_by_plan(client, tenant, db):
    client.post("/api/tenants", json={"name": "Cabinet Leroy", "plan": "TPE"})

    response = client.get("/api/tenants", params={"plan": "tpe"})
    assert response.status_code == status.HTTP_200_OK
    assert [t["name"] for t in response.json()] == ["Cabinet Leroy"]


def test_get_tenant(client, tenant):
    """Test getting a tenant by ID"""
    response = client.get(f"/api/tenants/{tenant.id}")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == tenant.id
    assert data["name"] == tenant.name


def test_get_tenant_not_found(client):
    response = client.get("/api/tenants/9999")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_create_tenant_empty_name(client):
    """Test creating a tenant with empty name should fail"""
    response = client.post(
        "/api/tenants",
        json={"name": ""},
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_create_tenant_whitespace_only_name(client):
    """Test creating a tenant with whitespace-only name should fail"""
    response = client.post(
        "/api/tenants",
        json={"name": "   "},
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_create_tenant_duplicate_name(client, tenant):
    """Test creating a tenant with duplicate name should fail"""
    response = client.post(
        "/api/tenants",
        json={"name": tenant.name},
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert "already exists" in response.json()["detail"].lower()


def test_update_plan(client, tenant):
    response = client.patch(f"/api/tenants/{tenant.id}/plan", json={"plan": "ENTREPRISE"})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["plan"] == "ENTREPRISE"


def test_update_plan_raises_plan_metered_quota(client, tenant):
    """A plan change is visible to quota checks right away, not after the cache TTL"""
    usage = client.get(f"/api/tenants/{tenant.id}/ocr/usage").json()
    claude = next(u for u in usage if u["provider"] == "claude-vision")
    assert claude["limit"] == 5

    client.patch(f"/api/tenants/{tenant.id}/plan", json={"plan": "TPE"})

    usage = client.get(f"/api/tenants/{tenant.id}/ocr/usage").json()
    claude = next(u for u in usage if u["provider"] == "claude-vision")
    assert claude["limit"] == 200


def test_update_plan_unknown_tenant(client, db):
    response = client.patch("/api/tenants/9999/plan", json={"plan": "TPE"})
    assert response.status_code == status.HTTP_404_NOT_FOUND
