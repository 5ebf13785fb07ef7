from decimal import Decimal
from fastapi import status


def _graphql(client, query, variables=None):
    response = client.post("/graphql", json={"query": query, "variables": variables or {}})
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def test_bank_transactions_query(client, tenant, bank_transaction):
    body = _graphql(
        client,
        """
        query ($tenantId: Int!) {
            bankTransactions(tenantId: $tenantId) { id amount reconciliationStatus receiptUrl }
        }
        """,
        {"tenantId": tenant.id},
    )

    assert "errors" not in body
    rows = body["data"]["bankTransactions"]
    assert [r["id"] for r in rows] == [bank_transaction.id]
    assert Decimal(rows[0]["amount"]) == Decimal("-49.99")
    assert rows[0]["reconciliationStatus"] == "unmatched"
    assert rows[0]["receiptUrl"] is None


def test_unknown_tenant_is_an_error(client):
    body = _graphql(client, "query { expenses(tenantId: 999) { id } }")
    assert body["errors"][0]["message"] == "Tenant not found"


def test_match_transactions_query(client, tenant, bank_transaction):
    body = _graphql(
        client,
        """
        query ($tenantId: Int!) {
            matchTransactions(tenantId: $tenantId, amount: "49.99", date: "15/03/24", vendor: "Bouygues Telecom") {
                bestMatch { id confidence }
                dateWarning
            }
        }
        """,
        {"tenantId": tenant.id},
    )

    result = body["data"]["matchTransactions"]
    assert result["bestMatch"] == {"id": bank_transaction.id, "confidence": "high"}
    assert result["dateWarning"] is None


def test_link_and_unlink_mutations(client, tenant, bank_transaction, expense):
    link = """
        mutation ($tenantId: Int!, $tx: Int!, $exp: Int!) {
            linkTransaction(tenantId: $tenantId, transactionId: $tx, expenseId: $exp) {
                transaction { linkedExpenseId reconciliationStatus }
                expense { linkedTransactionId isReconciled }
            }
        }
    """
    body = _graphql(client, link, {"tenantId": tenant.id, "tx": bank_transaction.id, "exp": expense.id})

    result = body["data"]["linkTransaction"]
    assert result["transaction"] == {"linkedExpenseId": expense.id, "reconciliationStatus": "matched"}
    assert result["expense"] == {"linkedTransactionId": bank_transaction.id, "isReconciled": True}

    unlink = """
        mutation ($tenantId: Int!, $tx: Int!) {
            unlinkTransaction(tenantId: $tenantId, transactionId: $tx) {
                transaction { linkedExpenseId }
                expense { isReconciled }
            }
        }
    """
    body = _graphql(client, unlink, {"tenantId": tenant.id, "tx": bank_transaction.id})
    assert body["data"]["unlinkTransaction"] == {
        "transaction": {"linkedExpenseId": None},
        "expense": {"isReconciled": False},
    }


def test_process_document_and_usage(client, tenant):
    mutation = """
        mutation ($tenantId: Int!) {
            processDocument(tenantId: $tenantId, input: {
                documentUrl: "https://files.example.com/ticket.pdf", fileName: "ticket.pdf", mimeType: "application/pdf"
            }) { provider financialAnalysis }
        }
    """
    body = _graphql(client, mutation, {"tenantId": tenant.id})

    document = body["data"]["processDocument"]
    assert document["provider"] == "claude-vision"
    assert Decimal(document["financialAnalysis"]["amounts"]["ttc"]) == Decimal("120.00")

    body = _graphql(client, "query ($t: Int!) { ocrUsage(tenantId: $t) { provider used } }", {"t": tenant.id})
    usage = {u["provider"]: u["used"] for u in body["data"]["ocrUsage"]}
    assert usage["claude-vision"] == 1
