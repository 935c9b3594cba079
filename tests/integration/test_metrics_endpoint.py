"""Integration tests for metrics endpoint."""

from __future__ import annotations


def test_metrics_endpoint_available(client):
    client.get("/list")

    response = client.get("/metrics")
    assert response.status_code == 200
    body = response.content.decode()
    assert "trolley_http_requests_total" in body
    assert "trolley_row_deletes_total" in body
