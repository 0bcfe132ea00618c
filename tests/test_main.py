"""Tests for the app shell: health, root and error rendering."""

import sys
from unittest.mock import patch

from backend.fridgeshare import cli
from backend.fridgeshare.main import app


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["docs"] == "/docs"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_db_ping(client):
    r = client.get("/db/ping")
    assert r.json()["ok"] is True
    assert r.json()["db"]["driver"] == "sqlite"


def test_domain_errors_render_detail(client):
    r = client.get("/users/ghost/stats")
    assert r.status_code == 404
    assert r.json() == {"detail": "User not found"}


def test_cli_expire_listings(capsys):
    with patch.object(sys, "argv", ["fridgeshare", "expire-listings"]):
        cli.main()
    assert "Expired 0 listings" in capsys.readouterr().out


def test_vercel_entry_keeps_configured_cors(client):
    from api.index import app as vercel_app
    assert vercel_app is app

    r = client.get("/health", headers={"Origin": "http://localhost:5173"})
    assert r.headers["access-control-allow-origin"] == "http://localhost:5173"

    r = client.get("/health", headers={"Origin": "https://elsewhere.example"})
    assert "access-control-allow-origin" not in r.headers
