"""
Tests for the database URL rewrite, log level mapping and cache headers.
"""
import json
import logging

import pytest

from db.session import to_async_url
from utils.logging_config import map_log_level
from utils.responses import no_store_json, public_json


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("mysql://u:p@db/creditodds", "mysql+aiomysql://u:p@db/creditodds"),
            ("mysql+pymysql://u:p@db/creditodds", "mysql+aiomysql://u:p@db/creditodds"),
            ("mysql+aiomysql://u:p@db/creditodds", "mysql+aiomysql://u:p@db/creditodds"),
            ("sqlite://", "sqlite+aiosqlite://"),
            ("sqlite+aiosqlite://", "sqlite+aiosqlite://"),
        ],
    )
    def test_rewrite(self, url, expected):
        assert to_async_url(url) == expected


class TestLogLevel:
    def test_known_and_unknown_levels(self):
        assert map_log_level("debug") == logging.DEBUG
        assert map_log_level("WARNING") == logging.WARNING
        assert map_log_level("chatty") == logging.INFO
        assert map_log_level("") == logging.INFO


class TestResponses:
    def test_public_json(self):
        response = public_json({"a": 1}, max_age=120)
        assert response.headers["cache-control"] == "public, max-age=120"
        assert json.loads(response.body) == {"a": 1}

    def test_public_json_disabled(self):
        assert public_json([], max_age=0).headers["cache-control"].startswith("no-store")

    def test_no_store_json(self):
        response = no_store_json({"ok": True}, status_code=201)
        assert response.status_code == 201
        assert response.headers["pragma"] == "no-cache"
