"""Tests for meals_db.mcp.lifespan -- server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config (CLI overrides, env, .env, YAML)
- Builds the SQLAlchemy engine and checks the Meals DB answers
- Creates the WordPressClient and validates its credentials
- Initializes the concurrency semaphore
- Fails fast on config errors or connection failures
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from sqlalchemy.exc import OperationalError

from meals_db.mcp.lifespan import load_server_config, server_lifespan
from meals_db.sync.engine import SyncEngine

_MODULE = "meals_db.mcp.lifespan"


@pytest.fixture
def wp_mock():
    client = MagicMock()
    client.validate_connection.return_value = "sync-bot"
    return client


# -------------------------------------------------------------------------
# server_lifespan() -- successful startup
# -------------------------------------------------------------------------


class TestServerLifespanSuccess:
    async def test_successful_startup(self, mock_config, wp_mock):
        mock_config.max_parallel_requests = 12
        mock_config.actor_id = 4

        with (
            patch(f"{_MODULE}.load_server_config", return_value=mock_config),
            patch(f"{_MODULE}.WordPressClient", return_value=wp_mock) as mock_cls,
            patch(f"{_MODULE}.init_semaphore") as mock_init_sem,
            patch(f"{_MODULE}._stderr_print"),
        ):
            async with server_lifespan() as ctx:
                engine = ctx["engine"]
                assert isinstance(engine, SyncEngine)
                assert engine.actor_id == 4
                assert engine.query.wp_client is wp_mock
                mock_cls.assert_called_once_with(mock_config)
                wp_mock.validate_connection.assert_called_once_with()
                mock_init_sem.assert_called_once_with(12)

    async def test_engine_disposed_on_shutdown(self, mock_config, wp_mock):
        db_engine = MagicMock()
        db_engine.dialect.name = "sqlite"

        with (
            patch(f"{_MODULE}.load_server_config", return_value=mock_config),
            patch(f"{_MODULE}.create_db_engine", return_value=db_engine) as mock_create,
            patch(f"{_MODULE}.check_connection", return_value="sqlite"),
            patch(f"{_MODULE}.WordPressClient", return_value=wp_mock),
            patch(f"{_MODULE}.init_semaphore"),
            patch(f"{_MODULE}._stderr_print"),
        ):
            async with server_lifespan():
                db_engine.dispose.assert_not_called()

        mock_create.assert_called_once_with("sqlite://", 10, 60)
        db_engine.dispose.assert_called_once_with()


# -------------------------------------------------------------------------
# server_lifespan() -- failures
# -------------------------------------------------------------------------


class TestServerLifespanFailures:
    async def test_config_error_raises_runtime_error(self):
        with (
            patch(
                f"{_MODULE}.load_server_config",
                side_effect=ValueError("WordPress URL not found"),
            ),
            patch(f"{_MODULE}._stderr_print") as mock_print,
        ):
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with server_lifespan():
                    pass

        printed = " ".join(str(c.args[0]) for c in mock_print.call_args_list)
        assert "PLUGIN_AES_KEY" in printed

    async def test_database_unreachable(self, mock_config):
        db_engine = MagicMock()

        with (
            patch(f"{_MODULE}.load_server_config", return_value=mock_config),
            patch(f"{_MODULE}.create_db_engine", return_value=db_engine),
            patch(
                f"{_MODULE}.check_connection",
                side_effect=OperationalError("SELECT 1", {}, Exception("refused")),
            ),
            patch(f"{_MODULE}.WordPressClient") as mock_cls,
            patch(f"{_MODULE}._stderr_print"),
        ):
            with pytest.raises(RuntimeError, match="Meals DB connection failed"):
                async with server_lifespan():
                    pass

        db_engine.dispose.assert_called_once_with()
        mock_cls.assert_not_called()

    async def test_wordpress_unreachable(self, mock_config, wp_mock):
        wp_mock.validate_connection.side_effect = requests.HTTPError("401 Unauthorized")
        db_engine = MagicMock()

        with (
            patch(f"{_MODULE}.load_server_config", return_value=mock_config),
            patch(f"{_MODULE}.create_db_engine", return_value=db_engine),
            patch(f"{_MODULE}.check_connection", return_value="mysql"),
            patch(f"{_MODULE}.WordPressClient", return_value=wp_mock),
            patch(f"{_MODULE}.init_semaphore") as mock_init_sem,
            patch(f"{_MODULE}._stderr_print"),
        ):
            with pytest.raises(RuntimeError, match="WordPress connection failed"):
                async with server_lifespan():
                    pass

        db_engine.dispose.assert_called_once_with()
        mock_init_sem.assert_not_called()


# -------------------------------------------------------------------------
# load_server_config()
# -------------------------------------------------------------------------


class TestLoadServerConfig:
    def test_overrides_forwarded(self, mock_config):
        overrides = {
            "database_url": "sqlite:///cli.db",
            "wp_url": "https://cli.example.com",
            "wp_username": "cli-user",
            "wp_password": "cli-pass",
            "insecure": True,
        }
        with (
            patch(f"{_MODULE}.load_dotenv"),
            patch(f"{_MODULE}.discover_config_files", return_value=[]),
            patch(f"{_MODULE}.load_config", return_value=mock_config) as mock_load,
        ):
            assert load_server_config(overrides) is mock_config

        mock_load.assert_called_once_with(
            database_url="sqlite:///cli.db",
            wordpress_url="https://cli.example.com",
            username="cli-user",
            password="cli-pass",
            aes_key=None,
            insecure=True,
            debug=False,
            yaml_fallbacks=None,
        )

    def test_yaml_fallbacks_passed_when_files_exist(self, mock_config, tmp_path):
        with (
            patch(f"{_MODULE}.load_dotenv"),
            patch(f"{_MODULE}.discover_config_files", return_value=[tmp_path / "c.yml"]),
            patch(
                f"{_MODULE}.load_hierarchical_config",
                return_value={"wordpress": {"url": "https://yaml.example.com"}},
            ),
            patch(f"{_MODULE}.load_config", return_value=mock_config) as mock_load,
        ):
            load_server_config()

        fallbacks = mock_load.call_args.kwargs["yaml_fallbacks"]
        assert fallbacks["wordpress_url"] == "https://yaml.example.com"
