"""
Tests for the command-line entry point.
"""

from unittest.mock import MagicMock

import pytest

import cli
from ingestion.errors import SourceError
from conftest import BASE_ENV


@pytest.fixture
def cli_env(clean_env):
    clean_env.setattr(cli, "load_dotenv", lambda: None)
    clean_env.setattr("ingestion.settings.load_dotenv", lambda: None)
    for name, value in BASE_ENV.items():
        clean_env.setenv(name, value)
    return clean_env


@pytest.fixture
def runners(cli_env):
    company = MagicMock()
    investor = MagicMock()
    cli_env.setattr(cli, "run_company_pipeline", company)
    cli_env.setattr(cli, "run_investor_pipeline", investor)
    return company, investor


def test_company_is_the_default(runners):
    company, investor = runners

    assert cli.main([]) == 0

    company.assert_called_once()
    assert company.call_args.kwargs == {"target_count": None, "embeddings_enabled": True}
    investor.assert_not_called()


def test_pipeline_name_is_case_insensitive(runners):
    company, investor = runners
    assert cli.main(["INVESTOR"]) == 0
    investor.assert_called_once()
    company.assert_not_called()


def test_company_options(runners, cli_env):
    company, _ = runners
    cli_env.delenv("VOYAGE_API_KEY")

    assert cli.main(["company", "--target-count", "10", "--no-embeddings"]) == 0

    assert company.call_args.kwargs == {"target_count": 10, "embeddings_enabled": False}


def test_embeddings_disabled_by_environment(runners, cli_env):
    company, _ = runners
    cli_env.setenv("EMBEDDINGS_ENABLED", "0")
    cli_env.delenv("VOYAGE_API_KEY")

    assert cli.main(["company"]) == 0
    assert company.call_args.kwargs["embeddings_enabled"] is False


def test_invalid_pipeline_name(runners, capsys):
    company, investor = runners

    assert cli.main(["vendors"]) == 1

    assert "Invalid argument: 'vendors'" in capsys.readouterr().err
    company.assert_not_called()
    investor.assert_not_called()


def test_missing_embedding_key_fails_before_running(runners, cli_env):
    company, investor = runners
    cli_env.delenv("VOYAGE_API_KEY")

    assert cli.main(["investor"]) == 1
    assert cli.main(["company"]) == 1
    investor.assert_not_called()
    company.assert_not_called()


def test_pipeline_failure_exits_non_zero(runners):
    company, _ = runners
    company.side_effect = SourceError("listing down")

    assert cli.main(["company"]) == 1


def test_init_db_creates_schema(cli_env):
    store_class = MagicMock()
    cli_env.setattr(cli, "PostgresStore", store_class)
    cli_env.setenv("EMBEDDING_DIMENSION", "512")

    assert cli.main(["init-db"]) == 0

    store_class.return_value.create_schema.assert_called_once_with(dimension=512)


def test_init_db_requires_postgres(cli_env):
    cli_env.setenv("STORE_BACKEND", "supabase")
    cli_env.setenv("SUPABASE_URL", "https://project.supabase.co")
    cli_env.setenv("SUPABASE_ANON_KEY", "anon-key")

    assert cli.main(["init-db"]) == 1
