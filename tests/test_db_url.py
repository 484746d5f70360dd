import pytest

from loan_engine.db.url import normalize_database_url


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@db:5432/loans", "postgresql+psycopg://u:p@db:5432/loans"),
        ("postgresql+asyncpg://u:p@db/loans?ssl=true", "postgresql+psycopg://u:p@db/loans?sslmode=require"),
        ("postgresql://u:p@db/loans?ssl=false", "postgresql+psycopg://u:p@db/loans?sslmode=disable"),
        ("postgresql://u:p@db/loans?ssl=true&sslmode=verify-full", "postgresql+psycopg://u:p@db/loans?sslmode=verify-full"),
        ("", ""),
    ],
)
def test_normalize_database_url(raw, expected) -> None:
    assert normalize_database_url(raw) == expected
