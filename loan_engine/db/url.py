from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def normalize_database_url(url: str) -> str:
    """Force the async psycopg driver and translate ``ssl=`` into libpq's ``sslmode=``."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        normalized = (query.pop(ssl_key) or "").lower().strip()
        if "sslmode" not in query:
            if normalized in {"0", "false", "no", "off", "disable"}:
                query["sslmode"] = "disable"
            elif normalized in {"require", "verify-ca", "verify-full"}:
                query["sslmode"] = normalized
            else:
                query["sslmode"] = "require"

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
