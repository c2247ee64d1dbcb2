from trust_ledger.repositories.interfaces import (
    LedgerDatabase,
    TrustAccountRepository,
    TrustTransactionRepository,
)
from trust_ledger.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteTrustAccountRepository,
    SQLiteTrustTransactionRepository,
)

__all__ = [
    "LedgerDatabase",
    "TrustAccountRepository",
    "TrustTransactionRepository",
    "SQLiteDatabase",
    "SQLiteTrustAccountRepository",
    "SQLiteTrustTransactionRepository",
]

# PostgreSQL support is optional - only available if psycopg2 is installed
try:
    from trust_ledger.repositories.postgres import (
        PostgresDatabase,
        PostgresTrustAccountRepository,
        PostgresTrustTransactionRepository,
    )

    __all__ += [
        "PostgresDatabase",
        "PostgresTrustAccountRepository",
        "PostgresTrustTransactionRepository",
    ]
except ImportError:
    # psycopg2 not installed, PostgreSQL repositories not available
    pass
