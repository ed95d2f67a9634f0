"""Exit non-zero when the database schema differs from the ORM models.

0: in sync, 1: differences found, 2: the check itself failed.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import compare_metadata
from alembic.runtime.migration import MigrationContext

from kujifair.db.engine import make_engine
from kujifair.models import Base


def main() -> int:
    engine = make_engine()
    where = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={"compare_type": True, "compare_server_default": True},
            )
            diffs = compare_metadata(context, Base.metadata)
    except Exception as exc:
        print(f"Schema drift check failed for {where}: {exc}", file=sys.stderr)
        return 2

    if not diffs:
        print(f"Schema in sync with models ({where}).")
        return 0

    print(f"Schema drift detected ({where}):")
    for diff in diffs:
        print(f"  - {diff}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
