"""Reset the development database and fill it with one demo activity.

Needs ``KUJIFAIR_SEED_KEY``; one is generated for the run if it is unset.
"""

import logging
import os

from kujifair.db.engine import get_sessionmaker, make_engine
from kujifair.models import Base, PrizeLevel
from kujifair.prize_draw.commitment import SeedSealer
from kujifair.workflows import (
    activate_activity,
    create_activity,
    run_draw_batch,
    set_profit_rate,
)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()

    with engine.connect() as conn:
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.commit()
    Base.metadata.create_all(engine)

    key = os.getenv("KUJIFAIR_SEED_KEY")
    if not key:
        key = SeedSealer.generate_key()
        print(f"KUJIFAIR_SEED_KEY={key}  # add to .env to reveal this activity later")
    sealer = SeedSealer(key)

    Session = get_sessionmaker(engine)
    with Session.begin() as session:
        activity = create_activity(
            session,
            name="Demo Kuji",
            levels=[
                PrizeLevel(code="A", name="Figure", total=1, base_probability=5),
                PrizeLevel(code="B", name="Plush", total=2, base_probability=15),
                PrizeLevel(code="C", name="Towel", total=7, base_probability=80),
                PrizeLevel(code="LAST", name="Last One", total=1, is_bonus=True),
            ],
            major_level_codes=["A"],
        )
        activate_activity(session, activity, sealer)
        run_draw_batch(session, activity, sealer, 4, buyer_ref="demo-buyer-1")
        set_profit_rate(session, activity, 0.5, reason="demo")
        run_draw_batch(session, activity, sealer, 3, buyer_ref="demo-buyer-2")

        print(f"Activity {activity.id}: {activity.status}")
        print(f"Commitment: {activity.commitment_hash}")
        for draw in activity.draws:
            print(f"  #{draw.ticket_number}: {draw.result_level} (rate {draw.recorded_profit_rate})")


if __name__ == "__main__":
    main()
