from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.models import Base
from luckydraw.workflows import create_prize, import_participants_csv

DEPARTMENTS = ["Sales", "Engineering", "Finance", "Operations", "HR"]


def main() -> None:
    """Seed the development database with sample prizes and participants."""
    engine = make_engine()

    # Drop and recreate all tables for a clean slate.
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    with Session.begin() as session:
        create_prize(session, name="Consolation", quantity=20, batch_size=5, sort_order=1)
        create_prize(session, name="Third Prize", quantity=5, batch_size=5, sort_order=2)
        create_prize(session, name="Second Prize", quantity=2, batch_size=1, sort_order=3)
        create_prize(
            session,
            name="Grand Prize",
            quantity=1,
            batch_size=1,
            image_url="prizes/grand.jpg",
            sort_order=4,
        )

        rows = [
            f"EMP{i:03d},Employee {i:03d},{DEPARTMENTS[i % len(DEPARTMENTS)]}"
            for i in range(1, 61)
        ]
        created = import_participants_csv(session, "\n".join(rows))

    print(f"Seeded 4 prizes and {created} participants.")


if __name__ == "__main__":
    main()
