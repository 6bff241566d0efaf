"""Seed a local database with an operator, a client, a freelancer and one job."""
from __future__ import annotations

from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from app import db, models  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.services.api_keys import issue_key  # noqa: E402


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    db.init_engine()
    db.create_all()
    session = db.get_sessionmaker()()

    try:
        operator = models.User(reference="OPS1", username="ops", email="ops@example.com", is_operator=True)
        client = models.User(reference="CL1", username="client", email="client@example.com")
        freelancer = models.User(reference="FL1", username="freelancer", email="freelancer@example.com")
        session.add_all([operator, client, freelancer])
        session.flush()

        job = models.Job(
            reference="JOB1",
            title="Landing page redesign",
            client_id=client.id,
            budget=Decimal("1000.00"),
            milestone_plan=[
                {"description": "Wireframes", "percentage": "30"},
                {"description": "Design", "percentage": "30"},
                {"description": "Build", "percentage": "40"},
            ],
        )
        session.add(job)
        session.flush()
        session.add(models.Application(reference="APP1", job_id=job.id, freelancer_id=freelancer.id))
        session.add(
            models.FreelancerBankAccount(
                user_id=freelancer.id,
                bank_name="FNB",
                account_holder_name="Sample Freelancer",
                account_number="62000000001",
                branch_code="250655",
                is_verified=True,
                is_primary=True,
            )
        )
        session.commit()

        for user in (operator, client, freelancer):
            _, raw = issue_key(session, name=f"{user.username}-dev", user_id=user.id, days_valid=None, actor="seed")
            print(f"{user.username}: Authorization: Bearer {raw}")
        print("Seed data inserted.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
