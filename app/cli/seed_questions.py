import sys

from sqlalchemy import select

from app.database import Base, SessionLocal, engine
from app.models import BondingQuestion


def main():
    Base.metadata.create_all(bind=engine)

    print("Enter one bonding question per line; finish with an empty line.")
    prompts = []
    for line in sys.stdin:
        prompt = line.strip()
        if not prompt:
            break
        prompts.append(prompt)

    if not prompts:
        print("No questions entered.")
        sys.exit(1)

    db = SessionLocal()
    try:
        existing = set(
            db.execute(select(BondingQuestion.prompt)).scalars().all()
        )
        added = 0
        for prompt in prompts:
            if prompt in existing:
                continue
            db.add(BondingQuestion(prompt=prompt))
            added += 1
        db.commit()
        print(f"Added {added} bonding question(s).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
