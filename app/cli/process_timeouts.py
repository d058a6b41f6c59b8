import logging
import sys

from app.database import SessionLocal
from app.services.connection_service import ConnectionService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    db = SessionLocal()
    try:
        expired = ConnectionService(db).sweep_expired()
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Connection timeout sweep failed")
        sys.exit(1)
    finally:
        db.close()
    print(f"Expired {expired} connection(s).")


if __name__ == "__main__":
    main()
