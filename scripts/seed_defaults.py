from funnel_cms.core.db_read_write import WriteSessionLocal, write_engine
from funnel_cms.db import Base
from funnel_cms.main import seed_defaults


def main() -> None:
    Base.metadata.create_all(bind=write_engine)
    db = WriteSessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()
    print("defaults ensured: admin, project types, subject types, workflows")


if __name__ == "__main__":
    main()
