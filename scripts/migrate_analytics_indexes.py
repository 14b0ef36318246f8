from sqlalchemy import text

from funnel_cms.core.db_read_write import write_engine


SQL = [
    "CREATE INDEX IF NOT EXISTS idx_analytics_events_type_created "
    "ON analytics_events (event_type, entity_type, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_analytics_events_entity ON analytics_events (entity_type, entity_id);",
    "CREATE INDEX IF NOT EXISTS ix_analytics_events_session_id ON analytics_events (session_id);",
    "CREATE INDEX IF NOT EXISTS ix_analytics_events_country ON analytics_events (country);",
    "CREATE INDEX IF NOT EXISTS ix_analytics_events_created_at ON analytics_events (created_at);",
]


def main() -> None:
    with write_engine.begin() as conn:
        for statement in SQL:
            conn.execute(text(statement))
    print("analytics index migration done")


if __name__ == "__main__":
    main()
