# =============================================================================
# Database Package
# =============================================================================
# Sync SQLAlchemy engine and ORM models for the relational record store.
#
# Key exports:
#   - get_sync_session: session context manager (commit/rollback)
#   - Base, Dog: ORM models for the tabular ingestion source
#   - SqlRecordStore: find_all() / execute() used by RecordLoader
# =============================================================================
