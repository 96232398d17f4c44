SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied_at REAL NOT NULL
);

-- Providers: one row per operator identity
CREATE TABLE IF NOT EXISTS providers (
    id                    TEXT PRIMARY KEY,
    identity_address      TEXT NOT NULL UNIQUE COLLATE NOCASE,
    display_name          TEXT NOT NULL DEFAULT '',
    available_capacity_gb REAL NOT NULL DEFAULT 0.0,
    price_per_gb          REAL NOT NULL DEFAULT 1.0,
    active                INTEGER NOT NULL DEFAULT 1,
    health_status         TEXT NOT NULL DEFAULT 'online' CHECK (health_status IN ('online', 'offline')),
    uptime_percentage     REAL NOT NULL DEFAULT 100.0,
    last_heartbeat_at     REAL,
    created_at            REAL NOT NULL,
    updated_at            REAL NOT NULL
);

-- Allocations: paid capacity grants from a user to a provider
CREATE TABLE IF NOT EXISTS allocations (
    id             TEXT PRIMARY KEY,
    provider_id    TEXT NOT NULL,
    user_address   TEXT NOT NULL COLLATE NOCASE,
    allocated_gb   REAL NOT NULL,
    used_gb        REAL NOT NULL DEFAULT 0.0,
    paid_amount    REAL NOT NULL DEFAULT 0.0,
    payment_tx_ref TEXT NOT NULL DEFAULT '',
    created_at     REAL NOT NULL,
    expires_at     REAL NOT NULL,
    FOREIGN KEY (provider_id) REFERENCES providers(id)
);

-- Stored files: users' logical files
CREATE TABLE IF NOT EXISTS stored_files (
    id                   TEXT PRIMARY KEY,
    user_address         TEXT NOT NULL COLLATE NOCASE,
    file_name            TEXT NOT NULL,
    file_size            INTEGER NOT NULL DEFAULT 0,
    mime_type            TEXT NOT NULL DEFAULT '',
    upload_status        TEXT NOT NULL DEFAULT 'pending' CHECK (upload_status IN ('pending', 'complete')),
    original_content_ref TEXT NOT NULL DEFAULT '',
    created_at           REAL NOT NULL
);

-- Provider artifacts: one claim per (provider, original file)
CREATE TABLE IF NOT EXISTS provider_artifacts (
    id               TEXT PRIMARY KEY,
    provider_id      TEXT NOT NULL,
    allocation_id    TEXT NOT NULL,
    original_file_id TEXT NOT NULL,
    artifact_name    TEXT NOT NULL,
    file_size        INTEGER NOT NULL DEFAULT 0,
    local_path       TEXT NOT NULL,
    encryption_key   TEXT NOT NULL,
    received_at      REAL NOT NULL,
    UNIQUE (provider_id, original_file_id),
    FOREIGN KEY (provider_id) REFERENCES providers(id),
    FOREIGN KEY (allocation_id) REFERENCES allocations(id),
    FOREIGN KEY (original_file_id) REFERENCES stored_files(id)
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_allocations_provider_expiry ON allocations(provider_id, expires_at);
CREATE INDEX IF NOT EXISTS idx_allocations_user ON allocations(user_address COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_stored_files_user_status ON stored_files(user_address COLLATE NOCASE, upload_status);
CREATE INDEX IF NOT EXISTS idx_artifacts_provider ON provider_artifacts(provider_id);
"""
