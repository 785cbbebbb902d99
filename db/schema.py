# SQL schema for the remote flashcard store

SCHEMA_VERSION = 2

SCHEMA_SQL = """
-- Latest synced copy of each card, per user.
-- server_seq is assigned on receipt and only grows per user; incremental
-- pulls page on it, while updated_at settles conflicts.
CREATE TABLE IF NOT EXISTS remote_flashcards (
    user_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    server_seq INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, card_id)
);
"""

INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_remote_flashcards_updated
    ON remote_flashcards (user_id, updated_at);
CREATE INDEX IF NOT EXISTS idx_remote_flashcards_seq
    ON remote_flashcards (user_id, server_seq);
"""

UPSERT_SQL = """
INSERT INTO remote_flashcards (user_id, card_id, payload, updated_at, server_seq)
VALUES (
    ?, ?, ?, ?,
    (SELECT COALESCE(MAX(server_seq), 0) + 1 FROM remote_flashcards WHERE user_id = ?)
)
ON CONFLICT(user_id, card_id) DO UPDATE SET
    payload = excluded.payload,
    updated_at = excluded.updated_at,
    server_seq = excluded.server_seq
WHERE excluded.updated_at >= remote_flashcards.updated_at
"""
