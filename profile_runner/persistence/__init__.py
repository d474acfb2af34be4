"""SQLite persistence for runner records and the runner event audit trail."""
