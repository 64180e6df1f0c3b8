"""Store-level services: credential store, audit log, token revocations."""
