"""Services used by the message handler (AI, search, downloads, storage)."""
