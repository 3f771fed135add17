"""Core engine: mode detection, safety classification, contexts and cleanup."""
