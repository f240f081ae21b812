"""Provider adapters, registry and retry executor."""
