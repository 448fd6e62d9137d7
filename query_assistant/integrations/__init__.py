# Host integrations (optional dependencies imported lazily by each module).
