"""Domain core: models, actors, errors, lifecycle and operations."""
