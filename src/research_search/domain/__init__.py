"""Domain layer: source articles and search value objects."""
