"""Domain Layer: models, events and ports shared by every upstream gateway."""
