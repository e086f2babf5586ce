"""Core building blocks: models, address codec, configuration, errors and logging."""
