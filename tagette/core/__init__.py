"""Core extraction pipeline: schemas, prompts, validation and the client."""
