"""Domain Models: value objects, entities and the response envelope."""
