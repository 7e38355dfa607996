version = "0.1.0"

# (model, revision, addition) of the persisted table layout. A change in model is a breaking change to
# table shapes, revision is a compatible change to table shapes, and addition is new content only.
schema_version = (6, 0, 2)
