"""
stepline_batch -- Chunk-oriented batch execution engine.

Reads records from an item source, transforms them one at a time and writes
them to an item sink in fixed-size chunks.  Each committed chunk advances the
step's durable restart position, so a failed or stopped run resumes from the
last committed chunk when it is relaunched with the same run id.

Architecture:
    stepline_batch/ depends on stepline_kernel only.  Concrete adapters live
    in stepline_io; YAML job definitions in stepline_config.

Layout:
    domain/    pure execution snapshots and flow definitions (ZERO I/O)
    items/     item source / transform / sink protocols
    models/    SQLAlchemy ORM tables of the SQL job repository
    services/  chunk executor, job runner, repositories, launcher, listeners
"""
