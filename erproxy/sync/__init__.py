"""Registry synchronisation pipeline.

The pipeline mirrors registry partitions into an object sink, either from
a bulk export (:mod:`erproxy.sync.snapshot`) or incrementally from the
change feed (:mod:`erproxy.sync.changes`), with per-partition checkpoints
kept by :mod:`erproxy.sync.state`. :mod:`erproxy.sync.coordinator` decides
which to run.

Import from the submodules directly; this package does not re-export them
because the sink adapters depend on :mod:`erproxy.sync.errors`.
"""
