"""
question-bank core package.

Modules
───────
models     — Pydantic data models (Topic, Question, SearchParams, SearchResult, …)
errors     — Exception hierarchy (NotFound, Validation, Duplicate, Datastore*)
store      — SQLite-backed topic document store
retry      — Exponential-backoff retry wrapper
cache      — Tag-invalidated TTL read cache
query      — Pure filter / rank / paginate engine
questions  — Question reads and validated mutations
topics     — Topic CRUD and name search
reconcile  — Optimistic list state machine and client-side form checks
"""
