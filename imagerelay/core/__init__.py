"""Core relay state package.

Architectural role:
    Holds the process-wide progress registry and everything that reads or
    expires it, independent of the prediction service and of HTTP.

Composition:
    - `progress_types`: progress record value object and status vocabulary.
    - `progress_store`: in-memory `generation_id -> record` registry.
    - `progress_stream`: SSE generator over the registry.
    - `cleanup`: deferred, cancelable removal of finished records.
    - `errors`: error taxonomy and FastAPI exception handlers.
    - `logging_config`: process-level logging setup.
"""
